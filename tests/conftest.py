"""Shared test fixtures for the ledger test suite."""

import pytest
from uuid import UUID
from pathlib import Path

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Drop any cached database URL so .env values are picked up
import clients.vault_client as vault_module
vault_module.reset_cache()

from core.config import LedgerConfig
from core.event_bus import EventBus
from core.wiring import build_services
from ledger_fakes import InMemoryLedgerStore
from utils.user_context import user_context, clear_current_user


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

# Primary test user and the shop they work for
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_SHOP_ID = UUID("00000000-0000-0000-0000-0000000000a1")

# Second shop - use for shop isolation tests
TEST_USER_B_ID = UUID("00000000-0000-0000-0000-000000000002")
TEST_SHOP_B_ID = UUID("00000000-0000-0000-0000-0000000000b2")


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user()
    yield
    clear_current_user()


@pytest.fixture
def test_user_id() -> UUID:
    """The primary test user's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_shop_id() -> UUID:
    """The primary test user's shop."""
    return TEST_SHOP_ID


@pytest.fixture
def as_test_user(test_user_id, test_shop_id):
    """Run the test as the primary user acting for the primary shop."""
    with user_context(test_user_id, test_shop_id):
        yield test_user_id


@pytest.fixture
def as_test_user_b():
    """Run the test as the secondary user acting for the second shop."""
    with user_context(TEST_USER_B_ID, TEST_SHOP_B_ID):
        yield TEST_USER_B_ID


# =============================================================================
# LEDGER FIXTURES
# =============================================================================


@pytest.fixture
def store() -> InMemoryLedgerStore:
    """Empty in-memory ledger store."""
    return InMemoryLedgerStore()


@pytest.fixture
def config() -> LedgerConfig:
    """Default configuration."""
    return LedgerConfig()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def published(event_bus):
    """Every event published on the bus, in order."""
    events = []
    for name in (
        "ServiceAttached", "SupplementalInvoiceCreated", "GarmentStageChanged",
    ):
        event_bus.subscribe(name, events.append)
    return events


@pytest.fixture
def services(store, config, event_bus):
    """All ledger services wired over the in-memory store."""
    return build_services(store, config, event_bus)


@pytest.fixture
def order(store, test_shop_id):
    """An order in the primary shop."""
    return store.add_order(test_shop_id)


@pytest.fixture
def garment(store, order):
    """A garment with no services on the primary shop's order."""
    return store.add_garment(order)
