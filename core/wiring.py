"""Composition root: builds the ledger services over one PostgreSQL pool."""

from dataclasses import dataclass

from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.repositories.postgres_store import PostgresLedgerStore
from core.repository import LedgerStore
from core.services.balance_service import BalanceService
from core.services.garment_stage_service import GarmentStageService
from core.services.invoice_builder import SupplementalInvoiceBuilder
from core.services.service_attachment import ServiceAttachmentReconciler


@dataclass
class LedgerServices:
    """Everything a request handler needs, sharing one store and event bus."""
    store: LedgerStore
    event_bus: EventBus
    config: LedgerConfig
    balances: BalanceService
    stages: GarmentStageService
    invoices: SupplementalInvoiceBuilder
    attachments: ServiceAttachmentReconciler


def build_services(
    store: LedgerStore,
    config: LedgerConfig | None = None,
    event_bus: EventBus | None = None,
) -> LedgerServices:
    """Wire the services around an existing store."""
    config = config or LedgerConfig()
    event_bus = event_bus or EventBus()
    builder = SupplementalInvoiceBuilder(store, config, event_bus)

    return LedgerServices(
        store=store,
        event_bus=event_bus,
        config=config,
        balances=BalanceService(store),
        stages=GarmentStageService(store, config, event_bus),
        invoices=builder,
        attachments=ServiceAttachmentReconciler(store, builder, config, event_bus),
    )


def build_ledger_services(
    database_url: str | None = None,
    config: LedgerConfig | None = None,
) -> LedgerServices:
    """
    Wire the services over PostgreSQL.

    The database URL defaults to DATABASE_URL or the Vault secret.
    """
    config = config or LedgerConfig()
    postgres = PostgresClient(database_url or get_database_url())
    store = PostgresLedgerStore(postgres, isolation_level=config.write_isolation_level)
    return build_services(store, config)
