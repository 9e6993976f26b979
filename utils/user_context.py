"""Propagate caller identity (user and shop) through the call stack using contextvars."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)
_current_shop_id: ContextVar[UUID | None] = ContextVar("current_shop_id", default=None)


def get_current_user_id() -> UUID:
    """
    Get current user ID from context.

    Raises RuntimeError if no user context is set.
    This is fail-fast behavior - if you're in a code path that
    requires user context and it's not set, that's a bug.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "shop-scoped code outside of an authenticated request."
        )
    return user_id


def get_current_shop_id() -> UUID:
    """
    Get the shop the current user is acting for.

    Raises RuntimeError if no shop context is set. Every garment, order
    and invoice lookup is scoped to this shop.
    """
    shop_id = _current_shop_id.get()
    if shop_id is None:
        raise RuntimeError(
            "No shop context set. This usually means you're calling "
            "shop-scoped code outside of an authenticated request."
        )
    return shop_id


def set_current_user(user_id: UUID, shop_id: UUID) -> None:
    """
    Set current user and shop in context.

    Called by the request layer after resolving the session.
    """
    _current_user_id.set(user_id)
    _current_shop_id.set(shop_id)


def clear_current_user() -> None:
    """
    Clear user and shop context.

    Must be called in finally block to prevent context leakage.
    """
    _current_user_id.set(None)
    _current_shop_id.set(None)


@contextmanager
def user_context(user_id: UUID, shop_id: UUID):
    """
    Context manager for temporarily setting user and shop context.

    Useful for:
    - Tests
    - Background jobs that iterate over shops
    - Admin operations on behalf of a shop owner

    Example:
        with user_context(owner_id, shop_id):
            balance = balance_service.compute_balance(invoice_id)
    """
    previous_user = _current_user_id.get()
    previous_shop = _current_shop_id.get()
    set_current_user(user_id, shop_id)
    try:
        yield
    finally:
        _current_user_id.set(previous_user)
        _current_shop_id.set(previous_shop)
