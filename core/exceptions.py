"""Typed exceptions for ledger and reconciliation failures."""


class LedgerError(Exception):
    """Base class for all ledger errors."""


class ValidationError(LedgerError):
    """
    Input is malformed or out of range.

    Raised before anything is read from the store. Never retried.
    """


class NotFoundError(LedgerError):
    """
    Garment, service, invoice, order or catalog entry does not exist.

    Also raised when the entity exists but belongs to another shop - callers
    must not be able to tell the two apart.
    """


class InvalidStateError(LedgerError):
    """Entity exists but its current state forbids the operation (e.g. already billed)."""


class ConflictError(LedgerError):
    """
    A concurrent writer changed the same rows.

    Safe to retry the whole operation in a fresh transaction.
    """


class StorageError(LedgerError):
    """The backing store failed. Partial writes have been rolled back."""
