"""Ledger engine configuration."""

from pydantic import BaseModel, Field


class LedgerConfig(BaseModel):
    """
    Ledger engine configuration.

    Defaults suit a single-location shop; the retry bound applies to every
    write operation that can lose an optimistic-concurrency race.
    """

    # Concurrency
    max_conflict_retries: int = Field(
        default=3,
        description="Extra attempts after a ConflictError before surfacing it",
        ge=0,
        le=10,
    )
    write_isolation_level: str = Field(
        default="SERIALIZABLE",
        description="Isolation level for write transactions",
        pattern="^(SERIALIZABLE|REPEATABLE READ)$",
    )

    # Invoicing
    invoice_number_prefix: str = Field(
        default="INV",
        description="Prefix for generated invoice numbers",
        min_length=1,
        max_length=10,
    )
    display_timezone: str = Field(
        default="UTC",
        description="IANA timezone for dates in invoice numbers and descriptions",
    )
