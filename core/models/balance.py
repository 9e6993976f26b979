"""Computed financial views over an invoice and its payments.

These are results, never stored. All amounts in cents.
"""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel

from core.models.invoice import InvoiceStatus


class InvoiceBalance(BaseModel):
    """Balance of one invoice from a single consistent read of its payments."""

    invoice_id: UUID
    total_amount: int
    total_paid: int
    total_refunded: int
    net_paid: int
    balance_due: int  # Negative means the client has credit
    deposit_required: int
    deposit_paid: int
    deposit_remaining: int
    status: InvoiceStatus
    can_start_work: bool
    has_refunds: bool
    has_credit: bool


class PaymentProgress(str, Enum):
    """How far along payment is against a total."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    OVERPAID = "overpaid"


class PaymentSummary(BaseModel):
    """Net payment progress against an amount."""

    total_paid: int
    total_refunded: int
    net_paid: int
    amount_due: int
    percentage: int
    payment_status: PaymentProgress
