"""
Ledger math: per-invoice financial aggregates.

Pure functions, no I/O. Everything here operates on already-loaded models
and is total over well-typed input - callers validate amounts, these
functions never raise.

Only COMPLETED payments count. A payment's refunds are recorded on the
payment itself (refunded_amount_cents), so:

    net_paid     = total_paid - total_refunded
    balance_due  = amount - net_paid          (negative = client credit)
    deposit_paid = clamp(net_paid, 0, deposit)
"""

from typing import Iterable

from core.models import (
    Invoice, InvoiceBalance, InvoiceStatus,
    Payment, PaymentProgress, PaymentSummary,
)

# Statuses that payment activity never overrides
_TERMINAL_STATUSES = {InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED}


def completed_payments(payments: Iterable[Payment] | None) -> list[Payment]:
    """Payments that count toward totals. Pending and failed are ignored."""
    return [p for p in (payments or ()) if p.is_completed]


def net_paid(payment: Payment) -> int:
    """Amount a single payment still contributes after its refunds."""
    if not payment.is_completed:
        return 0
    return payment.amount_cents - payment.refunded_amount_cents


def _totals(payments: Iterable[Payment] | None) -> tuple[int, int]:
    counted = completed_payments(payments)
    total_paid = sum(p.amount_cents for p in counted)
    total_refunded = sum(p.refunded_amount_cents for p in counted)
    return total_paid, total_refunded


def compute_balance(invoice: Invoice, payments: Iterable[Payment] | None) -> InvoiceBalance:
    """
    Compute the balance of an invoice from its payments.

    Args:
        invoice: The invoice
        payments: All payments recorded against it, any status. None or
            empty yields zero totals and balance_due == amount.

    Returns:
        InvoiceBalance. Always satisfies balance_due + net_paid == amount.
    """
    total_paid, total_refunded = _totals(payments)
    paid = total_paid - total_refunded
    balance_due = invoice.amount_cents - paid

    deposit_required = invoice.deposit_amount_cents
    deposit_paid = max(min(paid, deposit_required), 0)
    deposit_remaining = max(deposit_required - deposit_paid, 0)

    return InvoiceBalance(
        invoice_id=invoice.id,
        total_amount=invoice.amount_cents,
        total_paid=total_paid,
        total_refunded=total_refunded,
        net_paid=paid,
        balance_due=balance_due,
        deposit_required=deposit_required,
        deposit_paid=deposit_paid,
        deposit_remaining=deposit_remaining,
        status=invoice.status,
        can_start_work=deposit_paid >= deposit_required,
        has_refunds=total_refunded > 0,
        has_credit=balance_due < 0,
    )


def summarize_payments(total_cents: int, payments: Iterable[Payment] | None) -> PaymentSummary:
    """
    Payment progress against an arbitrary total (an invoice or a whole order).

    percentage is net paid over total, rounded; 0 when the total is 0.
    """
    total_paid, total_refunded = _totals(payments)
    paid = total_paid - total_refunded

    if paid > total_cents:
        progress = PaymentProgress.OVERPAID
    elif paid >= total_cents:
        progress = PaymentProgress.PAID
    elif paid > 0:
        progress = PaymentProgress.PARTIAL
    else:
        progress = PaymentProgress.UNPAID

    percentage = round(paid * 100 / total_cents) if total_cents > 0 else 0

    return PaymentSummary(
        total_paid=total_paid,
        total_refunded=total_refunded,
        net_paid=paid,
        amount_due=total_cents - paid,
        percentage=percentage,
        payment_status=progress,
    )


def derive_invoice_status(invoice: Invoice, payments: Iterable[Payment] | None) -> InvoiceStatus:
    """
    Invoice status implied by its payments.

    Cancelled and refunded invoices keep their status.
    """
    if invoice.status in _TERMINAL_STATUSES:
        return invoice.status

    total_paid, total_refunded = _totals(payments)
    paid = total_paid - total_refunded

    if paid >= invoice.amount_cents:
        return InvoiceStatus.PAID
    if paid > 0:
        return InvoiceStatus.PARTIALLY_PAID
    return InvoiceStatus.PENDING
