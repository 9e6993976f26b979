"""
Invoice balance queries.

An invoice and its payments are read in one read-only snapshot, so a payment
webhook landing mid-read can never produce a payment counted without its
refund (or the other way round).
"""

import logging
from uuid import UUID

from core import ledger
from core.exceptions import NotFoundError
from core.models import Invoice, InvoiceBalance, Payment, PaymentSummary
from core.repository import LedgerStore
from utils.user_context import get_current_shop_id

logger = logging.getLogger(__name__)


class BalanceService:
    """Read-side service for invoice balances."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def _snapshot(self, invoice_id: UUID) -> tuple[Invoice, list[Payment]]:
        with self.store.transaction(readonly=True) as session:
            found = session.get_invoice_with_payments(invoice_id, get_current_shop_id())

        if found is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return found

    def compute_balance(self, invoice_id: UUID) -> InvoiceBalance:
        """
        Balance of an invoice.

        Raises:
            NotFoundError: Invoice not found in the current shop
        """
        invoice, payments = self._snapshot(invoice_id)
        return ledger.compute_balance(invoice, payments)

    def payment_summary(self, invoice_id: UUID) -> PaymentSummary:
        """Payment progress of an invoice against its amount."""
        invoice, payments = self._snapshot(invoice_id)
        return ledger.summarize_payments(invoice.amount_cents, payments)
