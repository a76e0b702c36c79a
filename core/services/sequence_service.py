"""
Invoice number sequence.

Numbers come from a per-tenant counter row bumped with an atomic upsert
inside the invoice-creation transaction. The (tenant_id, number) unique
constraint backs it up: if two creators ever produced the same number, the
second insert fails with ConcurrencyConflict and its transaction is retried.
A number is never reused and never derived from "the latest invoice".
"""

import logging

from clients.postgres_client import Transaction
from core.config import LedgerConfig
from core.store import LedgerStore

logger = logging.getLogger(__name__)


def format_invoice_number(prefix: str, value: int, width: int) -> str:
    """Prefix plus zero-padded value. Values wider than `width` are kept whole."""
    if value < 1:
        raise ValueError("Invoice sequence values start at 1")
    return f"{prefix}{value:0{width}d}"


class InvoiceNumberSequence:
    """Issues monotonically increasing, tenant-unique invoice numbers."""

    def __init__(self, store: LedgerStore, config: LedgerConfig):
        self.store = store
        self.config = config

    def _prefix(self, tx: Transaction) -> str:
        settings = self.store.get_tenant_settings(tx)
        if settings and settings.get("invoice_prefix"):
            return settings["invoice_prefix"]
        return self.config.invoice_prefix

    def next_number(self, tx: Transaction) -> str:
        """
        Reserve the next number for the current tenant.

        Must be called inside the transaction that inserts the invoice; the
        counter row stays locked until that transaction ends.
        """
        value = self.store.increment_invoice_sequence(tx)
        number = format_invoice_number(self._prefix(tx), value, self.config.number_width)
        logger.debug("Reserved invoice number %s", number)
        return number

    def peek(self, tx: Transaction) -> int:
        """Last value issued to the current tenant (0 if none)."""
        return self.store.current_invoice_sequence(tx)
