"""
Domain events for the invoice ledger.

Immutable event objects describing committed ledger changes. Services publish
them after their transaction commits; handlers react without the publisher
knowing who's listening.

Event Categories:
- InvoiceEvent: Invoice lifecycle (create, send, pay, cancel)
- PaymentEvent: Payment recorded
- StockEvent: Manual stock adjustment

Events carry the full domain objects so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class LedgerEvent:
    """Base class for all ledger domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(LedgerEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class InvoiceCreated(InvoiceEvent):
    """A new invoice was created in DRAFT status."""
    invoice: Any = None  # Invoice; Any avoids a circular import

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceCreated":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceSent(InvoiceEvent):
    """Invoice was sent; its stock deductions are committed."""
    invoice: Any = None
    items: tuple = ()

    @classmethod
    def create(cls, invoice: Any, items: list) -> "InvoiceSent":
        return cls(invoice=invoice, items=tuple(items))


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Invoice balance reached zero."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceCancelled(InvoiceEvent):
    """Invoice was cancelled."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceCancelled":
        return cls(invoice=invoice)


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentRecorded(LedgerEvent):
    """A payment was appended to an invoice."""
    payment: Any = None
    remaining_balance_cents: int = 0

    @classmethod
    def create(cls, payment: Any, remaining_balance_cents: int) -> "PaymentRecorded":
        return cls(payment=payment, remaining_balance_cents=remaining_balance_cents)


# =============================================================================
# STOCK EVENTS
# =============================================================================


@dataclass(frozen=True)
class StockAdjusted(LedgerEvent):
    """A product's stock was corrected out of band."""
    product: Any = None
    delta: int = 0
    reason: str | None = None

    @classmethod
    def create(cls, product: Any, delta: int, reason: str | None) -> "StockAdjusted":
        return cls(product=product, delta=delta, reason=reason)
