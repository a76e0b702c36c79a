"""Invoice domain models.

All amounts are stored in cents (integer minor units) to avoid floating point
issues. Tax rate is basis points (10000 = 100%).

Status changes are data, not scattered comparisons: ALLOWED_TRANSITIONS maps
each status to the statuses a caller may request next. Adding a status means
editing this table.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from core.models.line_item import InvoiceLineItem, LineItemCreate
from core.models.payment import Payment


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"  # Derived at read time, never written by the ledger
    CANCELLED = "cancelled"


# Edges callers may request through InvoiceService.transition()
ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.OVERDUE: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

# Edges only the payment ledger may take, inside its own transaction
INTERNAL_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.SENT: frozenset({InvoiceStatus.PAID}),
}


def allowed_targets(current: InvoiceStatus, internal: bool = False) -> frozenset[InvoiceStatus]:
    """Statuses reachable from `current` (including internal edges when asked)."""
    targets = ALLOWED_TRANSITIONS.get(current, frozenset())
    if internal:
        targets = targets | INTERNAL_TRANSITIONS.get(current, frozenset())
    return targets


class InvoiceCreate(BaseModel):
    """Data required to create an invoice."""

    client_id: UUID
    due_date: date
    issue_date: date | None = None  # Defaults to today (UTC)
    notes: str | None = Field(None, max_length=2000)
    items: list[LineItemCreate] = Field(..., min_length=1)

    @model_validator(mode="after")
    def due_not_before_issue(self) -> "InvoiceCreate":
        if self.issue_date is not None and self.due_date < self.issue_date:
            raise ValueError("due_date must not be before issue_date")
        return self


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    tenant_id: UUID
    client_id: UUID
    number: str
    status: InvoiceStatus
    issue_date: date
    due_date: date
    subtotal_cents: int
    tax_rate_bps: int
    tax_cents: int
    total_cents: int
    paid_date: datetime | None = None
    notes: str | None = None
    stock_applied: bool = False
    sent_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class InvoiceDetail(BaseModel):
    """Invoice with its line items, payments and derived balance."""

    invoice: Invoice
    items: list[InvoiceLineItem]
    payments: list[Payment]
    paid_cents: int
    balance_cents: int
    display_status: InvoiceStatus
    is_overdue: bool


class PendingInvoice(BaseModel):
    """A sent, unpaid invoice with collection figures for dashboards."""

    invoice: Invoice
    paid_cents: int
    balance_cents: int
    days_until_due: int
    is_overdue: bool


class InvoiceFilter(BaseModel):
    """Optional filters for listing invoices. Dates bound issue_date, inclusive."""

    status: InvoiceStatus | None = None
    client_id: UUID | None = None
    start_date: date | None = None
    end_date: date | None = None
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)

    @model_validator(mode="after")
    def range_is_ordered(self) -> "InvoiceFilter":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class PaymentReceipt(BaseModel):
    """Result of recording a payment: the payment, what is still owed, and the invoice after it."""

    payment: Payment
    remaining_balance_cents: int
    invoice: Invoice
