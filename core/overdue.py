"""
Overdue classification.

OVERDUE is never stored. An invoice is overdue when it has been sent, is not
yet paid, and its due date is in the past. Readers (dashboards, pending
listings) ask this module instead of filtering on a stored status.

Due dates are calendar dates: an invoice due today is not overdue until
tomorrow.
"""

from datetime import datetime

from core.models import Invoice, InvoiceStatus
from utils.timezone import as_date, days_between


def is_overdue(invoice: Invoice, now: datetime) -> bool:
    """True exactly when status is SENT and due_date < today."""
    return invoice.status == InvoiceStatus.SENT and invoice.due_date < as_date(now)


def display_status(invoice: Invoice, now: datetime) -> InvoiceStatus:
    """Status to present to a reader: OVERDUE for late sent invoices, stored status otherwise."""
    if is_overdue(invoice, now):
        return InvoiceStatus.OVERDUE
    return invoice.status


def days_until_due(invoice: Invoice, now: datetime) -> int:
    """Whole days until the due date; negative once overdue, 0 on the due date."""
    return days_between(as_date(now), invoice.due_date)
