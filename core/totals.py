"""
Invoice totals in exact integer arithmetic.

Rounding rule: tax is rounded half-up to the minor currency unit.
    tax_cents = floor((subtotal_cents * tax_rate_bps + 5000) / 10000)
Subtotals are never negative, so half-up and half-away-from-zero agree.
"""

from dataclasses import dataclass
from typing import Iterable

from core.models import LineItemCreate

BPS_DENOMINATOR = 10000


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal_cents: int
    tax_rate_bps: int
    tax_cents: int
    total_cents: int


def compute_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """Tax on a subtotal, rounded half-up to the cent."""
    if subtotal_cents < 0:
        raise ValueError("subtotal_cents must not be negative")
    if tax_rate_bps < 0:
        raise ValueError("tax_rate_bps must not be negative")
    return (subtotal_cents * tax_rate_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def compute_totals(items: Iterable[LineItemCreate], tax_rate_bps: int) -> InvoiceTotals:
    """Subtotal, tax and total for a set of line items. total == subtotal + tax always."""
    subtotal = sum(item.line_total_cents for item in items)
    tax = compute_tax_cents(subtotal, tax_rate_bps)
    return InvoiceTotals(
        subtotal_cents=subtotal,
        tax_rate_bps=tax_rate_bps,
        tax_cents=tax,
        total_cents=subtotal + tax,
    )
