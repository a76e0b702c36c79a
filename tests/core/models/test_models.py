"""Tests for ledger domain models and the invoice transition table."""

from datetime import date
from uuid import uuid4

import pydantic
import pytest

from core.models import (
    ALLOWED_TRANSITIONS,
    Invoice,
    InvoiceCreate,
    InvoiceFilter,
    InvoiceStatus,
    LineItemCreate,
    PaymentCreate,
    StockAdjustment,
    allowed_targets,
)
from tests.fakes import make_invoice


class TestTransitionTable:
    """ALLOWED_TRANSITIONS is the only source of legal edges."""

    def test_draft_can_be_sent_or_cancelled(self):
        assert allowed_targets(InvoiceStatus.DRAFT) == {InvoiceStatus.SENT, InvoiceStatus.CANCELLED}

    def test_sent_can_only_be_cancelled_by_callers(self):
        assert allowed_targets(InvoiceStatus.SENT) == {InvoiceStatus.CANCELLED}

    def test_sent_to_paid_is_internal(self):
        assert InvoiceStatus.PAID in allowed_targets(InvoiceStatus.SENT, internal=True)

    @pytest.mark.parametrize("status", [InvoiceStatus.PAID, InvoiceStatus.CANCELLED, InvoiceStatus.OVERDUE])
    def test_no_edges_out_of_terminal_or_derived(self, status):
        assert allowed_targets(status) == frozenset()
        assert allowed_targets(status, internal=True) == frozenset()

    def test_nothing_can_request_overdue(self):
        for targets in ALLOWED_TRANSITIONS.values():
            assert InvoiceStatus.OVERDUE not in targets


class TestInvoiceCreate:
    """Creation payload validation."""

    def test_requires_at_least_one_item(self):
        with pytest.raises(pydantic.ValidationError):
            InvoiceCreate(client_id=uuid4(), due_date=date(2025, 2, 1), items=[])

    def test_due_before_issue_rejected(self):
        with pytest.raises(pydantic.ValidationError, match="due_date"):
            InvoiceCreate(
                client_id=uuid4(),
                issue_date=date(2025, 2, 1),
                due_date=date(2025, 1, 31),
                items=[{"quantity": 1, "unit_price_cents": 100}],
            )

    def test_due_on_issue_date_allowed(self):
        data = InvoiceCreate(
            client_id=uuid4(),
            issue_date=date(2025, 2, 1),
            due_date=date(2025, 2, 1),
            items=[{"quantity": 1, "unit_price_cents": 100}],
        )
        assert data.due_date == data.issue_date


class TestLineItemCreate:

    def test_zero_quantity_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            LineItemCreate(quantity=0, unit_price_cents=100)

    def test_negative_price_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            LineItemCreate(quantity=1, unit_price_cents=-1)

    def test_line_total(self):
        assert LineItemCreate(quantity=3, unit_price_cents=25_000).line_total_cents == 75_000


class TestPaymentCreate:

    @pytest.mark.parametrize("amount", [0, -500])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(pydantic.ValidationError):
            PaymentCreate(amount_cents=amount)

    def test_method_optional(self):
        assert PaymentCreate(amount_cents=1).method is None


class TestStockAdjustment:

    def test_zero_delta_rejected(self):
        with pytest.raises(pydantic.ValidationError, match="zero"):
            StockAdjustment(delta=0)


class TestInvoiceFilter:

    def test_reversed_range_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            InvoiceFilter(start_date=date(2025, 3, 1), end_date=date(2025, 2, 1))

    def test_accepts_status_string(self):
        assert InvoiceFilter(status="overdue").status == InvoiceStatus.OVERDUE


class TestInvoice:

    def test_money_is_integer_cents_only(self):
        dumped = make_invoice().model_dump()

        money = {k: v for k, v in dumped.items() if k.endswith("_cents")}
        assert set(money) == {"subtotal_cents", "tax_cents", "total_cents"}
        assert all(type(v) is int for v in money.values())
        assert not [name for name, attr in vars(Invoice).items() if isinstance(attr, property)]
