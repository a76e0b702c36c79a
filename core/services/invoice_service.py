"""
Invoice service: creation, lifecycle transitions and reads.

Every mutation runs in one transaction that holds the invoice row lock (or,
for creation, the tenant's sequence row lock). Status edges come from
ALLOWED_TRANSITIONS; stock leaves the catalog exactly once, when a DRAFT is
sent. Events are published only after the transaction commits.
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core import overdue
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import InvoiceCancelled, InvoiceCreated, InvoicePaid, InvoiceSent
from core.exceptions import InvalidTransition, InvoiceHasPayments, InvoiceNotFound, ValidationError
from core.models import (
    Invoice,
    InvoiceCreate,
    InvoiceDetail,
    InvoiceFilter,
    InvoiceLineItem,
    InvoiceStatus,
    Payment,
    PendingInvoice,
    allowed_targets,
)
from core.services.catalog_service import CatalogService
from core.services.client_service import ClientDirectory
from core.services.sequence_service import InvoiceNumberSequence
from core.services.stock_ledger import StockLedger
from core.store import LedgerStore
from core.totals import compute_totals
from core.validation import parse
from utils.tenant_context import get_current_context
from utils.timezone import as_date, now_utc, window_end

logger = logging.getLogger(__name__)


def _status_values(statuses) -> list[str]:
    return sorted(s.value for s in statuses)


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        store: LedgerStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: LedgerConfig,
        sequence: InvoiceNumberSequence,
        clients: ClientDirectory,
        catalog: CatalogService,
        stock: StockLedger,
    ):
        self.postgres = postgres
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.config = config
        self.sequence = sequence
        self.clients = clients
        self.catalog = catalog
        self.stock = stock

    def _tax_rate_bps(self, tx: Transaction) -> int:
        settings = self.store.get_tenant_settings(tx)
        if settings and settings.get("tax_rate_bps") is not None:
            return settings["tax_rate_bps"]
        return self.config.default_tax_rate_bps

    def _run(self, work):
        return self.postgres.run_in_transaction(work, attempts=self.config.max_conflict_retries)

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create(
        self,
        client_id: UUID,
        due_date: date,
        items: list[dict[str, Any]],
        notes: str | None = None,
        issue_date: date | None = None,
    ) -> Invoice:
        """
        Create a DRAFT invoice with its line items.

        Args:
            client_id: Billed client, must exist in the current tenant
            due_date: Payment due date (not before the issue date)
            items: Line items (product_id, description, quantity, unit_price_cents)
            notes: Optional free text
            issue_date: Defaults to today (UTC)

        Returns:
            Created invoice in DRAFT status

        Raises:
            ValidationError: No items, bad quantity/price, due date before issue date
            ClientNotFound: Client does not resolve within the tenant
            ProductNotFound: A line item's product does not resolve within the tenant
        """
        data = parse(InvoiceCreate, {
            "client_id": client_id,
            "due_date": due_date,
            "items": items,
            "notes": notes,
            "issue_date": issue_date,
        })
        issue = data.issue_date or as_date(now_utc())
        if data.due_date < issue:
            raise ValidationError(
                "due_date must not be before issue_date",
                errors=[{"field": "due_date", "message": "before issue_date", "value": str(data.due_date)}],
            )

        ctx = get_current_context()

        def work(tx: Transaction) -> tuple[Invoice, list[InvoiceLineItem]]:
            self.clients.resolve_client(tx, data.client_id)
            for product_id in sorted({i.product_id for i in data.items if i.product_id}, key=str):
                self.catalog.resolve_product(tx, product_id)

            totals = compute_totals(data.items, self._tax_rate_bps(tx))
            number = self.sequence.next_number(tx)
            invoice_id = uuid4()
            now = now_utc()

            row = self.store.insert_invoice(tx, {
                "id": invoice_id,
                "tenant_id": ctx.tenant_id,
                "client_id": data.client_id,
                "number": number,
                "status": InvoiceStatus.DRAFT.value,
                "issue_date": issue,
                "due_date": data.due_date,
                "subtotal_cents": totals.subtotal_cents,
                "tax_rate_bps": totals.tax_rate_bps,
                "tax_cents": totals.tax_cents,
                "total_cents": totals.total_cents,
                "notes": data.notes,
                "created_by": ctx.actor_id,
                "created_at": now,
                "updated_at": now,
            })
            item_rows = self.store.insert_line_items(tx, [
                {
                    "id": uuid4(),
                    "tenant_id": ctx.tenant_id,
                    "invoice_id": invoice_id,
                    "product_id": item.product_id,
                    "description": item.description,
                    "quantity": item.quantity,
                    "unit_price_cents": item.unit_price_cents,
                    "line_total_cents": item.line_total_cents,
                    "position": position,
                    "created_at": now,
                }
                for position, item in enumerate(data.items)
            ])

            self.audit.log_change(
                tx,
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.CREATE,
                changes={
                    "created": {
                        "number": number,
                        "client_id": str(data.client_id),
                        "item_count": len(item_rows),
                        "subtotal_cents": totals.subtotal_cents,
                        "tax_rate_bps": totals.tax_rate_bps,
                        "total_cents": totals.total_cents,
                    }
                }
            )

            return Invoice.model_validate(row), [InvoiceLineItem.model_validate(r) for r in item_rows]

        invoice, _ = self._run(work)

        logger.info("Created invoice %s (%s) total=%d", invoice.number, invoice.id, invoice.total_cents)
        self.event_bus.publish(InvoiceCreated.create(invoice))

        return invoice

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def transition(self, invoice_id: UUID, target: InvoiceStatus | str) -> Invoice:
        """
        Move an invoice along one edge of the state machine.

        Only DRAFT->SENT, DRAFT->CANCELLED and SENT->CANCELLED may be requested.
        PAID is reached through payments; OVERDUE is never stored.

        Raises:
            InvoiceNotFound: Invoice absent in the current tenant
            InvalidTransition: Edge not allowed from the current status
            InvoiceHasPayments: Cancelling an invoice that has payments
            InsufficientStock: Sending would drive a product's stock negative
        """
        try:
            target = InvoiceStatus(target)
        except ValueError:
            raise ValidationError(
                f"Unknown invoice status '{target}'",
                errors=[{"field": "status", "message": "unknown status", "value": str(target)}],
            ) from None

        def work(tx: Transaction) -> tuple[Invoice, list[InvoiceLineItem] | None]:
            invoice = self._lock(tx, invoice_id)

            if target == InvoiceStatus.CANCELLED:
                payments = self.store.list_payments(tx, invoice.id)
                if payments:
                    raise InvoiceHasPayments(invoice.id, len(payments))

            allowed = allowed_targets(invoice.status)
            if target not in allowed:
                raise InvalidTransition(invoice.status.value, target.value, _status_values(allowed))

            if target == InvoiceStatus.SENT:
                return self._send_locked(tx, invoice)
            return self._cancel_locked(tx, invoice), None

        invoice, items = self._run(work)

        logger.info("Invoice %s is now %s", invoice.number, invoice.status.value)
        if target == InvoiceStatus.SENT:
            self.event_bus.publish(InvoiceSent.create(invoice, items))
            if invoice.status == InvoiceStatus.PAID:
                self.event_bus.publish(InvoicePaid.create(invoice))
        else:
            self.event_bus.publish(InvoiceCancelled.create(invoice))

        return invoice

    def send(self, invoice_id: UUID) -> Invoice:
        """Send a DRAFT invoice, deducting its products from stock."""
        return self.transition(invoice_id, InvoiceStatus.SENT)

    def cancel(self, invoice_id: UUID) -> Invoice:
        """Cancel a DRAFT, or a SENT invoice without payments. Stock is not restored."""
        return self.transition(invoice_id, InvoiceStatus.CANCELLED)

    def mark_paid(self, tx: Transaction, invoice: Invoice) -> Invoice:
        """
        SENT -> PAID inside the caller's transaction.

        Used by the payment ledger once the balance reaches zero; the caller
        already holds the invoice row lock and publishes events after commit.
        """
        allowed = allowed_targets(invoice.status, internal=True)
        if InvoiceStatus.PAID not in allowed:
            raise InvalidTransition(invoice.status.value, InvoiceStatus.PAID.value, _status_values(allowed))

        now = now_utc()
        return self._update(tx, invoice, {
            "status": InvoiceStatus.PAID.value,
            "paid_date": now,
            "updated_at": now,
        })

    def _lock(self, tx: Transaction, invoice_id: UUID) -> Invoice:
        row = self.store.get_invoice(tx, invoice_id, for_update=True)
        if row is None:
            raise InvoiceNotFound(invoice_id)
        return Invoice.model_validate(row)

    def _update(self, tx: Transaction, invoice: Invoice, changes: dict[str, Any]) -> Invoice:
        """Write a status change and audit the fields it touched."""
        updated = Invoice.model_validate(self.store.update_invoice(tx, invoice.id, changes))

        self.audit.log_change(
            tx,
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.TRANSITION,
            changes=compute_changes(invoice.model_dump(mode="json"), updated.model_dump(mode="json"))
        )

        return updated

    def _send_locked(self, tx: Transaction, invoice: Invoice) -> tuple[Invoice, list[InvoiceLineItem]]:
        items = [InvoiceLineItem.model_validate(r) for r in self.store.list_line_items(tx, invoice.id)]
        now = now_utc()
        changes: dict[str, Any] = {
            "status": InvoiceStatus.SENT.value,
            "sent_at": now,
            "updated_at": now,
        }

        if not invoice.stock_applied:
            demands: dict[UUID, int] = defaultdict(int)
            for item in items:
                if item.product_id is not None:
                    demands[item.product_id] += item.quantity

            # All demands are checked before the first decrement
            self.stock.check_available(tx, demands)
            for product_id in sorted(demands, key=str):
                self.stock.apply_delta(
                    tx,
                    product_id,
                    -demands[product_id],
                    invoice_id=invoice.id,
                    reason=f"invoice {invoice.number} sent",
                )
            changes["stock_applied"] = True
        else:
            logger.warning("Stock already applied for invoice %s, skipping decrement", invoice.number)

        sent = self._update(tx, invoice, changes)
        # Nothing to collect on a zero-total invoice
        if sent.total_cents == 0:
            sent = self.mark_paid(tx, sent)
        return sent, items

    def _cancel_locked(self, tx: Transaction, invoice: Invoice) -> Invoice:
        now = now_utc()
        return self._update(tx, invoice, {
            "status": InvoiceStatus.CANCELLED.value,
            "cancelled_at": now,
            "updated_at": now,
        })

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _detail(self, tx: Transaction, row: dict[str, Any], now: datetime) -> InvoiceDetail:
        invoice = Invoice.model_validate(row)
        items = [InvoiceLineItem.model_validate(r) for r in self.store.list_line_items(tx, invoice.id)]
        payments = [Payment.model_validate(r) for r in self.store.list_payments(tx, invoice.id)]
        paid = sum(p.amount_cents for p in payments)

        return InvoiceDetail(
            invoice=invoice,
            items=items,
            payments=payments,
            paid_cents=paid,
            balance_cents=invoice.total_cents - paid,
            display_status=overdue.display_status(invoice, now),
            is_overdue=overdue.is_overdue(invoice, now),
        )

    def get(self, invoice_id: UUID, now: datetime | None = None) -> InvoiceDetail:
        """
        Invoice with items, payments and balance.

        Raises:
            InvoiceNotFound: Invoice absent in the current tenant
        """
        with self.postgres.transaction() as tx:
            row = self.store.get_invoice(tx, invoice_id)
            if row is None:
                raise InvoiceNotFound(invoice_id)
            return self._detail(tx, row, now or now_utc())

    def get_by_number(self, number: str, now: datetime | None = None) -> InvoiceDetail:
        with self.postgres.transaction() as tx:
            row = self.store.get_invoice_by_number(tx, number)
            if row is None:
                raise InvoiceNotFound(number)
            return self._detail(tx, row, now or now_utc())

    def list_invoices(self, filters: InvoiceFilter | dict | None = None, now: datetime | None = None) -> list[Invoice]:
        """
        List invoices, newest first.

        A status filter of OVERDUE selects SENT invoices whose due date has
        passed; a status filter of SENT includes those too.
        """
        filters = parse(InvoiceFilter, filters or {})
        query: dict[str, Any] = {
            "client_id": filters.client_id,
            "issued_from": filters.start_date,
            "issued_to": filters.end_date,
            "limit": filters.limit,
            "offset": filters.offset,
        }

        if filters.status == InvoiceStatus.OVERDUE:
            query["statuses"] = [InvoiceStatus.SENT.value]
            query["due_before"] = as_date(now or now_utc())
        elif filters.status is not None:
            query["statuses"] = [filters.status.value]

        with self.postgres.transaction() as tx:
            rows = self.store.list_invoices(tx, **query)
        return [Invoice.model_validate(row) for row in rows]

    def list_overdue(self, now: datetime | None = None, limit: int | None = None) -> list[Invoice]:
        """SENT invoices past their due date, oldest due first."""
        with self.postgres.transaction() as tx:
            rows = self.store.list_invoices(
                tx,
                statuses=[InvoiceStatus.SENT.value],
                due_before=as_date(now or now_utc()),
                order_by_due=True,
                limit=limit or self.config.list_limit,
            )
        return [Invoice.model_validate(row) for row in rows]

    def list_due_soon(
        self,
        window_days: int | None = None,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> list[Invoice]:
        """SENT invoices due between today and today + window_days, inclusive."""
        days = self.config.due_soon_days if window_days is None else window_days
        if days < 0:
            raise ValidationError(
                "window_days must not be negative",
                errors=[{"field": "days", "message": "must be >= 0", "value": days}],
            )

        today = as_date(now or now_utc())
        with self.postgres.transaction() as tx:
            rows = self.store.list_invoices(
                tx,
                statuses=[InvoiceStatus.SENT.value],
                due_from=today,
                due_to=window_end(today, days),
                order_by_due=True,
                limit=limit or self.config.list_limit,
            )
        return [Invoice.model_validate(row) for row in rows]

    def list_pending(self, now: datetime | None = None, limit: int | None = None) -> list[PendingInvoice]:
        """SENT invoices awaiting payment, with collected amount and days to due date."""
        now = now or now_utc()
        with self.postgres.transaction() as tx:
            rows = self.store.list_invoices(
                tx,
                statuses=[InvoiceStatus.SENT.value],
                order_by_due=True,
                limit=limit or self.config.list_limit,
            )
            invoices = [Invoice.model_validate(row) for row in rows]
            paid = self.store.payment_totals(tx, [i.id for i in invoices])

        return [
            PendingInvoice(
                invoice=invoice,
                paid_cents=paid.get(invoice.id, 0),
                balance_cents=invoice.total_cents - paid.get(invoice.id, 0),
                days_until_due=overdue.days_until_due(invoice, now),
                is_overdue=overdue.is_overdue(invoice, now),
            )
            for invoice in invoices
        ]
