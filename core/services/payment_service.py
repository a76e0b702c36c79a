"""
Payment ledger.

Payments are appended against SENT invoices under the invoice row lock, so
concurrent payments on the same invoice are serialized and their sum can
never exceed the invoice total. The payment that brings the balance to zero
marks the invoice PAID in the same transaction.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import InvoicePaid, PaymentRecorded
from core.exceptions import InvalidInvoiceState, InvoiceNotFound, OverpaymentError
from core.models import Invoice, InvoiceStatus, Payment, PaymentCreate, PaymentReceipt
from core.services.invoice_service import InvoiceService
from core.store import LedgerStore
from core.validation import parse
from utils.tenant_context import get_current_context
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class PaymentLedger:
    """Records payments and keeps invoice balances consistent."""

    def __init__(
        self,
        postgres: PostgresClient,
        store: LedgerStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: LedgerConfig,
        invoices: InvoiceService,
    ):
        self.postgres = postgres
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.config = config
        self.invoices = invoices

    def record_payment(
        self,
        invoice_id: UUID,
        amount_cents: int,
        method: str | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> PaymentReceipt:
        """
        Record a (partial) payment against a SENT invoice.

        Args:
            invoice_id: Invoice being paid
            amount_cents: Positive amount in cents
            method: Payment method (defaults to the configured method, "cash")
            reference: External reference (bank transfer id, receipt number)
            notes: Optional free text

        Returns:
            Receipt with the payment, the balance left, and the invoice as it
            stands after the payment (PAID when the balance reached zero)

        Raises:
            ValidationError: amount_cents is not positive
            InvoiceNotFound: Invoice absent in the current tenant
            InvalidInvoiceState: Invoice is DRAFT or CANCELLED
            OverpaymentError: Amount exceeds the remaining balance (always, once PAID)
        """
        data = parse(PaymentCreate, {
            "amount_cents": amount_cents,
            "method": method,
            "reference": reference,
            "notes": notes,
        })
        ctx = get_current_context()

        def work(tx: Transaction) -> PaymentReceipt:
            row = self.store.get_invoice(tx, invoice_id, for_update=True)
            if row is None:
                raise InvoiceNotFound(invoice_id)
            invoice = Invoice.model_validate(row)

            balance = invoice.total_cents - self._paid_cents(tx, invoice.id)

            # A settled invoice has nothing left to collect
            if invoice.status == InvoiceStatus.PAID:
                raise OverpaymentError(invoice.id, data.amount_cents, balance)
            if invoice.status != InvoiceStatus.SENT:
                raise InvalidInvoiceState(
                    invoice.id, invoice.status.value, "record a payment on", [InvoiceStatus.SENT.value]
                )
            if data.amount_cents > balance:
                raise OverpaymentError(invoice.id, data.amount_cents, balance)

            payment_row = self.store.insert_payment(tx, {
                "id": uuid4(),
                "tenant_id": ctx.tenant_id,
                "invoice_id": invoice.id,
                "amount_cents": data.amount_cents,
                "method": data.method or self.config.default_payment_method,
                "reference": data.reference,
                "notes": data.notes,
                "recorded_by": ctx.actor_id,
                "recorded_at": now_utc(),
            })
            payment = Payment.model_validate(payment_row)

            self.audit.log_change(
                tx,
                entity_type="payment",
                entity_id=payment.id,
                action=AuditAction.CREATE,
                changes={"created": payment.model_dump(mode="json")}
            )

            remaining = balance - payment.amount_cents
            if remaining == 0:
                invoice = self.invoices.mark_paid(tx, invoice)

            return PaymentReceipt(payment=payment, remaining_balance_cents=remaining, invoice=invoice)

        receipt = self.postgres.run_in_transaction(work, attempts=self.config.max_conflict_retries)

        logger.info(
            "Recorded payment %s of %d on invoice %s, %d remaining",
            receipt.payment.id, receipt.payment.amount_cents, receipt.invoice.number, receipt.remaining_balance_cents,
        )
        self.event_bus.publish(PaymentRecorded.create(receipt.payment, receipt.remaining_balance_cents))
        if receipt.invoice.status == InvoiceStatus.PAID:
            self.event_bus.publish(InvoicePaid.create(receipt.invoice))

        return receipt

    def _paid_cents(self, tx: Transaction, invoice_id: UUID) -> int:
        return self.store.payment_totals(tx, [invoice_id]).get(invoice_id, 0)

    def list_for_invoice(self, invoice_id: UUID) -> list[Payment]:
        """Payments on an invoice, oldest first."""
        with self.postgres.transaction() as tx:
            if self.store.get_invoice(tx, invoice_id) is None:
                raise InvoiceNotFound(invoice_id)
            rows = self.store.list_payments(tx, invoice_id)
        return [Payment.model_validate(row) for row in rows]

    def balance(self, invoice_id: UUID) -> int:
        """Outstanding balance in cents (total minus payments)."""
        with self.postgres.transaction() as tx:
            row = self.store.get_invoice(tx, invoice_id)
            if row is None:
                raise InvoiceNotFound(invoice_id)
            return row["total_cents"] - self._paid_cents(tx, invoice_id)
