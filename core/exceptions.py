"""Typed exceptions for ledger failures.

Every error carries a machine-readable `code` and a `details` dict with
enough structure (field, current value, allowed values) for the caller to
render its own message. Business-rule errors are raised before any write.
"""

from typing import Any


class LedgerError(Exception):
    """Base class for invoice/payment/stock ledger errors."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str, **details: Any):
        self.details = details
        super().__init__(message)


class ValidationError(LedgerError):
    """Malformed input. The caller's fault; never retried."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None, **details: Any):
        super().__init__(message, errors=errors or [], **details)

    @property
    def errors(self) -> list[dict[str, Any]]:
        return self.details["errors"]


class NotFound(LedgerError):
    """Entity absent, or present but owned by another tenant (indistinguishable by design of RLS)."""

    code = "NOT_FOUND"
    entity = "entity"

    def __init__(self, entity_id: Any):
        self.entity_id = entity_id
        super().__init__(f"{self.entity.capitalize()} {entity_id} not found", entity=self.entity, id=str(entity_id))


class ClientNotFound(NotFound):
    entity = "client"


class ProductNotFound(NotFound):
    entity = "product"


class InvoiceNotFound(NotFound):
    entity = "invoice"


class InvalidTransition(LedgerError):
    """Requested status change is not an edge of the invoice state machine."""

    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current: str, requested: str, allowed: list[str]):
        self.current = current
        self.requested = requested
        self.allowed = allowed
        super().__init__(
            f"Cannot transition invoice from '{current}' to '{requested}'",
            current=current,
            requested=requested,
            allowed=allowed,
        )


class InvalidInvoiceState(LedgerError):
    """Operation not permitted for the invoice's current status (e.g. paying a draft)."""

    code = "INVALID_INVOICE_STATE"

    def __init__(self, invoice_id: Any, status: str, operation: str, allowed: list[str]):
        super().__init__(
            f"Cannot {operation} invoice {invoice_id} in status '{status}'",
            invoice_id=str(invoice_id),
            status=status,
            operation=operation,
            allowed=allowed,
        )


class InsufficientStock(LedgerError):
    """Applying a stock delta would drive a product's stock below zero."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: Any, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Product {product_id} has {available} in stock, {requested} requested",
            product_id=str(product_id),
            requested=requested,
            available=available,
        )


class OverpaymentError(LedgerError):
    """Payment amount exceeds the invoice's remaining balance."""

    code = "OVERPAYMENT"

    def __init__(self, invoice_id: Any, amount_cents: int, balance_cents: int):
        self.amount_cents = amount_cents
        self.balance_cents = balance_cents
        super().__init__(
            f"Payment of {amount_cents} exceeds remaining balance {balance_cents} on invoice {invoice_id}",
            invoice_id=str(invoice_id),
            amount_cents=amount_cents,
            balance_cents=balance_cents,
        )


class InvoiceHasPayments(LedgerError):
    """Invoice cannot be cancelled because payments were recorded against it."""

    code = "INVOICE_HAS_PAYMENTS"

    def __init__(self, invoice_id: Any, payment_count: int):
        super().__init__(
            f"Invoice {invoice_id} has {payment_count} recorded payment(s) and cannot be cancelled",
            invoice_id=str(invoice_id),
            payment_count=payment_count,
        )


class ConcurrencyConflict(LedgerError):
    """Transaction lost a serialization race. Safe to retry the same request."""

    code = "CONCURRENCY_CONFLICT"


class StorageUnavailable(LedgerError):
    """Database unreachable or pool exhausted. Fatal for the request; not retried."""

    code = "SERVICE_UNAVAILABLE"
