"""Core domain models."""

from core.models.client import Client
from core.models.product import Product, ProductCreate, StockAdjustment, StockMovement
from core.models.line_item import InvoiceLineItem, LineItemCreate
from core.models.payment import Payment, PaymentCreate
from core.models.invoice import (
    Invoice, InvoiceCreate, InvoiceDetail, InvoiceFilter, InvoiceStatus, PendingInvoice, PaymentReceipt,
    ALLOWED_TRANSITIONS, INTERNAL_TRANSITIONS, allowed_targets,
)

__all__ = [
    # Client
    "Client",
    # Product
    "Product", "ProductCreate", "StockAdjustment", "StockMovement",
    # LineItem
    "InvoiceLineItem", "LineItemCreate",
    # Payment
    "Payment", "PaymentCreate", "PaymentReceipt",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceDetail", "InvoiceFilter", "InvoiceStatus", "PendingInvoice",
    "ALLOWED_TRANSITIONS", "INTERNAL_TRANSITIONS", "allowed_targets",
]
