"""
Handlers that warn when sales or corrections leave products at or below
their minimum stock.
"""

import logging
from typing import Callable

from core.events import InvoiceSent, StockAdjusted

logger = logging.getLogger(__name__)


def handle_invoice_sent(catalog_service) -> Callable:
    """
    Factory that returns an InvoiceSent handler.

    Args:
        catalog_service: CatalogService instance

    Returns:
        Handler callable that logs low-stock warnings for the products sold
    """

    def handler(event: InvoiceSent):
        product_ids = sorted({item.product_id for item in event.items if item.product_id}, key=str)
        if not product_ids:
            return

        for product in catalog_service.list_low_stock(product_ids):
            logger.warning(
                "Product %s (%s) is low on stock after invoice %s: %d left, minimum %d",
                product.name, product.id, event.invoice.number, product.stock, product.min_stock,
            )

    return handler


def handle_stock_adjusted() -> Callable:
    """Factory that returns a StockAdjusted handler logging low-stock warnings."""

    def handler(event: StockAdjusted):
        product = event.product
        if product.is_active and product.is_low_stock:
            logger.warning(
                "Product %s (%s) is low on stock after manual adjustment: %d left, minimum %d",
                product.name, product.id, product.stock, product.min_stock,
            )

    return handler
