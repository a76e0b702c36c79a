"""
Catalog stock ledger.

The only code path that changes products.stock. Both the sales flow (invoice
sent) and manual corrections go through apply_delta, which locks the product
row, refuses to go below zero, and appends a stock movement.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import StockAdjusted
from core.exceptions import InsufficientStock, ProductNotFound
from core.models import Product, StockAdjustment, StockMovement
from core.store import LedgerStore
from core.validation import parse
from utils.tenant_context import get_current_context
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class StockLedger:
    """Atomic, non-negative stock mutations."""

    def __init__(
        self,
        postgres: PostgresClient,
        store: LedgerStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: LedgerConfig,
    ):
        self.postgres = postgres
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.config = config

    def check_available(self, tx: Transaction, demands: dict[UUID, int]) -> None:
        """
        Lock every demanded product (in id order) and verify it can cover its demand.

        Runs before any decrement so a shortfall on one product leaves all
        of them untouched.

        Raises:
            ProductNotFound: Product absent from the tenant's catalog
            InsufficientStock: Demand exceeds stock on hand
        """
        rows = self.store.lock_products(tx, demands.keys())
        for product_id in sorted(demands, key=str):
            row = rows.get(product_id)
            if row is None:
                raise ProductNotFound(product_id)
            if row["stock"] < demands[product_id]:
                raise InsufficientStock(product_id, demands[product_id], row["stock"])

    def apply_delta(
        self,
        tx: Transaction,
        product_id: UUID,
        delta: int,
        invoice_id: UUID | None = None,
        reason: str | None = None,
    ) -> int:
        """
        Apply a stock delta inside the caller's transaction.

        Returns:
            The product's new stock level

        Raises:
            ProductNotFound: Product absent from the tenant's catalog
            InsufficientStock: New stock would be negative
        """
        if delta == 0:
            raise ValueError("Stock delta must not be zero")

        row = self.store.lock_products(tx, [product_id]).get(product_id)
        if row is None:
            raise ProductNotFound(product_id)

        current = row["stock"]
        new_stock = current + delta
        if new_stock < 0:
            raise InsufficientStock(product_id, -delta, current)

        now = now_utc()
        self.store.set_product_stock(tx, product_id, new_stock, now)
        self.store.insert_stock_movement(tx, {
            "id": uuid4(),
            "tenant_id": row["tenant_id"],
            "product_id": product_id,
            "invoice_id": invoice_id,
            "delta": delta,
            "resulting_stock": new_stock,
            "reason": reason,
            "actor_id": get_current_context().actor_id,
            "created_at": now,
        })

        self.audit.log_change(
            tx,
            entity_type="product",
            entity_id=product_id,
            action=AuditAction.STOCK,
            changes={
                "stock": {"old": current, "new": new_stock},
                "invoice_id": str(invoice_id) if invoice_id else None,
                "reason": reason,
            }
        )

        return new_stock

    def adjust(self, product_id: UUID, data: StockAdjustment | dict) -> Product:
        """
        Manual out-of-band correction in its own transaction.

        Has no invoice association, so the once-per-invoice guard does not
        apply; the non-negative rule does.
        """
        data = parse(StockAdjustment, data)

        def work(tx: Transaction) -> Product:
            self.apply_delta(tx, product_id, data.delta, reason=data.reason or "manual adjustment")
            return Product.model_validate(self.store.get_product(tx, product_id))

        product = self.postgres.run_in_transaction(work, attempts=self.config.max_conflict_retries)

        logger.info("Stock of product %s adjusted by %d to %d", product_id, data.delta, product.stock)
        self.event_bus.publish(StockAdjusted.create(product=product, delta=data.delta, reason=data.reason))

        return product

    def list_movements(self, product_id: UUID) -> list[StockMovement]:
        with self.postgres.transaction() as tx:
            rows = self.store.list_stock_movements(tx, product_id)
        return [StockMovement.model_validate(row) for row in rows]
