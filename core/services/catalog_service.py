"""
Catalog service for products.

Product lookup for line items, low-stock reporting and search. Stock levels
are never written here; see StockLedger.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction
from core.exceptions import ProductNotFound
from core.models import Product, ProductCreate
from core.store import LedgerStore
from core.validation import parse
from utils.tenant_context import get_current_tenant_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class CatalogService:
    """Service for catalog product operations."""

    def __init__(self, postgres: PostgresClient, store: LedgerStore, audit: AuditLogger):
        self.postgres = postgres
        self.store = store
        self.audit = audit

    def create(self, data: ProductCreate | dict) -> Product:
        """Create a product with its opening stock."""
        data = parse(ProductCreate, data)
        now = now_utc()

        with self.postgres.transaction() as tx:
            row = self.store.insert_product(tx, {
                "id": uuid4(),
                "tenant_id": get_current_tenant_id(),
                **data.model_dump(),
                "created_at": now,
                "updated_at": now,
            })
            product = Product.model_validate(row)

            self.audit.log_change(
                tx,
                entity_type="product",
                entity_id=product.id,
                action=AuditAction.CREATE,
                changes={"created": data.model_dump(mode="json", exclude_none=True)}
            )

        return product

    def resolve_product(self, tx: Transaction, product_id: UUID) -> Product:
        """
        Resolve a product within the current tenant.

        Raises:
            ProductNotFound: Product absent or owned by another tenant
        """
        row = self.store.get_product(tx, product_id)
        if row is None:
            raise ProductNotFound(product_id)
        return Product.model_validate(row)

    def get_by_id(self, product_id: UUID) -> Product | None:
        with self.postgres.transaction() as tx:
            row = self.store.get_product(tx, product_id)
        return Product.model_validate(row) if row else None

    def list_low_stock(self, product_ids: list[UUID] | None = None) -> list[Product]:
        """
        Active products with stock at or below their minimum.

        Args:
            product_ids: Restrict to these products (None = whole catalog)
        """
        with self.postgres.transaction() as tx:
            rows = self.store.list_low_stock(tx, product_ids)
        return [Product.model_validate(row) for row in rows]

    def search(self, term: str, limit: int = 20) -> list[Product]:
        """Active products whose name or SKU contains `term` (case-insensitive)."""
        with self.postgres.transaction() as tx:
            rows = self.store.search_products(tx, term, limit)
        return [Product.model_validate(row) for row in rows]
