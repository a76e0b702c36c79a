"""
In-memory stand-ins for PostgresClient and LedgerStore.

InMemoryLedgerStore mirrors every LedgerStore method over plain dicts, scoped
by the tenant in the current AuthContext. FakePostgres gives the services the
same transaction surface as PostgresClient: each transaction snapshots the
store and restores it when the block raises, so rollback behaviour is real.
Unique constraints raise the same ledger error as a translated psycopg2
UniqueViolation on that constraint.
"""

import copy
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterable
from uuid import UUID, uuid4

from clients.postgres_client import unique_violation_error
from core.exceptions import ConcurrencyConflict
from core.models import Invoice, InvoiceStatus, Product
from utils.tenant_context import AuthContext, get_current_tenant_id
from utils.timezone import now_utc


# =============================================================================
# TENANT CONSTANTS
# =============================================================================

# Primary tenant - use for single-tenant tests
TENANT_A_ID = UUID("00000000-0000-0000-0000-00000000000a")
ACTOR_A_ID = UUID("00000000-0000-0000-0000-0000000000a1")

# Secondary tenant - use for isolation tests
TENANT_B_ID = UUID("00000000-0000-0000-0000-00000000000b")
ACTOR_B_ID = UUID("00000000-0000-0000-0000-0000000000b1")

FINANCE_A = AuthContext(tenant_id=TENANT_A_ID, actor_id=ACTOR_A_ID, role="finance")
FINANCE_B = AuthContext(tenant_id=TENANT_B_ID, actor_id=ACTOR_B_ID, role="finance")


def auth_headers(ctx: AuthContext) -> dict[str, str]:
    """Identity headers the upstream gateway would attach for `ctx`."""
    return {
        "X-Tenant-ID": str(ctx.tenant_id),
        "X-Actor-ID": str(ctx.actor_id),
        "X-Actor-Role": ctx.role,
    }


class FakeTransaction:
    """Records statements sent through it (the audit logger writes raw SQL)."""

    def __init__(self, postgres: "FakePostgres"):
        self.postgres = postgres

    def execute(self, query: str, params=None) -> list[dict[str, Any]]:
        self.postgres.statements.append((" ".join(query.split()), params))
        return []

    def execute_single(self, query: str, params=None) -> dict[str, Any] | None:
        self.execute(query, params)
        return None

    def execute_scalar(self, query: str, params=None) -> Any:
        self.execute(query, params)
        return None


class FakePostgres:
    """Transaction boundary over an InMemoryLedgerStore."""

    def __init__(self, store: "InMemoryLedgerStore"):
        self.store = store
        self.statements: list[tuple[str, Any]] = []
        self.commits = 0
        self.rollbacks = 0
        self.attempts = 0

    @contextmanager
    def transaction(self):
        snapshot = self.store.snapshot()
        statement_count = len(self.statements)
        try:
            yield FakeTransaction(self)
        except BaseException:
            self.store.restore(snapshot)
            del self.statements[statement_count:]
            self.rollbacks += 1
            raise
        self.commits += 1

    def run_in_transaction(self, work, attempts: int = 3):
        for attempt in range(1, attempts + 1):
            self.attempts += 1
            try:
                with self.transaction() as tx:
                    return work(tx)
            except ConcurrencyConflict:
                if attempt == attempts:
                    raise
        raise AssertionError("unreachable")

    def audit_entries(self) -> list[tuple[str, Any]]:
        return [s for s in self.statements if s[0].startswith("INSERT INTO audit_log")]


class InMemoryLedgerStore:
    """Dict-backed LedgerStore with the same method signatures."""

    _INVOICE_UPDATABLE_COLUMNS = {
        "status", "paid_date", "stock_applied", "sent_at", "cancelled_at", "updated_at",
    }

    def __init__(self):
        self.tenant_settings: dict[UUID, dict[str, Any]] = {}
        self.sequences: dict[UUID, int] = {}
        self.clients: dict[UUID, dict[str, Any]] = {}
        self.products: dict[UUID, dict[str, Any]] = {}
        self.movements: list[dict[str, Any]] = []
        self.invoices: dict[UUID, dict[str, Any]] = {}
        self.line_items: list[dict[str, Any]] = []
        self.payments: list[dict[str, Any]] = []

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self.__dict__)

    def restore(self, snapshot: dict[str, Any]) -> None:
        self.__dict__.update(copy.deepcopy(snapshot))

    @staticmethod
    def _mine(row: dict[str, Any] | None) -> dict[str, Any] | None:
        if row is None or row["tenant_id"] != get_current_tenant_id():
            return None
        return dict(row)

    # Settings & numbering

    def get_tenant_settings(self, tx) -> dict[str, Any] | None:
        settings = self.tenant_settings.get(get_current_tenant_id())
        return dict(settings) if settings else None

    def increment_invoice_sequence(self, tx) -> int:
        tenant_id = get_current_tenant_id()
        self.sequences[tenant_id] = self.sequences.get(tenant_id, 0) + 1
        return self.sequences[tenant_id]

    def current_invoice_sequence(self, tx) -> int:
        return self.sequences.get(get_current_tenant_id(), 0)

    # Clients

    def get_client(self, tx, client_id: UUID) -> dict[str, Any] | None:
        return self._mine(self.clients.get(client_id))

    def insert_client(self, tx, row: dict[str, Any]) -> dict[str, Any]:
        self.clients[row["id"]] = dict(row)
        return dict(row)

    # Products & stock

    def get_product(self, tx, product_id: UUID) -> dict[str, Any] | None:
        return self._mine(self.products.get(product_id))

    def lock_products(self, tx, product_ids: Iterable[UUID]) -> dict[UUID, dict[str, Any]]:
        rows = {}
        for product_id in sorted(set(product_ids), key=str):
            row = self._mine(self.products.get(product_id))
            if row is not None:
                rows[product_id] = row
        return rows

    def insert_product(self, tx, row: dict[str, Any]) -> dict[str, Any]:
        if row.get("sku") is not None and any(
            p["tenant_id"] == row["tenant_id"] and p["sku"] == row["sku"]
            for p in self.products.values()
        ):
            raise unique_violation_error("uq_products_tenant_sku")
        self.products[row["id"]] = dict(row)
        return dict(row)

    def set_product_stock(self, tx, product_id: UUID, stock: int, updated_at) -> dict[str, Any]:
        if stock < 0:
            raise AssertionError("products.stock check constraint violated")
        row = self.products[product_id]
        row.update(stock=stock, updated_at=updated_at)
        return dict(row)

    def insert_stock_movement(self, tx, row: dict[str, Any]) -> dict[str, Any]:
        if row["invoice_id"] is not None and any(
            m["invoice_id"] == row["invoice_id"] and m["product_id"] == row["product_id"]
            for m in self.movements
        ):
            raise unique_violation_error("uq_stock_movements_invoice_product")
        self.movements.append(dict(row))
        return dict(row)

    def list_stock_movements(self, tx, product_id: UUID) -> list[dict[str, Any]]:
        tenant_id = get_current_tenant_id()
        return [
            dict(m) for m in self.movements
            if m["product_id"] == product_id and m["tenant_id"] == tenant_id
        ]

    def list_low_stock(self, tx, product_ids: Iterable[UUID] | None = None) -> list[dict[str, Any]]:
        wanted = set(product_ids) if product_ids is not None else None
        rows = [
            dict(p) for p in self.products.values()
            if p["tenant_id"] == get_current_tenant_id()
            and p["is_active"]
            and p["stock"] <= p["min_stock"]
            and (wanted is None or p["id"] in wanted)
        ]
        return sorted(rows, key=lambda p: (p["stock"] - p["min_stock"], p["name"]))

    def search_products(self, tx, term: str, limit: int) -> list[dict[str, Any]]:
        term = term.lower()
        rows = [
            dict(p) for p in self.products.values()
            if p["tenant_id"] == get_current_tenant_id()
            and p["is_active"]
            and (term in p["name"].lower() or term in (p["sku"] or "").lower())
        ]
        return sorted(rows, key=lambda p: p["name"])[:limit]

    # Invoices

    def insert_invoice(self, tx, row: dict[str, Any]) -> dict[str, Any]:
        if any(
            i["tenant_id"] == row["tenant_id"] and i["number"] == row["number"]
            for i in self.invoices.values()
        ):
            raise unique_violation_error("uq_invoices_tenant_number")
        stored = {
            **row,
            "stock_applied": False,
            "paid_date": None,
            "sent_at": None,
            "cancelled_at": None,
        }
        self.invoices[row["id"]] = stored
        return dict(stored)

    def insert_line_items(self, tx, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self.line_items.extend(dict(r) for r in rows)
        return [dict(r) for r in rows]

    def get_invoice(self, tx, invoice_id: UUID, for_update: bool = False) -> dict[str, Any] | None:
        return self._mine(self.invoices.get(invoice_id))

    def get_invoice_by_number(self, tx, number: str) -> dict[str, Any] | None:
        for row in self.invoices.values():
            if row["number"] == number and row["tenant_id"] == get_current_tenant_id():
                return dict(row)
        return None

    def update_invoice(self, tx, invoice_id: UUID, changes: dict[str, Any]) -> dict[str, Any]:
        invalid = set(changes) - self._INVOICE_UPDATABLE_COLUMNS
        if invalid:
            raise ValueError(f"Columns not updatable on invoices: {', '.join(sorted(invalid))}")
        row = self.invoices[invoice_id]
        row.update(changes)
        return dict(row)

    def list_line_items(self, tx, invoice_id: UUID) -> list[dict[str, Any]]:
        rows = [
            dict(li) for li in self.line_items
            if li["invoice_id"] == invoice_id and li["tenant_id"] == get_current_tenant_id()
        ]
        return sorted(rows, key=lambda li: li["position"])

    def list_invoices(
        self,
        tx,
        statuses: list[str] | None = None,
        client_id: UUID | None = None,
        issued_from: date | None = None,
        issued_to: date | None = None,
        due_from: date | None = None,
        due_to: date | None = None,
        due_before: date | None = None,
        order_by_due: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        def matches(i: dict[str, Any]) -> bool:
            return (
                i["tenant_id"] == get_current_tenant_id()
                and (not statuses or i["status"] in statuses)
                and (client_id is None or i["client_id"] == client_id)
                and (issued_from is None or i["issue_date"] >= issued_from)
                and (issued_to is None or i["issue_date"] <= issued_to)
                and (due_from is None or i["due_date"] >= due_from)
                and (due_to is None or i["due_date"] <= due_to)
                and (due_before is None or i["due_date"] < due_before)
            )

        rows = [dict(i) for i in self.invoices.values() if matches(i)]
        if order_by_due:
            rows.sort(key=lambda i: (i["due_date"], i["number"]))
        else:
            rows.sort(key=lambda i: (i["issue_date"], i["number"]), reverse=True)
        return rows[offset:offset + limit]

    # Payments

    def list_payments(self, tx, invoice_id: UUID) -> list[dict[str, Any]]:
        return [
            dict(p) for p in self.payments
            if p["invoice_id"] == invoice_id and p["tenant_id"] == get_current_tenant_id()
        ]

    def payment_totals(self, tx, invoice_ids: Iterable[UUID]) -> dict[UUID, int]:
        wanted = set(invoice_ids)
        totals: dict[UUID, int] = {}
        for p in self.payments:
            if p["invoice_id"] in wanted and p["tenant_id"] == get_current_tenant_id():
                totals[p["invoice_id"]] = totals.get(p["invoice_id"], 0) + p["amount_cents"]
        return totals

    def insert_payment(self, tx, row: dict[str, Any]) -> dict[str, Any]:
        self.payments.append(dict(row))
        return dict(row)


# =============================================================================
# SEED HELPERS (write straight to the store, bypassing services)
# =============================================================================


def seed_client(store: InMemoryLedgerStore, tenant_id: UUID, name: str = "Acme Ltda") -> UUID:
    client_id = uuid4()
    store.clients[client_id] = {
        "id": client_id,
        "tenant_id": tenant_id,
        "name": name,
        "email": None,
        "tax_id": None,
        "created_at": now_utc(),
    }
    return client_id


def seed_product(
    store: InMemoryLedgerStore,
    tenant_id: UUID,
    name: str = "Widget",
    stock: int = 10,
    min_stock: int = 0,
    sku: str | None = None,
    sale_price_cents: int = 1000,
) -> UUID:
    product_id = uuid4()
    now = now_utc()
    store.products[product_id] = {
        "id": product_id,
        "tenant_id": tenant_id,
        "sku": sku,
        "name": name,
        "description": None,
        "stock": stock,
        "min_stock": min_stock,
        "unit": "unit",
        "cost_price_cents": 0,
        "sale_price_cents": sale_price_cents,
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    return product_id


# =============================================================================
# MODEL BUILDERS (no store involved)
# =============================================================================


def make_invoice(**overrides) -> Invoice:
    now = now_utc()
    fields = {
        "id": uuid4(), "tenant_id": uuid4(), "client_id": uuid4(),
        "number": "FAC-0001", "status": InvoiceStatus.SENT,
        "issue_date": now.date(), "due_date": now.date(),
        "subtotal_cents": 10000, "tax_rate_bps": 1900, "tax_cents": 1900, "total_cents": 11900,
        "created_at": now, "updated_at": now,
    }
    fields.update(overrides)
    return Invoice(**fields)


def make_product(**overrides) -> Product:
    now = now_utc()
    fields = {
        "id": uuid4(), "tenant_id": uuid4(), "sku": "W-1", "name": "Widget",
        "description": None, "stock": 10, "min_stock": 2, "unit": "unit",
        "cost_price_cents": 500, "sale_price_cents": 1000, "is_active": True,
        "created_at": now, "updated_at": now,
    }
    fields.update(overrides)
    return Product(**fields)
