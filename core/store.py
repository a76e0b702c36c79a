"""
Tenant-scoped ledger store.

All SQL for the ledger lives here. Every method takes the open Transaction
as its first argument and never commits: callers decide the unit of work.
Queries filter on tenant_id explicitly in addition to RLS, so a missing
policy can never widen a result set.

Rows are returned as plain dicts; services validate them into models.
"""

import logging
from datetime import date
from typing import Any, Iterable
from uuid import UUID

from clients.postgres_client import Transaction
from utils.tenant_context import get_current_tenant_id

logger = logging.getLogger(__name__)

_INVOICE_UPDATABLE_COLUMNS = {
    "status", "paid_date", "stock_applied", "sent_at", "cancelled_at", "updated_at",
}


class LedgerStore:
    """SQL access for invoices, line items, payments, stock and numbering."""

    # -------------------------------------------------------------------------
    # Settings & numbering
    # -------------------------------------------------------------------------

    def get_tenant_settings(self, tx: Transaction) -> dict[str, Any] | None:
        return tx.execute_single(
            "SELECT tax_rate_bps, invoice_prefix FROM tenant_settings WHERE tenant_id = %s",
            (get_current_tenant_id(),)
        )

    def increment_invoice_sequence(self, tx: Transaction) -> int:
        """
        Atomically bump the tenant's counter and return the new value.

        The upsert takes the counter row lock and holds it until the caller's
        transaction ends, so concurrent creators are serialized and a rolled
        back creation does not consume its number.
        """
        return tx.execute_scalar(
            """
            INSERT INTO invoice_sequences (tenant_id, last_value)
            VALUES (%s, 1)
            ON CONFLICT (tenant_id)
            DO UPDATE SET last_value = invoice_sequences.last_value + 1
            RETURNING last_value
            """,
            (get_current_tenant_id(),)
        )

    def current_invoice_sequence(self, tx: Transaction) -> int:
        value = tx.execute_scalar(
            "SELECT last_value FROM invoice_sequences WHERE tenant_id = %s",
            (get_current_tenant_id(),)
        )
        return value or 0

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    def get_client(self, tx: Transaction, client_id: UUID) -> dict[str, Any] | None:
        return tx.execute_single(
            "SELECT * FROM clients WHERE id = %s AND tenant_id = %s",
            (client_id, get_current_tenant_id())
        )

    def insert_client(self, tx: Transaction, row: dict[str, Any]) -> dict[str, Any]:
        return tx.execute(
            """
            INSERT INTO clients (id, tenant_id, name, email, tax_id, created_at)
            VALUES (%(id)s, %(tenant_id)s, %(name)s, %(email)s, %(tax_id)s, %(created_at)s)
            RETURNING *
            """,
            row
        )[0]

    # -------------------------------------------------------------------------
    # Products & stock
    # -------------------------------------------------------------------------

    def get_product(self, tx: Transaction, product_id: UUID) -> dict[str, Any] | None:
        return tx.execute_single(
            "SELECT * FROM products WHERE id = %s AND tenant_id = %s",
            (product_id, get_current_tenant_id())
        )

    def lock_products(self, tx: Transaction, product_ids: Iterable[UUID]) -> dict[UUID, dict[str, Any]]:
        """
        Lock product rows FOR UPDATE in ascending id order.

        A fixed lock order means two invoices touching the same products
        cannot deadlock against each other.
        """
        ids = sorted(set(product_ids), key=str)
        if not ids:
            return {}

        rows = tx.execute(
            """
            SELECT * FROM products
            WHERE tenant_id = %s AND id = ANY(%s::uuid[])
            ORDER BY id
            FOR UPDATE
            """,
            (get_current_tenant_id(), ids)
        )
        return {row["id"]: row for row in rows}

    def insert_product(self, tx: Transaction, row: dict[str, Any]) -> dict[str, Any]:
        return tx.execute(
            """
            INSERT INTO products (
                id, tenant_id, sku, name, description,
                stock, min_stock, unit, cost_price_cents, sale_price_cents,
                is_active, created_at, updated_at
            ) VALUES (
                %(id)s, %(tenant_id)s, %(sku)s, %(name)s, %(description)s,
                %(stock)s, %(min_stock)s, %(unit)s, %(cost_price_cents)s, %(sale_price_cents)s,
                %(is_active)s, %(created_at)s, %(updated_at)s
            )
            RETURNING *
            """,
            row
        )[0]

    def set_product_stock(self, tx: Transaction, product_id: UUID, stock: int, updated_at) -> dict[str, Any]:
        return tx.execute(
            """
            UPDATE products
            SET stock = %s, updated_at = %s
            WHERE id = %s AND tenant_id = %s
            RETURNING *
            """,
            (stock, updated_at, product_id, get_current_tenant_id())
        )[0]

    def insert_stock_movement(self, tx: Transaction, row: dict[str, Any]) -> dict[str, Any]:
        return tx.execute(
            """
            INSERT INTO stock_movements (
                id, tenant_id, product_id, invoice_id, delta,
                resulting_stock, reason, actor_id, created_at
            ) VALUES (
                %(id)s, %(tenant_id)s, %(product_id)s, %(invoice_id)s, %(delta)s,
                %(resulting_stock)s, %(reason)s, %(actor_id)s, %(created_at)s
            )
            RETURNING *
            """,
            row
        )[0]

    def list_stock_movements(self, tx: Transaction, product_id: UUID) -> list[dict[str, Any]]:
        return tx.execute(
            """
            SELECT * FROM stock_movements
            WHERE product_id = %s AND tenant_id = %s
            ORDER BY created_at ASC
            """,
            (product_id, get_current_tenant_id())
        )

    def list_low_stock(self, tx: Transaction, product_ids: Iterable[UUID] | None = None) -> list[dict[str, Any]]:
        """Active products at or below min_stock, most depleted first."""
        query = """
            SELECT * FROM products
            WHERE tenant_id = %s AND is_active = true AND stock <= min_stock
        """
        params: list[Any] = [get_current_tenant_id()]
        if product_ids is not None:
            query += " AND id = ANY(%s::uuid[])"
            params.append(list(product_ids))
        query += " ORDER BY (stock - min_stock) ASC, name ASC"
        return tx.execute(query, tuple(params))

    def search_products(self, tx: Transaction, term: str, limit: int) -> list[dict[str, Any]]:
        pattern = f"%{term}%"
        return tx.execute(
            """
            SELECT * FROM products
            WHERE tenant_id = %s AND is_active = true
              AND (name ILIKE %s OR sku ILIKE %s)
            ORDER BY name ASC
            LIMIT %s
            """,
            (get_current_tenant_id(), pattern, pattern, limit)
        )

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def insert_invoice(self, tx: Transaction, row: dict[str, Any]) -> dict[str, Any]:
        return tx.execute(
            """
            INSERT INTO invoices (
                id, tenant_id, client_id, number, status,
                issue_date, due_date,
                subtotal_cents, tax_rate_bps, tax_cents, total_cents,
                notes, stock_applied, created_by, created_at, updated_at
            ) VALUES (
                %(id)s, %(tenant_id)s, %(client_id)s, %(number)s, %(status)s,
                %(issue_date)s, %(due_date)s,
                %(subtotal_cents)s, %(tax_rate_bps)s, %(tax_cents)s, %(total_cents)s,
                %(notes)s, false, %(created_by)s, %(created_at)s, %(updated_at)s
            )
            RETURNING *
            """,
            row
        )[0]

    def insert_line_items(self, tx: Transaction, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        inserted = []
        for row in rows:
            inserted.append(tx.execute(
                """
                INSERT INTO invoice_line_items (
                    id, tenant_id, invoice_id, product_id, description,
                    quantity, unit_price_cents, line_total_cents, position, created_at
                ) VALUES (
                    %(id)s, %(tenant_id)s, %(invoice_id)s, %(product_id)s, %(description)s,
                    %(quantity)s, %(unit_price_cents)s, %(line_total_cents)s, %(position)s, %(created_at)s
                )
                RETURNING *
                """,
                row
            )[0])
        return inserted

    def get_invoice(self, tx: Transaction, invoice_id: UUID, for_update: bool = False) -> dict[str, Any] | None:
        """Fetch an invoice; with for_update, hold its row lock until the transaction ends."""
        query = "SELECT * FROM invoices WHERE id = %s AND tenant_id = %s"
        if for_update:
            query += " FOR UPDATE"
        return tx.execute_single(query, (invoice_id, get_current_tenant_id()))

    def get_invoice_by_number(self, tx: Transaction, number: str) -> dict[str, Any] | None:
        return tx.execute_single(
            "SELECT * FROM invoices WHERE number = %s AND tenant_id = %s",
            (number, get_current_tenant_id())
        )

    def update_invoice(self, tx: Transaction, invoice_id: UUID, changes: dict[str, Any]) -> dict[str, Any]:
        invalid = set(changes) - _INVOICE_UPDATABLE_COLUMNS
        if invalid:
            raise ValueError(f"Columns not updatable on invoices: {', '.join(sorted(invalid))}")

        set_parts = [f"{column} = %s" for column in changes]
        params = list(changes.values())
        params.extend([invoice_id, get_current_tenant_id()])

        return tx.execute(
            f"""
            UPDATE invoices
            SET {', '.join(set_parts)}
            WHERE id = %s AND tenant_id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]

    def list_line_items(self, tx: Transaction, invoice_id: UUID) -> list[dict[str, Any]]:
        return tx.execute(
            """
            SELECT * FROM invoice_line_items
            WHERE invoice_id = %s AND tenant_id = %s
            ORDER BY position ASC
            """,
            (invoice_id, get_current_tenant_id())
        )

    def list_invoices(
        self,
        tx: Transaction,
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
        """Filtered invoice listing. Date bounds are inclusive except due_before."""
        conditions = ["tenant_id = %s"]
        params: list[Any] = [get_current_tenant_id()]

        if statuses:
            conditions.append("status = ANY(%s)")
            params.append(statuses)
        if client_id is not None:
            conditions.append("client_id = %s")
            params.append(client_id)
        if issued_from is not None:
            conditions.append("issue_date >= %s")
            params.append(issued_from)
        if issued_to is not None:
            conditions.append("issue_date <= %s")
            params.append(issued_to)
        if due_from is not None:
            conditions.append("due_date >= %s")
            params.append(due_from)
        if due_to is not None:
            conditions.append("due_date <= %s")
            params.append(due_to)
        if due_before is not None:
            conditions.append("due_date < %s")
            params.append(due_before)

        order = "due_date ASC, number ASC" if order_by_due else "issue_date DESC, number DESC"
        params.extend([limit, offset])

        return tx.execute(
            f"""
            SELECT * FROM invoices
            WHERE {' AND '.join(conditions)}
            ORDER BY {order}
            LIMIT %s OFFSET %s
            """,
            tuple(params)
        )

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def list_payments(self, tx: Transaction, invoice_id: UUID) -> list[dict[str, Any]]:
        return tx.execute(
            """
            SELECT * FROM payments
            WHERE invoice_id = %s AND tenant_id = %s
            ORDER BY recorded_at ASC
            """,
            (invoice_id, get_current_tenant_id())
        )

    def payment_totals(self, tx: Transaction, invoice_ids: Iterable[UUID]) -> dict[UUID, int]:
        """Sum of payments per invoice (invoices without payments are absent)."""
        ids = list(invoice_ids)
        if not ids:
            return {}
        rows = tx.execute(
            """
            SELECT invoice_id, COALESCE(SUM(amount_cents), 0) AS paid_cents
            FROM payments
            WHERE tenant_id = %s AND invoice_id = ANY(%s::uuid[])
            GROUP BY invoice_id
            """,
            (get_current_tenant_id(), ids)
        )
        return {row["invoice_id"]: int(row["paid_cents"]) for row in rows}

    def insert_payment(self, tx: Transaction, row: dict[str, Any]) -> dict[str, Any]:
        return tx.execute(
            """
            INSERT INTO payments (
                id, tenant_id, invoice_id, amount_cents, method,
                reference, notes, recorded_by, recorded_at
            ) VALUES (
                %(id)s, %(tenant_id)s, %(invoice_id)s, %(amount_cents)s, %(method)s,
                %(reference)s, %(notes)s, %(recorded_by)s, %(recorded_at)s
            )
            RETURNING *
            """,
            row
        )[0]
