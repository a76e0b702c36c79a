"""
PostgreSQL client with connection pooling, tenant RLS isolation and transactions.

Uses psycopg2 with ThreadedConnectionPool. Tenant isolation enforced via
PostgreSQL Row Level Security - the tenant ID is read from the auth contextvar
and set as app.current_tenant_id on every connection checkout.

Security: No tenant context = see nothing (RLS blocks all rows).

Multi-statement ledger work runs through transaction() / run_in_transaction():
one pooled connection, one COMMIT, ROLLBACK on any exception. Driver errors are
translated into ConcurrencyConflict (safe to retry), ValidationError (duplicate
input) or StorageUnavailable.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Tuple, TypeVar
from uuid import UUID

import psycopg2
import psycopg2.errors
import psycopg2.extras
import psycopg2.pool

from core.exceptions import ConcurrencyConflict, LedgerError, StorageUnavailable, ValidationError
from utils.tenant_context import peek_current_context

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Global UUID adapter registration flag
_uuid_registered = False

# SQLSTATEs that mean "another transaction got there first"
_CONFLICT_ERRORS = (
    psycopg2.errors.SerializationFailure,
    psycopg2.errors.DeadlockDetected,
    psycopg2.errors.LockNotAvailable,
)

# Unique constraints only a concurrent writer can trip
RACE_CONSTRAINTS = frozenset({
    "uq_invoices_tenant_number",
    "uq_stock_movements_invoice_product",
})

# Input field behind each user-facing unique constraint
UNIQUE_FIELDS = {
    "uq_products_tenant_sku": "sku",
}


def _convert_params(params: Tuple | Dict | None) -> Tuple | Dict | None:
    """Convert UUID objects to strings."""
    if params is None:
        return None

    def convert(value: Any) -> Any:
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, list):
            return [convert(v) for v in value]
        if isinstance(value, tuple):
            return tuple(convert(v) for v in value)
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        return value

    return convert(params)


def unique_violation_error(constraint: str | None, pgcode: str | None = None) -> LedgerError:
    """
    Ledger error for a unique violation on `constraint`.

    Races on the numbering and stock-movement constraints are retryable
    conflicts; any other duplicate is rejected input.
    """
    if constraint in RACE_CONSTRAINTS:
        return ConcurrencyConflict(
            "Concurrent update conflict, retry the request",
            pgcode=pgcode,
            constraint=constraint,
        )

    field = UNIQUE_FIELDS.get(constraint)
    errors = [{"field": field, "message": "value already exists"}] if field else []
    return ValidationError(
        f"Duplicate value violates {constraint or 'a unique constraint'}",
        errors=errors,
        constraint=constraint,
    )


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Map driver exceptions onto the ledger error taxonomy."""
    try:
        yield
    except psycopg2.errors.UniqueViolation as e:
        raise unique_violation_error(_constraint_name(e), e.pgcode) from e
    except _CONFLICT_ERRORS as e:
        raise ConcurrencyConflict(
            "Concurrent update conflict, retry the request",
            pgcode=e.pgcode,
            constraint=_constraint_name(e),
        ) from e
    except (psycopg2.OperationalError, psycopg2.InterfaceError, psycopg2.pool.PoolError) as e:
        raise StorageUnavailable(f"Database unavailable: {e}") from e


def _constraint_name(e: psycopg2.Error) -> str | None:
    return getattr(getattr(e, "diag", None), "constraint_name", None)


class Transaction:
    """
    A single open transaction on one pooled connection.

    Handed to ledger code as the unit-of-work handle. Every statement issued
    through it commits or rolls back together.
    """

    def __init__(self, conn):
        self._conn = conn

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no result set."""
        with _translate_errors():
            with self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, _convert_params(params))
                if cur.description:
                    return [dict(row) for row in cur.fetchall()]
                return []

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        with _translate_errors():
            with self._conn.cursor() as cur:
                cur.execute(query, _convert_params(params))
                result = cur.fetchone()
                return result[0] if result else None


class PostgresClient:
    """
    PostgreSQL client with automatic tenant RLS context from contextvar.

    Usage:
        db = PostgresClient(database_url)

        with tenant_context(ctx):
            invoices = db.execute("SELECT * FROM invoices")  # Tenant's rows only

            with db.transaction() as tx:
                tx.execute("SELECT * FROM invoices WHERE id = %s FOR UPDATE", (invoice_id,))
                ...

            invoice = db.run_in_transaction(lambda tx: ..., attempts=3)
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, retry_backoff_ms: int = 25):
        self._database_url = database_url
        self._retry_backoff_ms = retry_backoff_ms
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                with _translate_errors():
                    pool = psycopg2.pool.ThreadedConnectionPool(
                        minconn=2,
                        maxconn=20,
                        dsn=self._database_url,
                        connect_timeout=30,
                    )

                global _uuid_registered
                if not _uuid_registered:
                    psycopg2.extras.register_uuid()
                    _uuid_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """Get connection with RLS context from contextvar."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            with _translate_errors():
                conn = pool.getconn()
                if conn is None:
                    raise StorageUnavailable("Could not get connection from pool")

                ctx = peek_current_context()

                with conn.cursor() as cur:
                    if ctx is not None:
                        cur.execute(
                            "SELECT set_config('app.current_tenant_id', %s, false)",
                            (str(ctx.tenant_id),),
                        )
                    else:
                        # Empty string fails the ::uuid cast in RLS policies = no rows
                        cur.execute("SELECT set_config('app.current_tenant_id', '', false)")
                conn.commit()

            yield conn

        finally:
            if conn:
                pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Open a transaction (READ COMMITTED). Commits when the block exits
        normally, rolls back on any exception and re-raises it.
        """
        with self.get_connection() as conn:
            try:
                yield Transaction(conn)
                with _translate_errors():
                    conn.commit()
            except BaseException:
                try:
                    conn.rollback()
                except psycopg2.Error:
                    logger.exception("Rollback failed")
                raise

    def run_in_transaction(self, work: Callable[[Transaction], T], attempts: int = 3) -> T:
        """
        Run work(tx) in a transaction, retrying on ConcurrencyConflict.

        Each attempt is a fresh transaction, so work must not keep state
        across calls. Any other exception propagates on the first failure.
        """
        if attempts < 1:
            raise ValueError("attempts must be at least 1")

        for attempt in range(1, attempts + 1):
            try:
                with self.transaction() as tx:
                    return work(tx)
            except ConcurrencyConflict as e:
                if attempt == attempts:
                    logger.warning(
                        "Giving up after %d conflicting attempts (pgcode=%s, constraint=%s)",
                        attempts, e.details.get("pgcode"), e.details.get("constraint"),
                    )
                    raise
                logger.warning(
                    "Transaction conflict on attempt %d/%d, retrying (pgcode=%s)",
                    attempt, attempts, e.details.get("pgcode"),
                )
                time.sleep(self._retry_backoff_ms * attempt / 1000)

        raise AssertionError("unreachable")

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute a single statement in its own transaction, return row dicts."""
        with self.transaction() as tx:
            return tx.execute(query, params)

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        with self.transaction() as tx:
            return tx.execute_scalar(query, params)

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
