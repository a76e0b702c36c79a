"""Shared test fixtures for the ledger test suite."""

import os
from pathlib import Path
from uuid import UUID

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from api.app import build_services
from core.config import LedgerConfig
from tests.fakes import FINANCE_A, FINANCE_B, TENANT_A_ID, TENANT_B_ID, FakePostgres, InMemoryLedgerStore
from utils.tenant_context import clear_current_context, tenant_context


# =============================================================================
# CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_tenant_context():
    """Ensure clean tenant context before and after each test."""
    clear_current_context()
    yield
    clear_current_context()


@pytest.fixture
def tenant_a_id() -> UUID:
    return TENANT_A_ID


@pytest.fixture
def tenant_b_id() -> UUID:
    return TENANT_B_ID


@pytest.fixture
def as_tenant_a():
    """Run the test as a finance user of tenant A."""
    with tenant_context(FINANCE_A):
        yield FINANCE_A


@pytest.fixture
def as_tenant_b():
    """Run the test as a finance user of tenant B."""
    with tenant_context(FINANCE_B):
        yield FINANCE_B


# =============================================================================
# IN-MEMORY LEDGER FIXTURES
# =============================================================================


@pytest.fixture
def config() -> LedgerConfig:
    return LedgerConfig()


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def fake_db(store) -> FakePostgres:
    return FakePostgres(store)


@pytest.fixture
def services(fake_db, store, config) -> dict:
    """All ledger services wired over the in-memory store."""
    return build_services(fake_db, config, store=store)


@pytest.fixture
def invoice_service(services):
    return services["invoice"]


@pytest.fixture
def payment_ledger(services):
    return services["payment"]


@pytest.fixture
def stock_ledger(services):
    return services["stock"]


@pytest.fixture
def catalog_service(services):
    return services["catalog"]


@pytest.fixture
def event_bus(services):
    return services["event_bus"]


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db_url():
    """Database URL for integration tests; skips when not configured."""
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    return url


@pytest.fixture(scope="session")
def db(db_url):
    """Session-scoped PostgresClient (application role, RLS enforced)."""
    from clients.postgres_client import PostgresClient

    client = PostgresClient(db_url, retry_backoff_ms=5)
    yield client
    client.close()


@pytest.fixture(scope="session")
def db_admin():
    """Owner connection that bypasses RLS, for schema setup and truncation."""
    url = os.environ.get("TEST_DATABASE_ADMIN_URL")
    if not url:
        pytest.skip("TEST_DATABASE_ADMIN_URL not set")

    from clients.postgres_client import PostgresClient

    client = PostgresClient(url)
    client.execute((Path(__file__).parent.parent / "schema" / "ledger.sql").read_text())
    yield client
    client.close()


@pytest.fixture
def clean_db(db_admin):
    """Truncate ledger tables before the test."""
    db_admin.execute("""
        TRUNCATE
            payments, stock_movements, invoice_line_items, invoices,
            invoice_sequences, tenant_settings, products, clients, audit_log
        CASCADE
    """)
    yield db_admin
