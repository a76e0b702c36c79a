"""API test fixtures: the full app over the in-memory ledger."""

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from tests.fakes import FINANCE_A, FINANCE_B, auth_headers


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    """Ledger app with tenant middleware, error handlers, and data/actions routes."""
    return create_app(services)


@pytest.fixture
def client(app):
    """Test client authenticated as a finance user of tenant A."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers.update(auth_headers(FINANCE_A))
    return c


@pytest.fixture
def client_b(app):
    """Test client authenticated as a finance user of tenant B."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers.update(auth_headers(FINANCE_B))
    return c


@pytest.fixture
def unauthed_client(app):
    """Client with no identity headers."""
    return TestClient(app, raise_server_exceptions=False)
