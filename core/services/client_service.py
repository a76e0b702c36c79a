"""
Client directory.

Resolves client IDs within the current tenant. Client CRUD belongs to the
wider business application; the ledger only needs lookup and registration.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.exceptions import ClientNotFound
from core.models import Client
from core.store import LedgerStore
from utils.tenant_context import get_current_tenant_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class ClientDirectory:
    """Lookup service for billable clients."""

    def __init__(self, postgres: PostgresClient, store: LedgerStore):
        self.postgres = postgres
        self.store = store

    def resolve_client(self, tx: Transaction, client_id: UUID) -> Client:
        """
        Resolve a client within the current tenant.

        Raises:
            ClientNotFound: Client absent or owned by another tenant
        """
        row = self.store.get_client(tx, client_id)
        if row is None:
            raise ClientNotFound(client_id)
        return Client.model_validate(row)

    def get_by_id(self, client_id: UUID) -> Client | None:
        with self.postgres.transaction() as tx:
            row = self.store.get_client(tx, client_id)
        return Client.model_validate(row) if row else None

    def register(self, name: str, email: str | None = None, tax_id: str | None = None) -> Client:
        """Register a client for the current tenant."""
        with self.postgres.transaction() as tx:
            row = self.store.insert_client(tx, {
                "id": uuid4(),
                "tenant_id": get_current_tenant_id(),
                "name": name,
                "email": email,
                "tax_id": tax_id,
                "created_at": now_utc(),
            })
        return Client.model_validate(row)
