# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    VaultError,
    SecretNotFound,
    get_database_url,
    get_ledger_settings,
)
from clients.postgres_client import PostgresClient, Transaction
