"""Run the ledger API: secrets from Vault, settings into LedgerConfig, uvicorn."""

import logging
import os

import uvicorn

from api.app import build_services, create_app
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url, get_ledger_settings
from core.config import LedgerConfig

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

config = LedgerConfig.from_settings(get_ledger_settings())
postgres = PostgresClient(get_database_url(), retry_backoff_ms=config.retry_backoff_ms)
app = create_app(build_services(postgres, config))

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").lower(),
    )
