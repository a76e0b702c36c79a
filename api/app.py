"""Application factory: wires services, event handlers and routers."""

import logging

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import ContextResolver, RequestIDMiddleware, TenantContextMiddleware, header_context_resolver
from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.handlers.low_stock_handler import handle_invoice_sent, handle_stock_adjusted
from core.services.catalog_service import CatalogService
from core.services.client_service import ClientDirectory
from core.services.invoice_service import InvoiceService
from core.services.payment_service import PaymentLedger
from core.services.sequence_service import InvoiceNumberSequence
from core.services.stock_ledger import StockLedger
from core.store import LedgerStore

logger = logging.getLogger(__name__)


def build_services(postgres: PostgresClient, config: LedgerConfig, store: LedgerStore | None = None) -> dict:
    """
    Construct the ledger services over one PostgresClient and subscribe handlers.

    Returns:
        Dict keyed by domain name, as consumed by the routers
    """
    store = store or LedgerStore()
    audit = AuditLogger()
    event_bus = EventBus()

    clients = ClientDirectory(postgres, store)
    catalog = CatalogService(postgres, store, audit)
    stock = StockLedger(postgres, store, audit, event_bus, config)
    sequence = InvoiceNumberSequence(store, config)
    invoices = InvoiceService(postgres, store, audit, event_bus, config, sequence, clients, catalog, stock)
    payments = PaymentLedger(postgres, store, audit, event_bus, config, invoices)

    event_bus.subscribe("InvoiceSent", handle_invoice_sent(catalog))
    event_bus.subscribe("StockAdjusted", handle_stock_adjusted())

    return {
        "event_bus": event_bus,
        "client": clients,
        "catalog": catalog,
        "stock": stock,
        "invoice": invoices,
        "payment": payments,
    }


def create_app(services: dict, context_resolver: ContextResolver = header_context_resolver) -> FastAPI:
    """FastAPI app with tenant middleware, error handlers, and data/actions routes."""
    app = FastAPI(title="Invoice Ledger")
    app.add_middleware(TenantContextMiddleware, resolver=context_resolver)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")

    return app
