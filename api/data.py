"""GET /api/data: unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.exceptions import ProductNotFound


VALID_TYPES = {"invoices", "payments", "products"}


def _dump_all(items) -> list[dict]:
    return [i.model_dump(mode="json") for i in items]


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    payment_svc = services["payment"]
    catalog_svc = services["catalog"]
    stock_svc = services["stock"]

    # -------------------------------------------------------------------------
    # Convenience routes (must be registered before the generic /data route).
    # Handlers are plain def so blocking ledger calls run in the threadpool.
    # -------------------------------------------------------------------------

    @router.get("/data/invoices/overdue")
    def invoices_overdue(request: Request):
        invoices = invoice_svc.list_overdue()
        return success_response(_dump_all(invoices)).model_dump(mode="json")

    @router.get("/data/invoices/due-soon")
    def invoices_due_soon(request: Request, days: int | None = Query(None, ge=0, le=365)):
        invoices = invoice_svc.list_due_soon(days)
        return success_response(_dump_all(invoices)).model_dump(mode="json")

    @router.get("/data/invoices/pending")
    def invoices_pending(request: Request):
        pending = invoice_svc.list_pending()
        return success_response(_dump_all(pending)).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Generic data endpoint
    # -------------------------------------------------------------------------

    @router.get("/data")
    def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        number: str | None = Query(None),
        status: str | None = Query(None),
        client_id: str | None = Query(None),
        invoice_id: str | None = Query(None),
        start_date: str | None = Query(None),
        end_date: str | None = Query(None),
        search: str | None = Query(None),
        include: str | None = Query(None),
        filter: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        if type == "invoices":
            return _handle_invoices(
                invoice_svc, id, number, status, client_id, start_date, end_date, limit, offset
            )

        if type == "payments":
            return _handle_payments(payment_svc, invoice_id)

        if type == "products":
            includes = set(include.split(",")) if include else set()
            return _handle_products(catalog_svc, stock_svc, id, search, filter, includes, limit)

    return router


def _handle_invoices(invoice_svc, id, number, status, client_id, start_date, end_date, limit, offset):
    if id:
        detail = invoice_svc.get(UUID(id))
        return success_response(detail.model_dump(mode="json")).model_dump(mode="json")

    if number:
        detail = invoice_svc.get_by_number(number)
        return success_response(detail.model_dump(mode="json")).model_dump(mode="json")

    invoices = invoice_svc.list_invoices({
        "status": status,
        "client_id": client_id,
        "start_date": start_date,
        "end_date": end_date,
        "limit": limit,
        "offset": offset,
    })
    return success_response(_dump_all(invoices)).model_dump(mode="json")


def _handle_payments(payment_svc, invoice_id):
    if not invoice_id:
        raise ValueError("'payments' type requires 'invoice_id' parameter")

    payments = payment_svc.list_for_invoice(UUID(invoice_id))
    return success_response(_dump_all(payments)).model_dump(mode="json")


def _handle_products(catalog_svc, stock_svc, id, search, filter, includes, limit):
    if id:
        product = catalog_svc.get_by_id(UUID(id))
        if product is None:
            raise ProductNotFound(id)

        data = product.model_dump(mode="json")
        data["is_low_stock"] = product.is_low_stock
        if "movements" in includes:
            data["movements"] = _dump_all(stock_svc.list_movements(product.id))

        return success_response(data).model_dump(mode="json")

    if filter == "low_stock":
        products = catalog_svc.list_low_stock()
        return success_response(_dump_all(products)).model_dump(mode="json")

    if search:
        products = catalog_svc.search(search, limit)
        return success_response(_dump_all(products)).model_dump(mode="json")

    raise ValueError("'products' type requires 'id', 'search' or 'filter=low_stock' parameter")
