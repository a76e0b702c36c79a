"""POST /api/actions: unified mutation endpoint."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def _uuid(data: dict, key: str = "id") -> UUID:
    value = data.get(key)
    if value is None:
        raise ValueError(f"'{key}' is required")
    return UUID(str(value))


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "invoice": InvoiceHandler(services["invoice"], services["payment"]),
        "product": ProductHandler(services["catalog"], services["stock"]),
    }

    # Plain def: FastAPI runs it in the threadpool while ledger calls wait on row locks
    @router.post("/actions")
    def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(body.data)
        return success_response(result).model_dump(mode="json")

    return router


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class InvoiceHandler:
    ALLOWED_ACTIONS = {"create", "send", "transition", "cancel", "record_payment"}

    def __init__(self, service, payments):
        self.service = service
        self.payments = payments

    def _handle_create(self, data: dict):
        invoice = self.service.create(
            client_id=data.get("client_id"),
            due_date=data.get("due_date"),
            items=data.get("items") or [],
            notes=data.get("notes"),
            issue_date=data.get("issue_date"),
        )
        return invoice.model_dump(mode="json")

    def _handle_send(self, data: dict):
        invoice = self.service.send(_uuid(data))
        return invoice.model_dump(mode="json")

    def _handle_transition(self, data: dict):
        status = data.get("status")
        if not status:
            raise ValueError("'status' is required")
        invoice = self.service.transition(_uuid(data), status)
        return invoice.model_dump(mode="json")

    def _handle_cancel(self, data: dict):
        invoice = self.service.cancel(_uuid(data))
        return invoice.model_dump(mode="json")

    def _handle_record_payment(self, data: dict):
        receipt = self.payments.record_payment(
            _uuid(data),
            amount_cents=data.get("amount_cents"),
            method=data.get("method"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return receipt.model_dump(mode="json")


class ProductHandler:
    ALLOWED_ACTIONS = {"create", "adjust_stock"}

    def __init__(self, catalog, stock):
        self.catalog = catalog
        self.stock = stock

    def _handle_create(self, data: dict):
        product = self.catalog.create(data)
        return product.model_dump(mode="json")

    def _handle_adjust_stock(self, data: dict):
        product_id = _uuid(data)
        product = self.stock.adjust(product_id, {"delta": data.get("delta"), "reason": data.get("reason")})
        return product.model_dump(mode="json")
