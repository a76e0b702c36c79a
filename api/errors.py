"""Global exception handlers for FastAPI."""

import logging

import pydantic
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.exceptions import LedgerError

logger = logging.getLogger(__name__)

# HTTP status per LedgerError.code; unknown codes are a generic bad request
LEDGER_ERROR_STATUS: dict[str, int] = {
    ErrorCodes.VALIDATION_ERROR: 422,
    ErrorCodes.NOT_FOUND: 404,
    ErrorCodes.INVALID_STATUS_TRANSITION: 409,
    ErrorCodes.INVALID_INVOICE_STATE: 409,
    ErrorCodes.INVOICE_HAS_PAYMENTS: 409,
    ErrorCodes.INSUFFICIENT_STOCK: 409,
    ErrorCodes.OVERPAYMENT: 422,
    ErrorCodes.CONCURRENCY_CONFLICT: 409,
    ErrorCodes.SERVICE_UNAVAILABLE: 503,
}


def status_for(exc: LedgerError) -> tuple[int, str]:
    """HTTP status and error code for a ledger error."""
    status_code = LEDGER_ERROR_STATUS.get(exc.code)
    if status_code is None:
        return 400, ErrorCodes.INVALID_REQUEST
    return status_code, exc.code


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status_code, code = status_for(exc)
        if status_code >= 500:
            logger.error("Ledger unavailable: %s", exc)
        return JSONResponse(
            status_code=status_code,
            content=error_response(code, str(exc), exc.details).model_dump(mode="json"),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=error_response(ErrorCodes.INVALID_REQUEST, str(exc)).model_dump(mode="json"),
        )

    @app.exception_handler(pydantic.ValidationError)
    async def model_error_handler(request: Request, exc: pydantic.ValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                f"Invalid {exc.title}",
                {"errors": exc.errors(include_url=False, include_context=False)},
            ).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                "Invalid request",
                {"errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]},
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
            ).model_dump(mode="json"),
        )
