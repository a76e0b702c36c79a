"""Request-scoped middleware for API requests."""

from typing import Callable
from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.tenant_context import AuthContext, set_current_context, clear_current_context

# Resolves the caller's identity from a request; None when unauthenticated
ContextResolver = Callable[[Request], AuthContext | None]

TENANT_HEADER = "X-Tenant-ID"
ACTOR_HEADER = "X-Actor-ID"
ROLE_HEADER = "X-Actor-Role"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def header_context_resolver(request: Request) -> AuthContext | None:
    """
    Read tenant, actor and role from headers set by the upstream gateway.

    The gateway authenticates the session and strips these headers from
    client traffic; this service trusts them as given.

    Raises:
        ValueError: Headers present but malformed
    """
    tenant_id = request.headers.get(TENANT_HEADER)
    actor_id = request.headers.get(ACTOR_HEADER)
    role = request.headers.get(ROLE_HEADER)

    if not tenant_id or not actor_id or not role:
        return None

    return AuthContext(tenant_id=UUID(tenant_id), actor_id=UUID(actor_id), role=role)


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Middleware that resolves the caller and sets tenant context.

    For protected routes:
    1. Resolves AuthContext through the injected resolver (401 if absent)
    2. Rejects roles that may not operate the ledger (403)
    3. Sets the context for RLS and stores it on request.state
    4. Clears context after request completes

    Public paths bypass resolution entirely.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, resolver: ContextResolver = header_context_resolver):
        super().__init__(app)
        self._resolver = resolver

    def _is_public_path(self, path: str) -> bool:
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        try:
            ctx = self._resolver(request)
        except ValueError:
            ctx = None

        if ctx is None:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                ).model_dump(mode="json"),
            )

        if not ctx.can_use_ledger:
            return JSONResponse(
                status_code=403,
                content=error_response(
                    ErrorCodes.FORBIDDEN,
                    "Ledger access requires the admin or finance role",
                    {"role": ctx.role},
                ).model_dump(mode="json"),
            )

        set_current_context(ctx)
        request.state.auth = ctx

        try:
            return await call_next(request)
        finally:
            clear_current_context()
