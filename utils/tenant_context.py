"""Propagate the authenticated tenant context through the call stack using contextvars."""

from contextlib import contextmanager
from contextvars import ContextVar
from uuid import UUID

from pydantic import BaseModel

# Roles allowed to operate the invoice and payment ledger
LEDGER_ROLES = frozenset({"admin", "finance"})


class AuthContext(BaseModel):
    """Identity of the caller, supplied by the upstream auth layer on every request."""

    tenant_id: UUID
    actor_id: UUID
    role: str

    model_config = {"frozen": True}

    @property
    def can_use_ledger(self) -> bool:
        return self.role.lower() in LEDGER_ROLES


_current_context: ContextVar[AuthContext | None] = ContextVar("current_auth_context", default=None)


def get_current_context() -> AuthContext:
    """
    Get the current auth context.

    Raises RuntimeError if no context is set. Tenant-scoped code running
    without a context is a bug, not a case to handle.
    """
    ctx = _current_context.get()
    if ctx is None:
        raise RuntimeError(
            "No tenant context set. This usually means you're calling "
            "tenant-scoped code outside of an authenticated request."
        )
    return ctx


def get_current_tenant_id() -> UUID:
    return get_current_context().tenant_id


def get_current_actor_id() -> UUID:
    return get_current_context().actor_id


def peek_current_context() -> AuthContext | None:
    """Current context or None, for infrastructure that must not fail without one."""
    return _current_context.get()


def set_current_context(ctx: AuthContext) -> None:
    """Set the auth context. Called by the tenant middleware."""
    _current_context.set(ctx)


def clear_current_context() -> None:
    """Clear the auth context. Must run in a finally block after each request."""
    _current_context.set(None)


@contextmanager
def tenant_context(ctx: AuthContext):
    """
    Temporarily run code as the given tenant/actor.

    Example:
        with tenant_context(AuthContext(tenant_id=t, actor_id=a, role="finance")):
            invoice_service.send(invoice_id)
    """
    previous = _current_context.get()
    set_current_context(ctx)
    try:
        yield ctx
    finally:
        if previous is None:
            clear_current_context()
        else:
            set_current_context(previous)
