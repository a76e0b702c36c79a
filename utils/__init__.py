"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, today_utc, to_utc, as_date, days_between, window_end
from utils.tenant_context import (
    AuthContext,
    LEDGER_ROLES,
    get_current_context,
    get_current_tenant_id,
    get_current_actor_id,
    peek_current_context,
    set_current_context,
    clear_current_context,
    tenant_context,
)
