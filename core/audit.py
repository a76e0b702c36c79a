"""
Audit trail for ledger mutations.

Every invoice, payment and stock change is logged here inside the same
transaction as the change itself, so the trail can never disagree with the
ledger. The audit log is:
- Append-only (entries never modified or deleted)
- Actor-attributed (who made the change, for which tenant)
- Detailed (captures old and new values)

The audit_log table has NO RLS - entries are visible to administrative
connections regardless of tenant context.
"""

from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import Transaction
from utils.tenant_context import get_current_context
from utils.timezone import now_utc


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    TRANSITION = "transition"
    STOCK = "stock"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    for key in set(old.keys()) | set(new.keys()):
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Transactional audit trail.

    IMPORTANT: Always use model_dump(mode="json") when passing Pydantic models
    so UUIDs, dates and datetimes are JSON-compatible.

    Usage:
        with postgres.transaction() as tx:
            ...
            audit.log_change(
                tx,
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.TRANSITION,
                changes={"status": {"old": "draft", "new": "sent"}},
            )
    """

    def log_change(
        self,
        tx: Transaction,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
    ) -> None:
        """
        Log an entity change as part of the caller's transaction.

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - TRANSITION: {"field": {"old": old_val, "new": new_val}, ...}
        - STOCK: {"stock": {"old": n, "new": m}, "invoice_id": ..., "reason": ...}
        """
        ctx = get_current_context()

        tx.execute(
            """
            INSERT INTO audit_log (id, tenant_id, actor_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4(),
                ctx.tenant_id,
                ctx.actor_id,
                entity_type,
                entity_id,
                action.value,
                Json(changes),
                now_utc(),
            )
        )
