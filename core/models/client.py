"""Billable client model, as resolved from the client directory."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class Client(BaseModel):
    """A tenant's client that invoices are billed to."""

    id: UUID
    tenant_id: UUID
    name: str
    email: str | None = None
    tax_id: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
