"""Payment domain models. Payments are append-only."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentCreate(BaseModel):
    """Data required to record a payment."""

    amount_cents: int = Field(..., gt=0)
    method: str | None = Field(None, min_length=1, max_length=50)
    reference: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=1000)


class Payment(BaseModel):
    """Full payment entity as stored."""

    id: UUID
    invoice_id: UUID
    amount_cents: int
    method: str
    reference: str | None = None
    notes: str | None = None
    recorded_by: UUID | None = None
    recorded_at: datetime

    model_config = {"from_attributes": True}
