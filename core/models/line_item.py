"""Invoice line item domain models.

Prices are integer cents. A line item may reference a catalog product, in
which case sending the invoice deducts `quantity` from that product's stock.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class LineItemCreate(BaseModel):
    """One priced entry supplied when creating an invoice."""

    product_id: UUID | None = None
    description: str | None = Field(None, max_length=500)
    quantity: int = Field(..., ge=1)
    unit_price_cents: int = Field(..., ge=0)

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


class InvoiceLineItem(BaseModel):
    """Full line item entity as stored. Immutable once the invoice leaves DRAFT."""

    id: UUID
    invoice_id: UUID
    product_id: UUID | None
    description: str | None
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    position: int
    created_at: datetime

    model_config = {"from_attributes": True}
