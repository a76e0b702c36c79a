"""Catalog product and stock movement models.

Stock is an integer count that never goes below zero. Every change to it is
recorded as an append-only StockMovement.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class ProductCreate(BaseModel):
    """Data required to create a catalog product."""

    sku: str | None = Field(None, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)
    stock: int = Field(0, ge=0)
    min_stock: int = Field(0, ge=0)
    unit: str | None = Field(None, max_length=50)
    cost_price_cents: int = Field(0, ge=0)
    sale_price_cents: int = Field(0, ge=0)
    is_active: bool = True


class Product(BaseModel):
    """Full product entity as stored."""

    id: UUID
    tenant_id: UUID
    sku: str | None
    name: str
    description: str | None
    stock: int
    min_stock: int
    unit: str | None
    cost_price_cents: int
    sale_price_cents: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock


class StockAdjustment(BaseModel):
    """Manual out-of-band stock correction (positive adds, negative removes)."""

    delta: int
    reason: str | None = Field(None, max_length=500)

    @field_validator("delta")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("delta must not be zero")
        return v


class StockMovement(BaseModel):
    """One applied stock delta."""

    id: UUID
    product_id: UUID
    invoice_id: UUID | None
    delta: int
    resulting_stock: int
    reason: str | None
    actor_id: UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}
