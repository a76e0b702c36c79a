"""Ledger configuration."""

from typing import Any

from pydantic import BaseModel, Field


class LedgerConfig(BaseModel):
    """
    Ledger configuration.

    Values here are process-wide defaults. Tax rate and invoice prefix can be
    overridden per tenant through the tenant_settings table.
    """

    # Pricing
    default_tax_rate_bps: int = Field(
        default=1900,  # 19%
        description="Flat tax rate in basis points (10000 = 100%)",
        ge=0,
        le=10000,
    )

    # Numbering
    invoice_prefix: str = Field(
        default="FAC-",
        description="Prefix for human-readable invoice numbers",
        max_length=20,
    )
    number_width: int = Field(
        default=4,
        description="Minimum digits in the zero-padded sequence part",
        ge=1,
        le=12,
    )

    # Concurrency
    max_conflict_retries: int = Field(
        default=3,
        description="Attempts per ledger transaction before ConcurrencyConflict is surfaced",
        ge=1,
        le=10,
    )
    retry_backoff_ms: int = Field(
        default=25,
        description="Linear backoff step between conflicting attempts",
        ge=0,
        le=1000,
    )

    # Listings
    due_soon_days: int = Field(
        default=7,
        description="Default window for the due-soon listing",
        ge=0,
        le=365,
    )
    list_limit: int = Field(
        default=50,
        description="Default page size for invoice listings",
        ge=1,
        le=500,
    )

    # Payments
    default_payment_method: str = Field(
        default="cash",
        description="Payment method recorded when the caller gives none",
        min_length=1,
        max_length=50,
    )

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> "LedgerConfig":
        """Build from a settings mapping (e.g. Vault), ignoring unknown keys."""
        known = {k: v for k, v in settings.items() if k in cls.model_fields}
        return cls(**known)
