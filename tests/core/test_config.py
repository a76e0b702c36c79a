"""Tests for LedgerConfig."""

import pydantic
import pytest

from core.config import LedgerConfig


class TestDefaults:

    def test_defaults(self):
        config = LedgerConfig()
        assert config.default_tax_rate_bps == 1900
        assert config.invoice_prefix == "FAC-"
        assert config.number_width == 4
        assert config.max_conflict_retries == 3
        assert config.due_soon_days == 7
        assert config.default_payment_method == "cash"


class TestFromSettings:

    def test_applies_known_keys(self):
        config = LedgerConfig.from_settings({"default_tax_rate_bps": 1600, "invoice_prefix": "INV-"})
        assert config.default_tax_rate_bps == 1600
        assert config.invoice_prefix == "INV-"

    def test_ignores_unknown_keys(self):
        config = LedgerConfig.from_settings({"colour": "blue"})
        assert config == LedgerConfig()

    def test_rejects_out_of_range_values(self):
        with pytest.raises(pydantic.ValidationError):
            LedgerConfig.from_settings({"default_tax_rate_bps": 10001})
