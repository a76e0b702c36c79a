"""Tests for VaultClient - HashiCorp Vault secrets management."""

from unittest.mock import patch

import pytest
from hvac.exceptions import Forbidden, InvalidPath

import clients.vault_client as vault_module
from clients.vault_client import (
    SecretNotFound,
    VaultClient,
    VaultError,
    get_database_url,
    get_ledger_settings,
)


@pytest.fixture
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "http://vault.test:8200")
    monkeypatch.setenv("VAULT_ROLE_ID", "role")
    monkeypatch.setenv("VAULT_SECRET_ID", "secret")
    monkeypatch.delenv("VAULT_NAMESPACE", raising=False)


@pytest.fixture
def hvac_client(vault_env):
    """Patched hvac.Client that authenticates and serves KV v2 reads."""
    with patch("clients.vault_client.hvac.Client") as client_cls:
        client = client_cls.return_value
        client.auth.approle.login.return_value = {"auth": {"client_token": "token"}}
        client.is_authenticated.return_value = True
        yield client


@pytest.fixture
def fresh_singleton():
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()
    yield
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()


def _kv(data):
    return {"data": {"data": data}}


class TestVaultClientInit:

    def test_missing_vault_addr_raises(self, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR", raising=False)

        with pytest.raises(ValueError, match="VAULT_ADDR"):
            VaultClient()

    def test_missing_approle_credentials_raises(self, vault_env, monkeypatch):
        monkeypatch.delenv("VAULT_ROLE_ID")

        with pytest.raises(ValueError, match="VAULT_ROLE_ID"):
            VaultClient()

    def test_rejected_approle_raises_vault_error(self, hvac_client):
        hvac_client.auth.approle.login.side_effect = Forbidden("permission denied")

        with pytest.raises(VaultError, match="AppRole"):
            VaultClient()

    def test_valid_approle_authenticates(self, hvac_client):
        client = VaultClient()

        assert client.client.token == "token"


class TestReadSecret:

    def test_paths_are_scoped_to_ledger(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.return_value = _kv({"url": "postgresql://db"})

        assert VaultClient().get_secret("database", "url") == "postgresql://db"
        hvac_client.secrets.kv.v2.read_secret_version.assert_called_once_with(
            path="ledger/database", raise_on_deleted_version=True
        )

    def test_missing_path_raises_secret_not_found(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = InvalidPath()

        with pytest.raises(SecretNotFound):
            VaultClient().read_secret("nonexistent")

    def test_missing_field_raises_keyerror(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.return_value = _kv({"url": "x"})

        with pytest.raises(KeyError, match="not found"):
            VaultClient().get_secret("database", "password")


class TestConvenienceFunctions:

    def test_get_database_url_is_cached(self, hvac_client, fresh_singleton):
        hvac_client.secrets.kv.v2.read_secret_version.return_value = _kv({"url": "postgresql://db"})

        assert get_database_url() == "postgresql://db"
        assert get_database_url() == "postgresql://db"
        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 1

    def test_ledger_settings(self, hvac_client, fresh_singleton):
        hvac_client.secrets.kv.v2.read_secret_version.return_value = _kv({"default_tax_rate_bps": 1600})

        assert get_ledger_settings() == {"default_tax_rate_bps": 1600}

    def test_absent_ledger_settings_means_defaults(self, hvac_client, fresh_singleton):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = InvalidPath()

        assert get_ledger_settings() == {}
