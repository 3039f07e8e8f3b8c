"""Unit tests for the credential vault and provider credential store."""
import os
import stat

import pytest
from google.oauth2.credentials import Credentials

from itsunani.auth.credential_vault import (
    CredentialVault,
    InMemoryCredentialVault,
    LocalDirectoryCredentialVault,
    get_credential_vault,
    set_credential_vault,
)
from itsunani.auth.oauth_config import reload_oauth_config
from itsunani.auth.provider_credentials import GOOGLE_TOKEN_URI, ProviderCredentialStore
from itsunani.auth.scopes import CALENDAR_SCOPE
from itsunani.utils.constants import PROVIDER_REFRESH_TOKEN_KEY, PROVIDER_TOKEN_KEY
from itsunani.utils.errors import VaultError


class BrokenVault(CredentialVault):
    """Vault whose reads of selected keys fail."""

    def __init__(self, entries=None, unreadable=()):
        self.entries = dict(entries or {})
        self.unreadable = set(unreadable)

    async def get(self, key):
        if key in self.unreadable:
            raise VaultError(f"Vault entry '{key}' is unreadable")
        return self.entries.get(key)

    async def set(self, key, value):
        self.entries[key] = value

    async def delete(self, key):
        self.entries.pop(key, None)


class TestLocalDirectoryCredentialVault:
    """Tests for the file-backed vault."""

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, tmp_path):
        vault = LocalDirectoryCredentialVault(str(tmp_path))
        assert await vault.get(PROVIDER_TOKEN_KEY) is None

    @pytest.mark.asyncio
    async def test_set_then_get(self, tmp_path):
        vault = LocalDirectoryCredentialVault(str(tmp_path))
        await vault.set(PROVIDER_TOKEN_KEY, "ya29.token")
        assert await vault.get(PROVIDER_TOKEN_KEY) == "ya29.token"

    @pytest.mark.asyncio
    async def test_values_survive_a_new_instance(self, tmp_path):
        await LocalDirectoryCredentialVault(str(tmp_path)).set("sb-session", '{"a": 1}')
        reopened = LocalDirectoryCredentialVault(str(tmp_path))
        assert await reopened.get("sb-session") == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_set_replaces_previous_value(self, tmp_path):
        vault = LocalDirectoryCredentialVault(str(tmp_path))
        await vault.set(PROVIDER_TOKEN_KEY, "old")
        await vault.set(PROVIDER_TOKEN_KEY, "new")
        assert await vault.get(PROVIDER_TOKEN_KEY) == "new"

    @pytest.mark.asyncio
    async def test_entries_are_owner_only(self, tmp_path):
        vault = LocalDirectoryCredentialVault(str(tmp_path))
        await vault.set(PROVIDER_TOKEN_KEY, "secret")
        path = vault._entry_path(PROVIDER_TOKEN_KEY)
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert not [f for f in os.listdir(tmp_path) if f.endswith(".tmp")]

    @pytest.mark.asyncio
    async def test_keys_with_separators_map_to_distinct_files(self, tmp_path):
        vault = LocalDirectoryCredentialVault(str(tmp_path))
        await vault.set("a/b", "1")
        await vault.set("a_b", "2")
        assert await vault.get("a/b") == "1"
        assert await vault.get("a_b") == "2"

    @pytest.mark.asyncio
    async def test_corrupt_entry_raises_vault_error(self, tmp_path):
        vault = LocalDirectoryCredentialVault(str(tmp_path))
        with open(vault._entry_path(PROVIDER_TOKEN_KEY), "w") as f:
            f.write("{not json")
        with pytest.raises(VaultError):
            await vault.get(PROVIDER_TOKEN_KEY)

    @pytest.mark.asyncio
    async def test_delete_removes_entry(self, tmp_path):
        vault = LocalDirectoryCredentialVault(str(tmp_path))
        await vault.set(PROVIDER_TOKEN_KEY, "ya29.token")
        await vault.delete(PROVIDER_TOKEN_KEY)
        assert await vault.get(PROVIDER_TOKEN_KEY) is None

    @pytest.mark.asyncio
    async def test_delete_missing_key_is_noop(self, tmp_path):
        vault = LocalDirectoryCredentialVault(str(tmp_path))
        await vault.delete("never-set")

    def test_default_dir_follows_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ITSUNANI_CREDENTIALS_DIR", str(tmp_path))
        vault = LocalDirectoryCredentialVault()
        assert vault.base_dir == os.path.join(str(tmp_path), "vault")
        assert os.path.isdir(vault.base_dir)


class TestGlobalVault:
    """Tests for the process-wide vault accessor."""

    def teardown_method(self):
        set_credential_vault(None)
        reload_oauth_config()

    def test_set_and_get(self):
        vault = InMemoryCredentialVault()
        set_credential_vault(vault)
        assert get_credential_vault() is vault

    def test_default_is_local_directory(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ITSUNANI_CREDENTIALS_DIR", str(tmp_path))
        reload_oauth_config()
        set_credential_vault(None)
        vault = get_credential_vault()
        assert isinstance(vault, LocalDirectoryCredentialVault)
        assert vault.base_dir == os.path.join(str(tmp_path), "vault")


class TestProviderCredentialStore:
    """Tests for storing and loading the Google provider credential."""

    @pytest.mark.asyncio
    async def test_store_writes_both_keys(self):
        vault = InMemoryCredentialVault()
        await ProviderCredentialStore(vault).store("ya29.token", "1//refresh")
        assert await vault.get(PROVIDER_TOKEN_KEY) == "ya29.token"
        assert await vault.get(PROVIDER_REFRESH_TOKEN_KEY) == "1//refresh"

    @pytest.mark.asyncio
    async def test_store_without_refresh_token(self):
        vault = InMemoryCredentialVault()
        await ProviderCredentialStore(vault).store("ya29.token")
        assert await vault.get(PROVIDER_REFRESH_TOKEN_KEY) is None

    @pytest.mark.asyncio
    async def test_load_builds_google_credentials(self):
        vault = InMemoryCredentialVault(
            {PROVIDER_TOKEN_KEY: "ya29.token", PROVIDER_REFRESH_TOKEN_KEY: "1//refresh"}
        )
        credentials = await ProviderCredentialStore(vault).load()
        assert isinstance(credentials, Credentials)
        assert credentials.token == "ya29.token"
        assert credentials.refresh_token == "1//refresh"
        assert credentials.token_uri == GOOGLE_TOKEN_URI
        assert CALENDAR_SCOPE in credentials.scopes

    @pytest.mark.asyncio
    async def test_load_empty_vault_returns_none(self):
        assert await ProviderCredentialStore(InMemoryCredentialVault()).load() is None

    @pytest.mark.asyncio
    async def test_missing_refresh_token_is_tolerated(self):
        vault = InMemoryCredentialVault({PROVIDER_TOKEN_KEY: "ya29.token"})
        credentials = await ProviderCredentialStore(vault).load()
        assert credentials.token == "ya29.token"
        assert credentials.refresh_token is None

    @pytest.mark.asyncio
    async def test_unreadable_refresh_token_is_tolerated(self):
        vault = BrokenVault(
            {PROVIDER_TOKEN_KEY: "ya29.token"}, unreadable={PROVIDER_REFRESH_TOKEN_KEY}
        )
        credentials = await ProviderCredentialStore(vault).load()
        assert credentials.token == "ya29.token"
        assert credentials.refresh_token is None

    @pytest.mark.asyncio
    async def test_unreadable_access_token_raises(self):
        vault = BrokenVault(unreadable={PROVIDER_TOKEN_KEY})
        with pytest.raises(VaultError):
            await ProviderCredentialStore(vault).load()

    @pytest.mark.asyncio
    async def test_clear_deletes_both_keys_only(self):
        vault = InMemoryCredentialVault(
            {
                PROVIDER_TOKEN_KEY: "ya29.token",
                PROVIDER_REFRESH_TOKEN_KEY: "1//refresh",
                "sb-session": "{}",
            }
        )
        await ProviderCredentialStore(vault).clear()
        assert await vault.get(PROVIDER_TOKEN_KEY) is None
        assert await vault.get(PROVIDER_REFRESH_TOKEN_KEY) is None
        assert await vault.get("sb-session") == "{}"

    def test_uses_global_vault_by_default(self):
        vault = InMemoryCredentialVault()
        set_credential_vault(vault)
        try:
            assert ProviderCredentialStore().vault is vault
        finally:
            set_credential_vault(None)
