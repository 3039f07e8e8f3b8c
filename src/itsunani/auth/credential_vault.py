"""
Credential Vault for Itsunani.

This module provides a standardized async interface for secret storage and
retrieval, using one local JSON file per key for persistence. Entries are
scoped to this device and never synced.
"""

import asyncio
import base64
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .oauth_config import get_oauth_config
from ..utils.errors import VaultError

logger = logging.getLogger(__name__)


class CredentialVault(ABC):
    """Abstract base class for scoped key/value secret storage."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get the value stored under key, or None if absent."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key. Deleting a missing key is a no-op."""
        pass


class LocalDirectoryCredentialVault(CredentialVault):
    """Credential vault that keeps each key in its own JSON file."""

    def __init__(self, base_dir: Optional[str] = None) -> None:
        """
        Initialize the local credential vault.

        Args:
            base_dir: Directory for vault entries. If None, uses
                     ~/.config/itsunani/vault
        """
        if base_dir is None:
            env_dir = os.getenv("ITSUNANI_CREDENTIALS_DIR")
            if env_dir:
                base_dir = os.path.join(os.path.expanduser(env_dir), "vault")
            else:
                home_dir = os.path.expanduser("~")
                base_dir = os.path.join(home_dir, ".config", "itsunani", "vault")

        self.base_dir = base_dir
        self._ensure_dir_exists()
        logger.info(f"LocalDirectoryCredentialVault initialized: {base_dir}")

    def _ensure_dir_exists(self) -> None:
        """Ensure the vault directory exists and is private to this user."""
        if not os.path.exists(self.base_dir):
            os.makedirs(self.base_dir, mode=0o700, exist_ok=True)
            logger.info(f"Created vault directory: {self.base_dir}")

    def _key_to_filename(self, key: str) -> str:
        """
        Convert a key to a safe filename using URL-safe base64 encoding.

        Keys are arbitrary strings (the identity client uses its own), so the
        transformation must be reversible and filesystem safe.
        """
        encoded = base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii")
        return encoded.rstrip("=")

    def _entry_path(self, key: str) -> str:
        """Get the file path for a key."""
        self._ensure_dir_exists()
        return os.path.join(self.base_dir, f"{self._key_to_filename(key)}.json")

    def _read_entry(self, key: str) -> Optional[str]:
        entry_path = self._entry_path(key)

        if not os.path.exists(entry_path):
            logger.debug(f"No vault entry for {key}")
            return None

        try:
            with open(entry_path, "r") as f:
                data = json.load(f)
            value = data["value"]
        except (IOError, json.JSONDecodeError, KeyError, TypeError) as e:
            logger.error(f"Error reading vault entry {key}: {e}")
            raise VaultError(f"Vault entry '{key}' is unreadable") from e

        if value is not None and not isinstance(value, str):
            raise VaultError(f"Vault entry '{key}' is not a string")
        return value

    def _write_entry(self, key: str, value: str) -> None:
        """Persist an entry atomically with owner-only permissions."""
        entry_path = self._entry_path(key)

        fd, temp_path = tempfile.mkstemp(dir=self.base_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump({"key": key, "value": value}, f)
            os.chmod(temp_path, 0o600)
            os.replace(temp_path, entry_path)
        except (IOError, OSError) as e:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            logger.error(f"Error writing vault entry {key}: {e}")
            raise VaultError(f"Could not write vault entry '{key}'") from e

        logger.debug(f"Stored vault entry {key}")

    def _remove_entry(self, key: str) -> None:
        entry_path = self._entry_path(key)

        try:
            if os.path.exists(entry_path):
                os.remove(entry_path)
                logger.info(f"Deleted vault entry {key}")
        except OSError as e:
            logger.error(f"Error deleting vault entry {key}: {e}")
            raise VaultError(f"Could not delete vault entry '{key}'") from e

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read_entry, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write_entry, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._remove_entry, key)


class InMemoryCredentialVault(CredentialVault):
    """Process-local vault. Nothing survives a restart."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._entries: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    async def set(self, key: str, value: str) -> None:
        self._entries[key] = value

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


# Global credential vault instance
_credential_vault: Optional[CredentialVault] = None


def get_credential_vault() -> CredentialVault:
    """Get the global credential vault instance."""
    global _credential_vault

    if _credential_vault is None:
        _credential_vault = LocalDirectoryCredentialVault(get_oauth_config().get_vault_dir())
        logger.info(f"Initialized credential vault: {type(_credential_vault).__name__}")

    return _credential_vault


def set_credential_vault(vault: Optional[CredentialVault]) -> None:
    """Set (or with None, reset) the global credential vault instance."""
    global _credential_vault
    _credential_vault = vault
    if vault is not None:
        logger.info(f"Set credential vault: {type(vault).__name__}")
