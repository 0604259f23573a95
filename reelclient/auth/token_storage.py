"""
Credential Storage for the Movie Review Client.

This module provides scoped persistent storage of the access/refresh token
pair using the system keyring, with a JSON file store as fallback and an
in-memory store for tests. Every operation is fallible but never raises:
failures are logged, reads report absence and writes report False.
"""

import os
import json
import logging
import tempfile
from pathlib import Path
from typing import Optional, Dict, Any

import keyring
from keyring.errors import PasswordDeleteError

from reelshared.exceptions import StorageError, ErrorCode
from reelshared.interfaces import ICredentialStore
from reelshared.logging_config import log_structured_error
from reelshared.models import CredentialPair

logger = logging.getLogger(__name__)

TOKEN_KEY = "user_tokens"


def _decode_pair(raw: Optional[str]) -> Optional[CredentialPair]:
    if not raw:
        return None
    data = json.loads(raw)
    if not isinstance(data, dict) or not data.get('access'):
        logger.warning("Ignoring malformed stored credentials")
        return None
    return CredentialPair.from_dict(data)


class SecureTokenStorage(ICredentialStore):
    """
    Persistent storage for the user's credential pair.

    Uses the system keyring when available and falls back to a JSON file
    readable only by the current user. The pair is always serialized and
    written as a single value so a reader never observes a half-updated pair.
    """

    def __init__(
        self,
        service_name: str = "reel-client",
        storage_path: Optional[str] = None,
        use_keyring: bool = True
    ):
        self.service_name = service_name
        self.keyring_available = use_keyring and self._check_keyring_availability()
        self.storage_path = Path(storage_path) if storage_path else self._get_storage_path()

        logger.info(f"Token storage initialized (keyring: {self.keyring_available})")

    def _check_keyring_availability(self) -> bool:
        """Check if system keyring is available."""
        try:
            test_key = f"{self.service_name}_test"
            keyring.set_password(self.service_name, test_key, "test")
            result = keyring.get_password(self.service_name, test_key)
            keyring.delete_password(self.service_name, test_key)
            return result == "test"
        except Exception as e:
            logger.debug(f"Keyring not available: {e}")
            return False

    def _get_storage_path(self) -> Path:
        """Get path for file storage, following the XDG config directory."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME')
        if xdg_config:
            config_dir = Path(xdg_config) / 'reel-client'
        else:
            config_dir = Path.home() / '.config' / 'reel-client'
        return config_dir / f'{self.service_name}.json'

    @property
    def backend_name(self) -> str:
        return "keyring" if self.keyring_available else "file"

    def get(self) -> Optional[CredentialPair]:
        """
        Retrieve the stored credential pair.

        Returns:
            The pair, or None if nothing is stored or the store failed
        """
        try:
            if self.keyring_available:
                raw = keyring.get_password(self.service_name, TOKEN_KEY)
            else:
                raw = self._read_file()
            return _decode_pair(raw)
        except Exception as e:
            log_structured_error(logger, StorageError(f"Error getting tokens from storage: {e}",
                                                      ErrorCode.STORAGE_READ_FAILED, cause=e))
            return None

    def set(self, pair: CredentialPair) -> bool:
        """
        Store the credential pair.

        Returns:
            True if the pair was persisted
        """
        value = json.dumps(pair.to_dict())
        try:
            if self.keyring_available:
                keyring.set_password(self.service_name, TOKEN_KEY, value)
            else:
                self._write_file(value)
            logger.debug(f"Tokens stored ({self.backend_name})")
            return True
        except Exception as e:
            log_structured_error(logger, StorageError(f"Error setting tokens in storage: {e}", cause=e))
            return False

    def clear(self) -> bool:
        """
        Remove the stored credential pair.

        Returns:
            True if storage holds no pair afterwards
        """
        try:
            if self.keyring_available:
                try:
                    keyring.delete_password(self.service_name, TOKEN_KEY)
                except PasswordDeleteError:
                    pass  # nothing stored
            elif self.storage_path.exists():
                self.storage_path.unlink()
            logger.debug(f"Tokens cleared ({self.backend_name})")
            return True
        except Exception as e:
            log_structured_error(logger, StorageError(f"Error clearing tokens from storage: {e}", cause=e))
            return False

    def _read_file(self) -> Optional[str]:
        if not self.storage_path.exists():
            return None
        return self.storage_path.read_text(encoding='utf-8')

    def _write_file(self, value: str) -> None:
        """Write via a temp file and an atomic rename."""
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.storage_path.parent), prefix='.tokens-', suffix='.tmp'
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(value)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.storage_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class InMemoryTokenStorage(ICredentialStore):
    """Process-local credential store used by tests and ephemeral sessions."""

    def __init__(self, initial: Optional[CredentialPair] = None):
        self._value: Optional[str] = json.dumps(initial.to_dict()) if initial else None
        self.set_calls = 0
        self.clear_calls = 0

    def get(self) -> Optional[CredentialPair]:
        try:
            return _decode_pair(self._value)
        except ValueError as e:
            logger.error(f"Error getting tokens from storage: {e}")
            return None

    def set(self, pair: CredentialPair) -> bool:
        self.set_calls += 1
        self._value = json.dumps(pair.to_dict())
        return True

    def clear(self) -> bool:
        self.clear_calls += 1
        self._value = None
        return True


def create_token_storage(config) -> ICredentialStore:
    """
    Build the credential store selected by configuration.

    Args:
        config: ClientConfiguration instance

    Returns:
        Credential store for the configured backend
    """
    backend = config.get_storage_backend()
    scope = config.get_storage_scope()

    if backend == 'memory':
        return InMemoryTokenStorage()
    if backend == 'file':
        return SecureTokenStorage(service_name=scope, storage_path=config.get_storage_file(),
                                  use_keyring=False)

    storage = SecureTokenStorage(service_name=scope, storage_path=config.get_storage_file())
    if not storage.keyring_available:
        logger.warning("System keyring unavailable, falling back to file storage")
    return storage


def describe_storage(store: ICredentialStore) -> Dict[str, Any]:
    """Summarize a credential store for diagnostics (never includes token values)."""
    info: Dict[str, Any] = {'type': type(store).__name__}
    if isinstance(store, SecureTokenStorage):
        info['backend'] = store.backend_name
        info['service_name'] = store.service_name
        if not store.keyring_available:
            info['path'] = str(store.storage_path)
    info['has_credentials'] = store.get() is not None
    return info
