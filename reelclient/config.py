"""
Configuration Management for the Movie Review Client.

This module handles client configuration including the API base URL, request
and refresh timeouts, credential storage backend and logging, with support for
configuration files and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from configparser import ConfigParser

from reelshared.exceptions import ConfigurationError, ErrorCode

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'http://10.0.2.2:8000/api/'
STORAGE_BACKENDS = ('keyring', 'file', 'memory')


class ClientConfiguration:
    """
    Configuration manager for the Movie Review Client.

    Supports configuration from:
    1. Runtime overrides (highest priority)
    2. Environment variables
    3. Configuration file
    4. Default values (lowest priority)
    """

    ENV_MAPPINGS = {
        'REEL_API_BASE_URL': ('api', 'base_url'),
        'REEL_LOG_LEVEL': ('logging', 'level'),
        'REEL_TOKEN_STORAGE': ('storage', 'backend'),
    }

    def __init__(self, config_file: Optional[str] = None, load_environment: bool = True):
        self._config_file = config_file or self._get_default_config_path()
        self._load_environment = load_environment
        self._config_data: Dict[str, Any] = {}
        self._overrides: Dict[str, Any] = {}

        self._load_configuration()

    def _get_default_config_path(self) -> str:
        """Get default configuration file path (~/.reelclient/client.conf)."""
        return str(Path.home() / '.reelclient' / 'client.conf')

    def _load_configuration(self) -> None:
        """Load configuration from file and environment variables."""
        if os.path.exists(self._config_file):
            try:
                self._load_from_file()
                logger.info(f"Configuration loaded from: {self._config_file}")
            except Exception as e:
                logger.warning(f"Failed to load configuration file: {e}")
        else:
            logger.debug(f"Configuration file not found: {self._config_file}")

        if self._load_environment:
            self._load_from_environment()

        self._set_defaults()

    def _load_from_file(self) -> None:
        """Load configuration from INI file."""
        config = ConfigParser()
        config.read(self._config_file)

        for section_name in config.sections():
            section_data = {}
            for key, value in config[section_name].items():
                # Try to parse as JSON for numbers, booleans and lists
                try:
                    section_data[key] = json.loads(value)
                except (json.JSONDecodeError, ValueError):
                    section_data[key] = value

            self._config_data[section_name] = section_data

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        for env_var, (section, key) in self.ENV_MAPPINGS.items():
            value = os.environ.get(env_var)
            if value is not None:
                self._config_data.setdefault(section, {})[key] = value

    def _set_defaults(self) -> None:
        """Set default configuration values."""
        defaults = {
            'api': {
                'base_url': DEFAULT_BASE_URL,
                'timeout': 30.0,
                'refresh_path': 'auth/token/refresh/',
                'refresh_timeout': 15.0,
                'user_agent': 'ReelClient/1.0'
            },
            'storage': {
                'backend': 'keyring',
                'scope': 'reel-client',
                'file': str(Path.home() / '.reelclient' / 'credentials.json')
            },
            'logging': {
                'level': 'INFO',
                'format': 'standard',
                'file': None,
                'audit_file': None,
                'max_size': 10485760,  # 10MB
                'backup_count': 3
            }
        }

        for section, section_defaults in defaults.items():
            if section not in self._config_data:
                self._config_data[section] = {}

            for key, default_value in section_defaults.items():
                if key not in self._config_data[section]:
                    self._config_data[section][key] = default_value

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in format 'section.key'
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if key in self._overrides:
            return self._overrides[key]

        if '.' not in key:
            return self._config_data.get(key, default)

        section, config_key = key.split('.', 1)
        return self._config_data.get(section, {}).get(config_key, default)

    def set_override(self, key: str, value: Any) -> None:
        """
        Set configuration override (highest priority).

        Args:
            key: Configuration key in format 'section.key'
            value: Override value
        """
        self._overrides[key] = value

    # Convenience methods for common configuration values

    def get_base_url(self) -> str:
        """Get API base URL, always ending with a slash."""
        base_url = str(self.get_config('api.base_url', DEFAULT_BASE_URL))
        if not base_url.startswith(('http://', 'https://')):
            raise ConfigurationError(
                f"Invalid API base URL: {base_url}",
                ErrorCode.CONFIG_INVALID_VALUE,
                config_key='api.base_url'
            )
        return base_url if base_url.endswith('/') else base_url + '/'

    def get_timeout(self) -> float:
        """Get request timeout in seconds."""
        return float(self.get_config('api.timeout', 30.0))

    def get_refresh_path(self) -> str:
        """Get token refresh endpoint path relative to the base URL."""
        return str(self.get_config('api.refresh_path', 'auth/token/refresh/'))

    def get_refresh_timeout(self) -> float:
        """Get timeout for the token refresh call in seconds."""
        return float(self.get_config('api.refresh_timeout', 15.0))

    def get_user_agent(self) -> str:
        return str(self.get_config('api.user_agent', 'ReelClient/1.0'))

    def get_storage_backend(self) -> str:
        """Get credential storage backend name."""
        backend = str(self.get_config('storage.backend', 'keyring')).lower()
        if backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"Unknown credential storage backend: {backend}",
                ErrorCode.CONFIG_INVALID_VALUE,
                config_key='storage.backend'
            )
        return backend

    def get_storage_scope(self) -> str:
        return str(self.get_config('storage.scope', 'reel-client'))

    def get_storage_file(self) -> str:
        return str(Path(self.get_config('storage.file')).expanduser())

    def get_log_level(self) -> str:
        """Get logging level."""
        return str(self.get_config('logging.level', 'INFO')).upper()

    def get_log_format(self) -> str:
        return str(self.get_config('logging.format', 'standard')).lower()

    def get_log_file(self) -> Optional[str]:
        """Get log file path."""
        return self.get_config('logging.file')

    def get_audit_file(self) -> Optional[str]:
        return self.get_config('logging.audit_file')
