"""
Client assembly for the Movie Review Client.

Builds the shared API client, credential store, refresh coordinator, session
manager and services from configuration and runs session bootstrap.
Applications call ``configure_logging`` once before starting the client.
"""

import logging
from typing import Optional, Dict, Any

from reelclient.api_client import ReelAPIClient
from reelclient.auth.refresh_coordinator import RefreshCoordinator
from reelclient.auth.session import SessionManager
from reelclient.auth.token_storage import create_token_storage, describe_storage
from reelclient.config import ClientConfiguration
from reelclient.services.auth_service import AuthService
from reelclient.services.movie_service import MovieService
from reelshared.interfaces import ICredentialStore
from reelshared.logging_config import setup_logging, LogLevel, LogFormat

logger = logging.getLogger(__name__)


class ReelClient:
    """
    Fully wired client.

    Usage::

        async with ReelClient(config) as client:
            if client.session.is_authenticated():
                page = await client.movies.get_movies()
    """

    def __init__(
        self,
        config: Optional[ClientConfiguration] = None,
        token_storage: Optional[ICredentialStore] = None
    ):
        self.config = config or ClientConfiguration()

        self.api = ReelAPIClient(
            base_url=self.config.get_base_url(),
            timeout=self.config.get_timeout(),
            user_agent=self.config.get_user_agent()
        )
        self.token_storage = token_storage or create_token_storage(self.config)
        self.refresh_coordinator = RefreshCoordinator(
            transport=self.api,
            token_storage=self.token_storage,
            refresh_path=self.config.get_refresh_path(),
            refresh_timeout=self.config.get_refresh_timeout()
        )
        self.api.set_refresh_coordinator(self.refresh_coordinator)

        self.auth = AuthService(self.api)
        self.movies = MovieService(self.api)
        self.session = SessionManager(
            api_client=self.api,
            auth_service=self.auth,
            token_storage=self.token_storage,
            refresh_coordinator=self.refresh_coordinator
        )

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self) -> bool:
        """
        Run the startup sequence.

        Returns:
            True if a stored session was restored
        """
        restored = await self.session.bootstrap()
        logger.info(f"Client started ({'authenticated' if restored else 'logged out'})")
        return restored

    async def close(self) -> None:
        await self.api.close()

    def get_status(self) -> Dict[str, Any]:
        """Summarize client state for diagnostics (never includes token values)."""
        return {
            'base_url': self.api.base_url,
            'authenticated': self.session.is_authenticated(),
            'username': self.session.user.username if self.session.user else None,
            'refreshing': self.refresh_coordinator.is_refreshing,
            'refresh_count': self.refresh_coordinator.refresh_count,
            'storage': describe_storage(self.token_storage)
        }


def configure_logging(config: ClientConfiguration) -> None:
    """Set up logging from the [logging] configuration section."""
    try:
        level = LogLevel(config.get_log_level())
    except ValueError:
        level = LogLevel.INFO
    try:
        log_format = LogFormat(config.get_log_format())
    except ValueError:
        log_format = LogFormat.STANDARD

    setup_logging(
        log_level=level,
        log_format=log_format,
        log_file=config.get_log_file(),
        max_file_size=int(config.get_config('logging.max_size', 10485760)),
        backup_count=int(config.get_config('logging.backup_count', 3)),
        audit_file=config.get_audit_file()
    )
