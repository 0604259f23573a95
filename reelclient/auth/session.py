"""
Session Manager for the Movie Review Client.

This module owns the in-memory session (current user and token pair),
restores it from credential storage on startup, and keeps it consistent with
the refresh coordinator: a refreshed token updates the session, a failed
refresh logs the user out.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Dict, Any, Callable, List

from jose import jwt, JWTError

from reelshared.exceptions import ReelClientError, handle_exception
from reelshared.interfaces import ICredentialStore
from reelshared.logging_config import AuditLogger, log_structured_error
from reelshared.models import CredentialPair, User, UploadFile

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Manages the authenticated session.

    ``bootstrap`` must complete before the UI renders navigation state;
    ``wait_until_ready`` blocks until it has, whether it succeeded or not.
    """

    def __init__(self, api_client, auth_service, token_storage: ICredentialStore, refresh_coordinator=None):
        self.api_client = api_client
        self.auth_service = auth_service
        self.token_storage = token_storage

        self._user: Optional[User] = None
        self._tokens: Optional[CredentialPair] = None

        self._is_loading = True
        self._ready = asyncio.Event()

        self._auth_callbacks: List[Callable[[bool], None]] = []
        self._audit = AuditLogger()

        if refresh_coordinator is not None:
            refresh_coordinator.add_token_refresh_callback(self._on_token_refreshed)
            refresh_coordinator.add_refresh_failure_callback(self._on_refresh_failed)

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def tokens(self) -> Optional[CredentialPair]:
        return self._tokens

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    def is_authenticated(self) -> bool:
        return self._user is not None and self._tokens is not None

    @property
    def token_expires_at(self) -> Optional[datetime]:
        """Expiry of the current access token, read from its unverified JWT claims."""
        if not self._tokens:
            return None
        try:
            exp = jwt.get_unverified_claims(self._tokens.access).get('exp')
        except JWTError as e:
            logger.debug(f"Access token is not a readable JWT: {e}")
            return None
        if not isinstance(exp, (int, float)):
            return None
        try:
            return datetime.fromtimestamp(exp)
        except (OverflowError, OSError, ValueError):
            logger.debug(f"Access token expiry out of range: {exp}")
            return None

    def add_auth_callback(self, callback: Callable[[bool], None]) -> None:
        """
        Add callback for authentication state changes.

        Args:
            callback: Function called with authentication status (bool)
        """
        self._auth_callbacks.append(callback)

    def _notify_auth_change(self, is_authenticated: bool) -> None:
        """Notify callbacks of authentication state change."""
        for callback in self._auth_callbacks:
            try:
                callback(is_authenticated)
            except Exception as e:
                logger.error(f"Error in auth callback: {e}")

    async def wait_until_ready(self) -> None:
        """Wait until session bootstrap has finished."""
        await self._ready.wait()

    async def bootstrap(self) -> bool:
        """
        Restore the session from credential storage.

        Attaches the stored access token and validates it by fetching the
        current profile. Any failure leaves a clean logged-out state.

        Returns:
            True if a session was restored
        """
        self._is_loading = True
        self._ready.clear()
        try:
            stored = self.token_storage.get()
            if stored is None:
                logger.info("No stored session found")
                return False

            self._tokens = stored
            self.api_client.set_credential(stored.access)
            try:
                user = await self.auth_service.get_user_profile()
            except Exception as e:
                error = handle_exception(e, context={'operation': 'session_bootstrap'})
                log_structured_error(logger, error)
                self._audit.log_session("Stored session rejected", result="failure")
                self._clear_session()
                return False

            self._user = user
            self._audit.log_session("Session restored", username=user.username, result="success")
            self._notify_auth_change(True)
            return True
        finally:
            self._is_loading = False
            self._ready.set()

    def _start_session(self, user: User, tokens: CredentialPair) -> None:
        self._user = user
        self._tokens = tokens
        self.api_client.set_credential(tokens.access)
        if not self.token_storage.set(tokens):
            logger.warning("Session tokens could not be persisted")
        self._notify_auth_change(True)

    async def login(self, username: str, password: str) -> User:
        """
        Log in and start a session.

        Raises:
            ReelClientError: When the backend rejects the credentials
        """
        try:
            user, tokens = await self.auth_service.login(username, password)
        except ReelClientError as e:
            self._audit.log_authentication("login", username=username, success=False,
                                           failure_reason=e.message)
            raise

        self._start_session(user, tokens)
        self._audit.log_authentication("login", username=user.username)
        return user

    async def register(self, data: Dict[str, Any]) -> User:
        """Register a new account and start a session."""
        try:
            user, tokens = await self.auth_service.register(data)
        except ReelClientError as e:
            self._audit.log_authentication("register", username=data.get('username'), success=False,
                                           failure_reason=e.message)
            raise

        self._start_session(user, tokens)
        self._audit.log_authentication("register", username=user.username)
        return user

    async def logout(self) -> None:
        """
        Log out: invalidate the refresh token on the server when possible,
        then clear all local session state.
        """
        username = self._user.username if self._user else None
        if self._tokens and self._tokens.refresh:
            try:
                await self.auth_service.logout(self._tokens.refresh)
            except Exception as e:
                logger.error(f"Logout failed on server, clearing client-side anyway: {e}")

        self._clear_session()
        self._audit.log_authentication("logout", username=username)

    def _clear_session(self) -> None:
        """Clear in-memory user and tokens, the default credential and storage."""
        was_authenticated = self._user is not None
        self._user = None
        self._tokens = None
        self.api_client.clear_credential()
        self.token_storage.clear()
        if was_authenticated:
            self._notify_auth_change(False)

    async def update_profile(self, fields: Dict[str, Any], profile_picture: Optional[UploadFile] = None) -> User:
        """Update the current user's profile and keep the session copy in sync."""
        try:
            user = await self.auth_service.update_user_profile(fields, profile_picture)
        except Exception as e:
            logger.error(f"Update profile failed: {e}")
            raise

        self._user = user
        return user

    def _on_token_refreshed(self, tokens: CredentialPair) -> None:
        self._tokens = tokens

    def _on_refresh_failed(self, error: ReelClientError) -> None:
        # Storage and the default credential were already cleared by the coordinator
        was_authenticated = self._user is not None
        self._user = None
        self._tokens = None
        logger.info("Session expired")
        if was_authenticated:
            self._notify_auth_change(False)
