"""
Token Refresh Coordinator for the Movie Review Client.

This module implements single-flight access token refresh. When a request is
rejected with 401, exactly one refresh call is made no matter how many
requests fail concurrently; the others wait for its outcome and are then
replayed with the new access token, or failed with the refresh error.
"""

import asyncio
import logging
from typing import Optional, Callable, List, Any

from reelshared.exceptions import (
    APIResponseError, ReelClientError, TokenRefreshError, AuthenticationError, ErrorCode
)
from reelshared.interfaces import ICredentialStore, IRequestTransport
from reelshared.logging_config import AuditLogger
from reelshared.models import CredentialPair, RequestDescriptor

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_PATH = 'auth/token/refresh/'


class _MissingRefreshToken(AuthenticationError):
    """Released to waiters when the refresh was abandoned for lack of a refresh token."""

    def __init__(self):
        super().__init__("No refresh token available",
                         error_code=ErrorCode.AUTH_MISSING_REFRESH_TOKEN)


class RefreshCoordinator:
    """
    Coordinates access token refresh across concurrent requests.

    States: IDLE (``is_refreshing`` False, no waiters) and REFRESHING
    (``is_refreshing`` True, waiters queued). The check of ``is_refreshing``
    and the decision to refresh or enqueue happen before the first ``await``
    on that path, so two refresh calls can never be in flight at once.
    """

    def __init__(
        self,
        transport: IRequestTransport,
        token_storage: ICredentialStore,
        refresh_path: str = DEFAULT_REFRESH_PATH,
        refresh_timeout: Optional[float] = 15.0
    ):
        self.transport = transport
        self.token_storage = token_storage
        self.refresh_path = refresh_path
        self.refresh_timeout = refresh_timeout

        self._is_refreshing = False
        self._waiters: List[asyncio.Future] = []
        self.refresh_count = 0

        self._refresh_callbacks: List[Callable[[CredentialPair], None]] = []
        self._failure_callbacks: List[Callable[[ReelClientError], None]] = []
        self._audit = AuditLogger()

    @property
    def is_refreshing(self) -> bool:
        return self._is_refreshing

    @property
    def pending_count(self) -> int:
        return len(self._waiters)

    def add_token_refresh_callback(self, callback: Callable[[CredentialPair], None]) -> None:
        """
        Add callback for successful token refresh events.

        Args:
            callback: Function called with the updated credential pair
        """
        self._refresh_callbacks.append(callback)

    def add_refresh_failure_callback(self, callback: Callable[[ReelClientError], None]) -> None:
        """
        Add callback for terminal refresh failures (session expired).

        Args:
            callback: Function called with the refresh error
        """
        self._failure_callbacks.append(callback)

    def _notify(self, callbacks: List[Callable], value: Any) -> None:
        for callback in callbacks:
            try:
                callback(value)
            except Exception as e:
                logger.error(f"Error in token refresh callback: {e}")

    async def handle_unauthorized(self, descriptor: RequestDescriptor, error: APIResponseError) -> Any:
        """
        Recover a request that was rejected with 401.

        Args:
            descriptor: The rejected request; it is replayed at most once
            error: The original unauthorized error

        Returns:
            Response body of the replayed request

        Raises:
            APIResponseError: The original 401 when no refresh token is
                stored, or the replay's own error
            TokenRefreshError: When the refresh call failed
        """
        descriptor.mark_retried()

        if self._is_refreshing:
            return await self._wait_and_replay(descriptor, error)

        current = self.transport.default_headers.get('Authorization')
        if descriptor.sent_authorization and current and current != descriptor.sent_authorization:
            # Rejected token was already replaced by a refresh that finished
            # while this response was in flight.
            logger.debug(f"Replaying {descriptor.method} {descriptor.path} with already refreshed token")
            descriptor.headers['Authorization'] = current
            return await self.transport.send(descriptor)

        self._is_refreshing = True
        try:
            new_access = await self._refresh(error)
        finally:
            self._is_refreshing = False

        descriptor.attach_credential(new_access)
        return await self.transport.send(descriptor)

    async def _wait_and_replay(self, descriptor: RequestDescriptor, error: APIResponseError) -> Any:
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(f"Queued {descriptor.method} {descriptor.path} behind in-flight token refresh "
                     f"({len(self._waiters)} waiting)")

        try:
            new_access = await waiter
        except _MissingRefreshToken:
            raise error from None

        descriptor.attach_credential(new_access)
        return await self.transport.send(descriptor)

    def _release_waiters(self, error: Optional[BaseException] = None, access: Optional[str] = None) -> int:
        """Resolve or reject every queued waiter in arrival order and empty the queue."""
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if waiter.done():
                continue  # cancelled by its caller
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(access)
        return len(waiters)

    async def _refresh(self, unauthorized: APIResponseError) -> str:
        """
        Perform the single refresh call and settle the waiter queue.

        Returns:
            The new access token
        """
        stored = self.token_storage.get()
        if stored is None or not stored.refresh:
            logger.warning("Access token rejected and no refresh token is stored")
            self._release_waiters(error=_MissingRefreshToken())
            raise unauthorized

        self.refresh_count += 1
        logger.info("Access token rejected, refreshing")

        try:
            body = await self.transport.send(
                RequestDescriptor(
                    'POST',
                    self.refresh_path,
                    json={'refresh': stored.refresh},
                    authenticated=False,
                    retried=True
                ),
                timeout=self.refresh_timeout
            )
            new_access = body.get('access') if isinstance(body, dict) else None
            if not new_access:
                raise ValueError("Refresh response did not contain an access token")

        except asyncio.CancelledError:
            self._release_waiters(error=TokenRefreshError("Token refresh was cancelled"))
            raise
        except Exception as e:
            refresh_error = TokenRefreshError(f"Token refresh failed: {e}", cause=e)
            waiting = self._release_waiters(error=refresh_error)

            logger.error(f"Token refresh failed: {e}")
            self._audit.log_token_refresh(success=False, waiters=waiting, failure_reason=str(e))

            self.token_storage.clear()
            self.transport.clear_credential()
            self._notify(self._failure_callbacks, refresh_error)
            raise refresh_error from e

        updated = stored.with_access(new_access)
        if not self.token_storage.set(updated):
            logger.warning("Refreshed tokens could not be persisted; continuing with in-memory session")
        self.transport.set_credential(new_access)

        waiting = self._release_waiters(access=new_access)
        logger.info(f"Access token refreshed, replaying {waiting + 1} request(s)")
        self._audit.log_token_refresh(success=True, waiters=waiting)

        self._notify(self._refresh_callbacks, updated)
        return new_access
