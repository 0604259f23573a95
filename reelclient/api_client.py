"""
HTTP API Client for the Movie Review Client.

This module provides the shared HTTP transport used to talk to the backend:
a fixed base URL, JSON defaults, bearer credential attachment and the hook
that hands unauthorized responses to the refresh coordinator.
"""

import asyncio
import json
import logging
from typing import Optional, Dict, Any
from urllib.parse import urljoin

import aiohttp
from aiohttp import ClientSession, ClientTimeout, ClientError, FormData

from reelshared.exceptions import APIResponseError, NetworkError, ErrorCode
from reelshared.interfaces import IRequestTransport
from reelshared.models import RequestDescriptor, UploadFile

logger = logging.getLogger(__name__)


class ReelAPIClient(IRequestTransport):
    """
    HTTP API client for the movie review backend.

    Every request carries the current default headers, including the
    Authorization header maintained by ``set_credential``/``clear_credential``,
    plus any per-call overrides. Unauthorized responses are passed to the
    attached refresh coordinator, which refreshes the access token once and
    replays the request.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        user_agent: str = 'ReelClient/1.0'
    ):
        self.base_url = base_url if base_url.endswith('/') else base_url + '/'
        self.timeout = ClientTimeout(total=timeout)

        self._default_headers: Dict[str, str] = {
            'User-Agent': user_agent,
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        }

        self._session: Optional[ClientSession] = None
        self._refresh_coordinator = None

        logger.info(f"API client initialized for base URL: {self.base_url}")

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self) -> None:
        """Ensure HTTP session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=20,
                limit_per_host=10,
                keepalive_timeout=30
            )
            self._session = ClientSession(connector=connector, timeout=self.timeout)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def set_refresh_coordinator(self, coordinator) -> None:
        """Route unauthorized responses through the given refresh coordinator."""
        self._refresh_coordinator = coordinator

    # Credential attachment

    def set_credential(self, access: str) -> None:
        """
        Set the default bearer credential for all subsequent requests.

        Args:
            access: Access token; an empty value removes the header
        """
        if access:
            self._default_headers['Authorization'] = f'Bearer {access}'
        else:
            self.clear_credential()

    def clear_credential(self) -> None:
        """Remove the default bearer credential."""
        self._default_headers.pop('Authorization', None)

    @property
    def default_headers(self) -> Dict[str, str]:
        return dict(self._default_headers)

    @property
    def has_credential(self) -> bool:
        return 'Authorization' in self._default_headers

    # Request transport

    def build_url(self, path: str) -> str:
        """Resolve a path against the base URL; absolute URLs pass through."""
        if path.startswith(('http://', 'https://')):
            return path
        return urljoin(self.base_url, path.lstrip('/'))

    def _build_headers(self, descriptor: RequestDescriptor) -> Dict[str, str]:
        headers: Dict[str, Optional[str]] = dict(self._default_headers)
        if not descriptor.authenticated:
            headers.pop('Authorization', None)
        if descriptor.form is not None or isinstance(descriptor.data, (bytes, FormData)):
            # The transport generates the multipart boundary header
            headers.pop('Content-Type', None)
        headers.update(descriptor.headers)
        return {key: value for key, value in headers.items() if value is not None}

    @staticmethod
    def _build_form(fields: Dict[str, Any]) -> FormData:
        form = FormData()
        for name, value in fields.items():
            if value is None:
                continue
            if isinstance(value, UploadFile):
                form.add_field(name, value.content, filename=value.filename,
                               content_type=value.content_type)
            else:
                form.add_field(name, str(value))
        return form

    async def send(self, descriptor: RequestDescriptor, timeout: Optional[float] = None) -> Any:
        """
        Issue a request exactly once, without token refresh handling.

        Args:
            descriptor: Request to send
            timeout: Optional total timeout overriding the client default

        Returns:
            Decoded response body (JSON, text, or None when empty)

        Raises:
            APIResponseError: On a non-2xx response
            NetworkError: When no response was received
        """
        await self._ensure_session()

        url = self.build_url(descriptor.path)
        headers = self._build_headers(descriptor)
        descriptor.sent_authorization = headers.get('Authorization')

        data = descriptor.data
        if descriptor.form is not None:
            data = self._build_form(descriptor.form)

        request_kwargs: Dict[str, Any] = {}
        if timeout:
            request_kwargs["timeout"] = ClientTimeout(total=timeout)

        logger.debug(f"Making {descriptor.method} request to {url}"
                     + (" (replay)" if descriptor.retried else ""))

        try:
            async with self._session.request(
                method=descriptor.method,
                url=url,
                params=descriptor.params,
                json=descriptor.json if data is None else None,
                data=data,
                headers=headers,
                **request_kwargs
            ) as response:
                if 200 <= response.status < 300:
                    return await self._read_body(response)

                error_body = await self._read_body(response)
                raise APIResponseError(
                    status=response.status,
                    body=error_body,
                    method=descriptor.method,
                    url=url
                )

        except asyncio.TimeoutError as e:
            logger.warning(f"Request timed out: {descriptor.method} {url}")
            raise NetworkError(f"Request timed out: {descriptor.method} {url}",
                               error_code=ErrorCode.NETWORK_TIMEOUT, cause=e) from e
        except (ClientError, OSError) as e:
            logger.warning(f"Network error on {descriptor.method} {url}: {e}")
            raise NetworkError(f"Network request failed: {descriptor.method} {url}: {e}",
                               cause=e) from e

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        """Decode a response body; JSON when possible, text otherwise."""
        # Error bodies are not guaranteed to be valid UTF-8
        text = await response.text(errors='replace')
        if not text:
            return None
        if response.content_type == 'application/json' or text[:1] in ('{', '['):
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return text
        return text

    async def request(self, descriptor: RequestDescriptor) -> Any:
        """
        Issue a request, refreshing the access token once on 401.

        Raises:
            APIResponseError: On a non-2xx response, including a 401 whose
                replay was also rejected
            NetworkError: When no response was received
            TokenRefreshError: When the access token could not be refreshed
        """
        try:
            return await self.send(descriptor)
        except APIResponseError as e:
            if (e.is_unauthorized
                    and descriptor.authenticated
                    and not descriptor.retried
                    and self._refresh_coordinator is not None):
                return await self._refresh_coordinator.handle_unauthorized(descriptor, e)
            raise

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, Optional[str]]] = None) -> Any:
        return await self.request(RequestDescriptor('GET', path, params=params, headers=dict(headers or {})))

    async def post(self, path: str, json: Any = None, form: Optional[Dict[str, Any]] = None,
                   headers: Optional[Dict[str, Optional[str]]] = None, authenticated: bool = True) -> Any:
        return await self.request(RequestDescriptor('POST', path, json=json, form=form,
                                                    headers=dict(headers or {}), authenticated=authenticated))

    async def put(self, path: str, json: Any = None, form: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, Optional[str]]] = None) -> Any:
        return await self.request(RequestDescriptor('PUT', path, json=json, form=form, headers=dict(headers or {})))

    async def patch(self, path: str, json: Any = None, form: Optional[Dict[str, Any]] = None,
                    headers: Optional[Dict[str, Optional[str]]] = None) -> Any:
        return await self.request(RequestDescriptor('PATCH', path, json=json, form=form, headers=dict(headers or {})))

    async def delete(self, path: str, params: Optional[Dict[str, Any]] = None,
                     headers: Optional[Dict[str, Optional[str]]] = None) -> Any:
        return await self.request(RequestDescriptor('DELETE', path, params=params, headers=dict(headers or {})))
