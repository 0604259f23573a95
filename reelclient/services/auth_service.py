"""
Authentication service calls for the Movie Review Client.

Thin wrappers around the backend's auth endpoints: registration, login,
logout and profile retrieval/update. All requests go through the shared
API client so they inherit credential attachment and token refresh.
"""

import logging
from typing import Dict, Any, Optional, Tuple

from reelshared.exceptions import AuthenticationError, ErrorCode
from reelshared.models import CredentialPair, User, UploadFile

logger = logging.getLogger(__name__)


class AuthService:
    """Backend authentication and profile endpoints."""

    def __init__(self, api_client):
        self.api_client = api_client

    async def register(self, data: Dict[str, Any]) -> Tuple[User, CredentialPair]:
        """
        Register a new user account.

        Args:
            data: Registration fields (username, email, password, ...)

        Returns:
            The created user and the issued token pair
        """
        response = await self.api_client.post('auth/register/', json=data, authenticated=False)
        return self._parse_session('registration', response, nested_tokens=True)

    async def login(self, username: str, password: str) -> Tuple[User, CredentialPair]:
        """
        Authenticate with username and password.

        Returns:
            The user and the issued token pair
        """
        response = await self.api_client.post(
            'auth/login/',
            json={'username': username, 'password': password},
            authenticated=False
        )
        return self._parse_session('login', response)

    @staticmethod
    def _parse_session(action: str, response: Any, nested_tokens: bool = False) -> Tuple[User, CredentialPair]:
        """Extract the user and token pair from a login or registration response."""
        try:
            tokens = (response.get('tokens') or response) if nested_tokens else response
            return User.from_dict(response['user']), CredentialPair.from_dict(tokens)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise AuthenticationError(
                f"Malformed {action} response: {e!r}",
                ErrorCode.AUTH_INVALID_RESPONSE,
                cause=e,
                user_message="The server returned an unexpected response. Please try again."
            ) from e

    async def logout(self, refresh_token: str) -> None:
        """Invalidate the refresh token on the server."""
        await self.api_client.post('auth/logout/', json={'refresh_token': refresh_token})

    async def get_user_profile(self) -> User:
        """Fetch the current user's profile."""
        return User.from_dict(await self.api_client.get('auth/user/'))

    async def update_user_profile(
        self,
        fields: Dict[str, Any],
        profile_picture: Optional[UploadFile] = None
    ) -> User:
        """
        Update the current user's profile as a multipart form submission.

        Args:
            fields: Profile fields to change
            profile_picture: Optional new profile picture

        Returns:
            The updated user
        """
        form = dict(fields)
        if profile_picture is not None:
            form['profile_picture'] = profile_picture
        return User.from_dict(await self.api_client.patch('auth/profile/', form=form))
