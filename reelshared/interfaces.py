"""
Core interfaces for the Movie Review Client.

This module defines the abstract interfaces that components must implement
to ensure consistent behavior across the system.
"""

from abc import ABC, abstractmethod
from typing import Optional, Any, Dict

from .models import CredentialPair, RequestDescriptor


class ICredentialStore(ABC):
    """
    Interface for scoped persistent storage of a credential pair.

    Implementations must never raise: failures are logged, reads report
    absence and writes report ``False``.
    """

    @abstractmethod
    def get(self) -> Optional[CredentialPair]:
        """Return the stored pair, or None when nothing usable is stored."""
        pass

    @abstractmethod
    def set(self, pair: CredentialPair) -> bool:
        """Persist the pair as a single unit."""
        pass

    @abstractmethod
    def clear(self) -> bool:
        """Remove the stored pair."""
        pass


class IRequestTransport(ABC):
    """Interface for the HTTP transport used by the refresh coordinator."""

    @abstractmethod
    async def send(self, descriptor: RequestDescriptor, timeout: Optional[float] = None) -> Any:
        """Issue the request once and return the decoded body, raising on failure."""
        pass

    @abstractmethod
    def set_credential(self, access: str) -> None:
        """Set the default Authorization header."""
        pass

    @abstractmethod
    def clear_credential(self) -> None:
        """Remove the default Authorization header."""
        pass

    @property
    @abstractmethod
    def default_headers(self) -> Dict[str, str]:
        """Headers applied to every request."""
        pass
