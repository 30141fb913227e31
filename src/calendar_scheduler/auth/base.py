"""Authentication providers for the calendar API."""

from abc import ABC, abstractmethod
from typing import Optional

from ..utils.exceptions import AuthenticationError


class AuthProvider(ABC):
    """Abstract base class for authentication providers."""

    @abstractmethod
    def get_access_token(self) -> str:
        """
        Get a valid access token.

        Returns:
            Valid access token string

        Raises:
            AuthenticationError: If no token is available
        """

    @abstractmethod
    def clear_cache(self) -> None:
        """Forget any held token."""

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.get_access_token()}",
            "Content-Type": "application/json",
        }


class StaticTokenAuth(AuthProvider):
    """Bearer token handed over by the surrounding session."""

    def __init__(self, token: Optional[str]):
        self._token = token

    def get_access_token(self) -> str:
        if not self._token:
            raise AuthenticationError(
                "No API token configured. Set CALENDAR_API_TOKEN in .env"
            )
        return self._token

    def clear_cache(self) -> None:
        self._token = None
