"""
Auth Provider Abstract Base Class

Defines the interface for email/password identity providers.
Supports both Mock (development) and Firebase (production) implementations.

Providers raise ``AuthError`` with Firebase-style codes
(``auth/wrong-password`` ...); the AuthService turns them into results.

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from foodorder.core.errors import ServiceError


class AuthError(ServiceError):
    """Error raised by auth providers."""


@dataclass
class AuthUser:
    """Signed-in identity."""
    uid: str
    email: str
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        # Tokens stay server-side
        return {"uid": self.uid, "email": self.email}


class BaseAuthProvider(ABC):
    """Abstract base class for auth providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthUser:
        """Authenticate an existing account."""
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> AuthUser:
        """Create an account and sign it in."""
        pass

    async def sign_out(self, user: Optional[AuthUser]) -> None:
        """Invalidate provider-side session state, if any."""
        return None

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
