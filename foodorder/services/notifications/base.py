"""
Push Transport Abstract Base Class

Defines the interface for delivering push notifications to a device token.
Supports both Mock (development) and Expo (production) implementations.

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class PushResult:
    """Result from sending a push notification."""
    success: bool
    ticket_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


class BasePushTransport(ABC):
    """Abstract base class for push transports."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
    ) -> PushResult:
        """
        Deliver one notification.

        Implementations report failures through ``PushResult`` and must not
        raise for delivery problems.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass

    async def close(self) -> None:
        """Release connections held by the transport."""
        return None
