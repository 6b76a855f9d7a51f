"""
Mock Push Transport

Simulates push delivery for development and tests.
No notification leaves the process - each send is logged and recorded.

Version: 1.0.0
"""

import asyncio
import logging
import random
import uuid
from typing import Any, Optional

from foodorder.services.notifications.base import BasePushTransport, PushResult

logger = logging.getLogger(__name__)


class MockPushTransport(BasePushTransport):
    """Mock push transport for development."""

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.sent: list[dict[str, Any]] = []
        logger.info(f"MockPushTransport initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
    ) -> PushResult:
        """Simulate sending a push notification."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock push failed (simulated) to {token[:12]}...")
            return PushResult(
                success=False,
                error_message="Simulated push failure",
                provider="mock"
            )

        ticket_id = f"push_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append({"token": token, "title": title, "body": body, "data": data or {}})
        logger.info(f"Mock push sent to {token[:12]}...: {title} (ID: {ticket_id})")

        return PushResult(
            success=True,
            ticket_id=ticket_id,
            provider="mock"
        )

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
