"""
Expo Push Transport

Production implementation posting to the Expo push service over httpx.

Version: 1.0.0
"""

import logging
from typing import Any, Optional

import httpx

from foodorder.core.config import get_settings
from foodorder.services.notifications.base import BasePushTransport, PushResult

logger = logging.getLogger(__name__)


class ExpoPushTransport(BasePushTransport):
    """Push transport for Expo push tokens (``ExponentPushToken[...]``)."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self.push_url = settings.expo_push_url
        self.timeout = settings.push_timeout_seconds

        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if settings.expo_access_token:
            headers["Authorization"] = f"Bearer {settings.expo_access_token}"
        else:
            logger.warning("Expo access token not configured")
        self.headers = headers
        self._client = client
        # A client created here is ours to close
        self._owns_client = client is None

        logger.info("ExpoPushTransport initialized")

    @property
    def provider_name(self) -> str:
        return "expo"

    @property
    def client(self) -> httpx.AsyncClient:
        """Shared connection pool, created on first use."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("ExpoPushTransport client closed")

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        return await self.client.post(self.push_url, json=payload, headers=self.headers, timeout=self.timeout)

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
    ) -> PushResult:
        """Send a push notification via Expo."""
        payload = {
            "to": token,
            "title": title,
            "body": body,
            "data": data or {},
            "sound": "default",
            "channelId": "orders",
        }

        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            logger.error(f"Expo push request failed: {e}")
            return PushResult(
                success=False,
                error_message=str(e) or type(e).__name__,
                provider="expo"
            )

        if response.status_code != 200:
            logger.error(f"Expo push error {response.status_code}: {response.text[:200]}")
            return PushResult(
                success=False,
                error_message=f"HTTP {response.status_code}",
                provider="expo"
            )

        ticket = response.json().get("data") or {}
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}

        if ticket.get("status") != "ok":
            message = ticket.get("message") or "Push rejected"
            logger.warning(f"Expo push rejected for {token[:20]}...: {message}")
            return PushResult(
                success=False,
                error_message=message,
                provider="expo"
            )

        logger.info(f"Expo push sent: {title} (ticket: {ticket.get('id')})")
        return PushResult(
            success=True,
            ticket_id=ticket.get("id"),
            provider="expo"
        )

    async def health_check(self) -> bool:
        """Expo has no health endpoint; check the host answers at all."""
        try:
            response = await self.client.get(self.push_url.rsplit("/--/", 1)[0], timeout=5.0)
            return response.status_code < 500
        except httpx.HTTPError as e:
            logger.error(f"Expo health check failed: {e}")
            return False
