"""
Firebase Auth Provider

Production implementation using the Identity Toolkit REST API
(``accounts:signInWithPassword`` / ``accounts:signUp``) over httpx.

Version: 1.0.0
"""

import logging
from typing import Any, Optional

import httpx

from foodorder.services.auth.base import AuthError, AuthUser, BaseAuthProvider

logger = logging.getLogger(__name__)


class FirebaseAuthProvider(BaseAuthProvider):
    """Email/password auth against Firebase."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://identitytoolkit.googleapis.com/v1",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            logger.warning("Firebase API key not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        logger.info("FirebaseAuthProvider initialized")

    @property
    def provider_name(self) -> str:
        return "firebase"

    @staticmethod
    def _error_code(response: httpx.Response) -> str:
        # Messages look like "WEAK_PASSWORD : Password should be at least 6 characters"
        try:
            message = response.json().get("error", {}).get("message", "")
        except ValueError:
            message = ""
        return message.split(" : ", 1)[0].strip() or f"HTTP_{response.status_code}"

    async def _call(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise AuthError("auth/unauthenticated", "Firebase API key not configured")

        url = f"{self.base_url}/accounts:{endpoint}"
        params = {"key": self.api_key}
        if self._client is not None:
            response = await self._client.post(url, params=params, json=payload, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, params=params, json=payload)

        if response.status_code != 200:
            code = self._error_code(response)
            logger.warning(f"Firebase {endpoint} failed: {code}")
            raise AuthError(code)
        return response.json()

    async def sign_in(self, email: str, password: str) -> AuthUser:
        body = await self._call("signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._to_user(body)

    async def sign_up(self, email: str, password: str) -> AuthUser:
        body = await self._call("signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._to_user(body)

    @staticmethod
    def _to_user(body: dict[str, Any]) -> AuthUser:
        return AuthUser(
            uid=body["localId"],
            email=body.get("email", ""),
            id_token=body.get("idToken"),
            refresh_token=body.get("refreshToken"),
        )

    async def health_check(self) -> bool:
        return bool(self.api_key)
