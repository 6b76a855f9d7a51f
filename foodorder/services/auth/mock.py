"""
Mock Auth Provider

In-memory accounts for development and tests. Passwords are stored as
salted PBKDF2 hashes; error codes match the Firebase SDK.

Version: 1.0.0
"""

import asyncio
import hashlib
import hmac
import logging
import re
import secrets
import uuid
from dataclasses import dataclass

from foodorder.services.auth.base import AuthError, AuthUser, BaseAuthProvider

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
PBKDF2_ITERATIONS = 10_000


@dataclass
class _Account:
    uid: str
    email: str
    salt: bytes
    password_hash: bytes
    disabled: bool = False


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ITERATIONS)


class MockAuthProvider(BaseAuthProvider):
    """Mock auth provider for development."""

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self._accounts: dict[str, _Account] = {}
        logger.info("MockAuthProvider initialized")

    @property
    def provider_name(self) -> str:
        return "mock"

    @staticmethod
    def _normalize(email: str) -> str:
        return (email or "").strip().lower()

    def _check_email(self, email: str) -> str:
        normalized = self._normalize(email)
        if not EMAIL_PATTERN.match(normalized):
            raise AuthError("auth/invalid-email", f"Invalid email: {email!r}")
        return normalized

    async def sign_up(self, email: str, password: str) -> AuthUser:
        await asyncio.sleep(self.latency)
        normalized = self._check_email(email)

        if normalized in self._accounts:
            raise AuthError("auth/email-already-in-use")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError("auth/weak-password")

        salt = secrets.token_bytes(16)
        account = _Account(
            uid=uuid.uuid4().hex[:28],
            email=normalized,
            salt=salt,
            password_hash=_hash_password(password, salt),
        )
        self._accounts[normalized] = account
        logger.info(f"Mock account created: {normalized} ({account.uid})")
        return AuthUser(uid=account.uid, email=normalized, id_token=f"mock_{secrets.token_hex(8)}")

    async def sign_in(self, email: str, password: str) -> AuthUser:
        await asyncio.sleep(self.latency)
        normalized = self._check_email(email)

        account = self._accounts.get(normalized)
        if account is None:
            raise AuthError("auth/user-not-found")
        if account.disabled:
            raise AuthError("auth/user-disabled")
        if not hmac.compare_digest(account.password_hash, _hash_password(password or "", account.salt)):
            raise AuthError("auth/wrong-password")

        return AuthUser(uid=account.uid, email=normalized, id_token=f"mock_{secrets.token_hex(8)}")

    def disable_user(self, email: str) -> None:
        self._accounts[self._normalize(email)].disabled = True

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
