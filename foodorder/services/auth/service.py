"""
Auth Service

Holds the signed-in user for this process and wraps the provider calls in
the result envelope.

Usage:
    auth = get_auth_service()
    result = await auth.sign_in("owner@example.com", "secret123")
    if result.success:
        uid = auth.current_user.uid
"""

import logging
from typing import Callable, Optional

from foodorder.core.errors import ErrorCode
from foodorder.core.result import Result
from foodorder.services.auth.base import AuthUser, BaseAuthProvider
from foodorder.services.store.base import Subscription

logger = logging.getLogger(__name__)

AuthCallback = Callable[[Optional[AuthUser]], None]


def _missing_credentials(email: str, password: str) -> dict[str, str]:
    errors = {}
    if not email:
        errors["email"] = "Email is required"
    if not password:
        errors["password"] = "Password is required"
    return errors


class AuthService:
    """Sign-in state plus auth-state listeners."""

    def __init__(self, provider: BaseAuthProvider):
        self.provider = provider
        self._current_user: Optional[AuthUser] = None
        self._listeners: dict[int, AuthCallback] = {}
        self._next_id = 0

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._current_user

    def _set_user(self, user: Optional[AuthUser]) -> None:
        self._current_user = user
        for callback in list(self._listeners.values()):
            try:
                callback(user)
            except Exception:
                logger.exception("Auth state listener failed")

    async def sign_in(self, email: str, password: str) -> Result:
        missing = _missing_credentials(email, password)
        if missing:
            return Result.validation_error(missing)
        try:
            user = await self.provider.sign_in(email, password)
        except Exception as e:
            logger.warning(f"Sign in failed for {email}: {e!r}")
            return Result.from_error(e)

        self._set_user(user)
        logger.info(f"Signed in: {user.uid}")
        return Result.ok(user.to_dict())

    async def sign_up(self, email: str, password: str) -> Result:
        missing = _missing_credentials(email, password)
        if missing:
            return Result.validation_error(missing)
        try:
            user = await self.provider.sign_up(email, password)
        except Exception as e:
            logger.warning(f"Sign up failed for {email}: {e!r}")
            return Result.from_error(e)

        self._set_user(user)
        logger.info(f"Account created: {user.uid}")
        return Result.ok(user.to_dict())

    async def sign_out(self) -> Result:
        try:
            await self.provider.sign_out(self._current_user)
        except Exception as e:
            logger.error(f"Sign out failed: {e!r}")
            return Result.fail("Failed to sign out", ErrorCode.AUTH_ERROR)

        self._set_user(None)
        return Result.ok()

    def on_auth_state_changed(self, callback: AuthCallback) -> Subscription:
        """
        Call ``callback`` with the current user now and on every change.

        Returns a Subscription; unsubscribe to stop receiving changes.
        """
        listener_id = self._next_id
        self._next_id += 1
        self._listeners[listener_id] = callback
        try:
            callback(self._current_user)
        except Exception:
            logger.exception("Auth state listener failed")
        return Subscription(lambda: self._listeners.pop(listener_id, None), description="auth-state")
