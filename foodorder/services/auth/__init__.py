"""
Auth Service Factory

Returns the AuthService backed by the Mock or Firebase provider based on ENV_MODE.

Version: 1.0.0
"""

import logging
from functools import lru_cache

from foodorder.core.config import get_settings
from foodorder.services.auth.base import AuthError, AuthUser, BaseAuthProvider
from foodorder.services.auth.firebase import FirebaseAuthProvider
from foodorder.services.auth.mock import MockAuthProvider
from foodorder.services.auth.service import AuthService

logger = logging.getLogger(__name__)


@lru_cache()
def get_auth_service() -> AuthService:
    """Get the configured auth service."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Auth Service: Using MockAuthProvider (development mode)")
        return AuthService(MockAuthProvider())
    else:
        logger.info(f"Auth Service: Using FirebaseAuthProvider ({settings.env_mode.value} mode)")
        return AuthService(FirebaseAuthProvider(settings.firebase_api_key, settings.firebase_auth_url))


def reset_auth_service() -> None:
    """Clear the cached service instance."""
    get_auth_service.cache_clear()


__all__ = [
    "get_auth_service",
    "reset_auth_service",
    "AuthError",
    "AuthService",
    "AuthUser",
    "BaseAuthProvider",
    "FirebaseAuthProvider",
    "MockAuthProvider",
]
