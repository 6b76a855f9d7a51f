"""
App Settings Repository

Per-user preferences (notifications toggle, printer settings) stored on
the signed-in user's document. Every call needs a signed-in user and
fails with AUTH_ERROR otherwise.
"""

import logging
from functools import lru_cache
from typing import Any, Optional

from foodorder.core.errors import ErrorCode
from foodorder.core.result import Result
from foodorder.models import USERS, AppSettings
from foodorder.services.auth import AuthService, get_auth_service
from foodorder.services.realtime import OnUpdate, listen
from foodorder.services.store import (
    SERVER_TIMESTAMP,
    BaseDocumentStore,
    DocumentRef,
    Subscription,
    get_document_store,
)

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = frozenset({"notificationsEnabled", "printerSettings"})


def settings_from(data: Optional[dict[str, Any]]) -> AppSettings:
    """Settings view of a user document; missing values take defaults."""
    data = data or {}
    return AppSettings(
        notifications_enabled=data.get("notificationsEnabled", True) is not False,
        printer_settings=data.get("printerSettings") or {},
    )


def _not_signed_in() -> Result:
    return Result.fail("User not authenticated", ErrorCode.AUTH_ERROR, retryable=False)


class AppSettingsRepository:
    """Settings of the current user."""

    def __init__(self, store: Optional[BaseDocumentStore] = None, auth: Optional[AuthService] = None):
        self.store = store or get_document_store()
        self.auth = auth or get_auth_service()

    async def get_app_settings(self) -> Result:
        user = self.auth.current_user
        if user is None:
            return _not_signed_in()
        try:
            snapshot = await self.store.get(USERS, user.uid)
        except Exception as e:
            logger.error(f"Failed to get settings for {user.uid}: {e!r}")
            return Result.from_error(e)
        return Result.ok(settings_from(snapshot.data))

    async def update_app_settings(self, settings: dict[str, Any]) -> Result:
        user = self.auth.current_user
        if user is None:
            return _not_signed_in()
        if not settings or not isinstance(settings, dict):
            return Result.fail("Settings data is required", ErrorCode.VALIDATION_ERROR, retryable=False)

        errors = {key: "Unknown setting" for key in settings if key not in SETTINGS_FIELDS}
        if "notificationsEnabled" in settings and not isinstance(settings["notificationsEnabled"], bool):
            errors["notificationsEnabled"] = "Must be true or false"
        if "printerSettings" in settings and not isinstance(settings["printerSettings"], dict):
            errors["printerSettings"] = "Must be an object"
        if errors:
            return Result.validation_error(errors)

        try:
            await self.store.update(USERS, user.uid, {**settings, "settingsUpdatedAt": SERVER_TIMESTAMP})
        except Exception as e:
            logger.error(f"Failed to update settings for {user.uid}: {e!r}")
            result = Result.from_error(e)
            if result.error_code == ErrorCode.NOT_FOUND:
                result.error = "User not found"
            return result
        return Result.ok()

    async def listen_app_settings(self, on_update: OnUpdate) -> Subscription:
        user = self.auth.current_user
        if user is None:
            on_update(_not_signed_in())
            return Subscription.closed("settings")
        return await listen(
            self.store,
            DocumentRef(USERS, user.uid),
            lambda snapshot: Result.ok(settings_from(snapshot.data)),
            on_update,
            "settings",
        )


@lru_cache()
def get_app_settings_repository() -> AppSettingsRepository:
    return AppSettingsRepository(get_document_store(), get_auth_service())
