"""
User Repository

User documents (``users/{uid}``): role selection, onboarding flag and the
device push token.

A push token belongs to at most one user. Saving it for one account clears
it from every other account in the same transaction, guarded by a
``pushTokens/{sha256(token)}`` document naming the current holder, so a
reinstalled or shared device never notifies the previous owner.
"""

import hashlib
import logging
from functools import lru_cache
from typing import Any, Optional

from foodorder.core.errors import ErrorCode, classify
from foodorder.core.result import Result
from foodorder.core.retry import retry_operation
from foodorder.models import PUSH_TOKENS, USERS, UserProfile, UserRole
from foodorder.services.realtime import OnUpdate, listen
from foodorder.services.store import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    BaseDocumentStore,
    DocumentRef,
    Query,
    Subscription,
    Transaction,
    get_document_store,
)

logger = logging.getLogger(__name__)

TOKEN_SAVE_ATTEMPTS = 3


def push_token_guard_id(token: str) -> str:
    """Guard document id for a push token (tokens may contain path characters)."""
    return hashlib.sha256(token.encode()).hexdigest()


class UserRepository:
    """Users collection access."""

    def __init__(self, store: Optional[BaseDocumentStore] = None):
        self.store = store or get_document_store()

    async def create_user_document(self, uid: str, role: Any) -> Result:
        """Create the user document after role selection."""
        try:
            user_role = UserRole(role)
        except ValueError:
            return Result.validation_error({"role": "Role must be 'user' or 'restaurant'"}, "Invalid role")
        if not uid:
            return Result.validation_error({"uid": "User ID is required"}, "User ID is required")

        try:
            await self.store.set(USERS, uid, {
                "role": user_role.value,
                "onboardingCompleted": user_role == UserRole.USER,
                "createdAt": SERVER_TIMESTAMP,
            }, merge=True)
        except Exception as e:
            logger.error(f"Error creating user document for {uid}: {e!r}")
            return Result.from_error(e, "Failed to create user profile")

        logger.info(f"User document created: {uid} ({user_role.value})")
        return Result.ok()

    async def get_user_data(self, uid: str) -> Result:
        if not uid:
            return Result.validation_error({"uid": "User ID is required"}, "User ID is required")
        try:
            snapshot = await self.store.get(USERS, uid)
        except Exception as e:
            logger.error(f"Error getting user data for {uid}: {e!r}")
            return Result.from_error(e)
        if not snapshot.exists:
            return Result.fail("User data not found", ErrorCode.NOT_FOUND)
        return Result.ok(UserProfile.from_snapshot(snapshot))

    async def update_onboarding_status(self, uid: str, completed: bool) -> Result:
        try:
            await self.store.update(USERS, uid, {"onboardingCompleted": bool(completed)})
        except Exception as e:
            logger.error(f"Error updating onboarding status for {uid}: {e!r}")
            return Result.from_error(e)
        return Result.ok()

    async def listen_user_data(self, uid: str, on_update: OnUpdate) -> Subscription:
        if not uid:
            on_update(Result.fail("User ID is required", ErrorCode.VALIDATION_ERROR))
            return Subscription.closed("user")

        def transform(snapshot: Any) -> Result:
            if not snapshot.exists:
                return Result.fail("User data not found", ErrorCode.NOT_FOUND)
            return Result.ok(UserProfile.from_snapshot(snapshot))

        return await listen(self.store, DocumentRef(USERS, uid), transform, on_update, "user data")

    # =========================================================================
    # PUSH TOKENS
    # =========================================================================

    async def save_push_token(self, user_id: str, token: str, platform: Optional[str] = None) -> Result:
        """
        Attach ``token`` to ``user_id`` and detach it from anyone else.

        The ``pushTokens`` guard document records the current holder and is
        written in the same transaction, so concurrent saves of one token
        leave exactly one holder (the loser re-runs against the new holder).
        """
        if not user_id or not token:
            return Result.fail("User ID and token are required", ErrorCode.VALIDATION_ERROR)

        guard_id = push_token_guard_id(token)
        released: list[str] = []

        async def attempt() -> None:
            released.clear()
            # Holders from before the guard existed are found by query
            legacy = await self.store.query(Query(USERS).where("pushToken", "==", token))

            async def apply(transaction: Transaction) -> None:
                guard = await transaction.get(PUSH_TOKENS, guard_id)
                candidates = {doc.id for doc in legacy.docs}
                if guard.exists and guard.get("uid"):
                    candidates.add(guard.get("uid"))
                candidates.discard(user_id)

                holders = []
                for uid in sorted(candidates):
                    holder = await transaction.get(USERS, uid)
                    if holder.exists and holder.get("pushToken") == token:
                        holders.append(uid)

                for uid in holders:
                    transaction.set(USERS, uid, {
                        "pushToken": DELETE_FIELD,
                        "pushTokenUpdatedAt": DELETE_FIELD,
                    }, merge=True)
                transaction.set(PUSH_TOKENS, guard_id, {
                    "uid": user_id,
                    "token": token,
                    "updatedAt": SERVER_TIMESTAMP,
                })
                changes = {"pushToken": token, "pushTokenUpdatedAt": SERVER_TIMESTAMP}
                if platform:
                    changes["platform"] = platform
                transaction.set(USERS, user_id, changes, merge=True)
                released[:] = holders

            await self.store.run_transaction(apply)

        try:
            await retry_operation(
                attempt,
                max_retries=TOKEN_SAVE_ATTEMPTS,
                initial_delay=0.05,
                max_delay=0.5,
                should_retry=lambda e: classify(e).code == ErrorCode.CONFLICT_ERROR,
            )
        except Exception as e:
            logger.error(f"Failed to save push token for {user_id}: {e!r}")
            return Result.from_error(e)

        if released:
            logger.info(f"Push token moved to {user_id} (removed from {', '.join(released)})")
        return Result.ok()

    async def remove_push_token(self, user_id: str) -> Result:
        if not user_id:
            return Result.fail("User ID is required", ErrorCode.VALIDATION_ERROR)

        async def apply(transaction: Transaction) -> None:
            user = await transaction.get(USERS, user_id)
            token = user.get("pushToken") if user.exists else None
            guard = await transaction.get(PUSH_TOKENS, push_token_guard_id(token)) if token else None
            transaction.update(USERS, user_id, {
                "pushToken": DELETE_FIELD,
                "pushTokenUpdatedAt": DELETE_FIELD,
            })
            if guard is not None and guard.exists and guard.get("uid") == user_id:
                transaction.delete(PUSH_TOKENS, guard.id)

        try:
            await self.store.run_transaction(apply)
        except Exception as e:
            logger.error(f"Failed to remove push token for {user_id}: {e!r}")
            return Result.from_error(e)
        return Result.ok()


@lru_cache()
def get_user_repository() -> UserRepository:
    return UserRepository(get_document_store())
