"""
Favorites Repository

A customer's favorite restaurants, kept as the ``favoriteRestaurants``
array on the user document and changed with atomic array union/remove.
"""

import logging
from functools import lru_cache
from typing import Any, Optional

from foodorder.core.errors import ErrorCode
from foodorder.core.result import Result
from foodorder.models import USERS
from foodorder.services.realtime import OnUpdate, listen
from foodorder.services.store import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    BaseDocumentStore,
    DocumentRef,
    Subscription,
    get_document_store,
)

logger = logging.getLogger(__name__)

IDS_REQUIRED = "User ID and Restaurant ID are required"


class FavoritesRepository:
    """Favorite restaurants of a user."""

    def __init__(self, store: Optional[BaseDocumentStore] = None):
        self.store = store or get_document_store()

    async def _change(self, user_id: str, restaurant_id: str, change: Any, action: str) -> Result:
        if not user_id or not restaurant_id:
            return Result.fail(IDS_REQUIRED, ErrorCode.VALIDATION_ERROR)
        try:
            await self.store.update(USERS, user_id, {
                "favoriteRestaurants": change,
                "updatedAt": SERVER_TIMESTAMP,
            })
        except Exception as e:
            logger.error(f"Failed to {action} favorite {restaurant_id} for {user_id}: {e!r}")
            result = Result.from_error(e)
            if result.error_code == ErrorCode.NOT_FOUND:
                result.error = "User not found"
            return result
        return Result.ok()

    async def add_to_favorites(self, user_id: str, restaurant_id: str) -> Result:
        return await self._change(user_id, restaurant_id, ArrayUnion(restaurant_id), "add")

    async def remove_from_favorites(self, user_id: str, restaurant_id: str) -> Result:
        return await self._change(user_id, restaurant_id, ArrayRemove(restaurant_id), "remove")

    async def toggle_favorite(self, user_id: str, restaurant_id: str, is_favorite: Optional[bool] = None) -> Result:
        """
        Flip the favorite state.

        ``is_favorite`` is the state the caller currently shows; when omitted
        it is read from the store first.
        """
        if is_favorite is None:
            current = await self.is_restaurant_favorited(user_id, restaurant_id)
            if not current.success:
                return current
            is_favorite = current.data["isFavorite"]

        if is_favorite:
            result = await self.remove_from_favorites(user_id, restaurant_id)
        else:
            result = await self.add_to_favorites(user_id, restaurant_id)
        if not result.success:
            return result
        return Result.ok({"isFavorite": not is_favorite})

    async def get_user_favorites(self, user_id: str) -> Result:
        if not user_id:
            return Result.fail("User ID is required", ErrorCode.VALIDATION_ERROR)
        try:
            snapshot = await self.store.get(USERS, user_id)
        except Exception as e:
            logger.error(f"Failed to fetch favorites for {user_id}: {e!r}")
            return Result.from_error(e)
        if not snapshot.exists:
            return Result.fail("User not found", ErrorCode.NOT_FOUND)
        return Result.ok(list(snapshot.get("favoriteRestaurants") or []))

    async def is_restaurant_favorited(self, user_id: str, restaurant_id: str) -> Result:
        favorites = await self.get_user_favorites(user_id)
        if not favorites.success:
            return favorites
        return Result.ok({"isFavorite": restaurant_id in favorites.data})

    async def listen_to_user_favorites(self, user_id: str, on_update: OnUpdate) -> Subscription:
        """Live list of favorite restaurant ids."""
        if not user_id:
            on_update(Result.fail("User ID is required", ErrorCode.VALIDATION_ERROR))
            return Subscription.closed("favorites")

        def transform(snapshot: Any) -> Result:
            if not snapshot.exists:
                return Result.fail("User not found", ErrorCode.NOT_FOUND)
            return Result.ok(list(snapshot.get("favoriteRestaurants") or []))

        return await listen(self.store, DocumentRef(USERS, user_id), transform, on_update, "favorites")


@lru_cache()
def get_favorites_repository() -> FavoritesRepository:
    return FavoritesRepository(get_document_store())
