"""
Menu Repository

Menu items live in ``restaurants/{restaurantId}/menuItems``. Edits go
through a transaction that re-reads the item; availability toggles and
deletes are single writes.
"""

import logging
from functools import lru_cache
from typing import Any, Optional

from pydantic import ValidationError

from foodorder.core.errors import ErrorCode, ServiceError
from foodorder.core.result import Result
from foodorder.core.validation import validate_menu_item_data
from foodorder.models import MenuItem, menu_items_path
from foodorder.services.realtime import OnUpdate, listen
from foodorder.services.store import (
    SERVER_TIMESTAMP,
    BaseDocumentStore,
    Query,
    QuerySnapshot,
    Subscription,
    Transaction,
    get_document_store,
)

logger = logging.getLogger(__name__)

IDS_REQUIRED = "Restaurant ID and Item ID are required"
READ_ONLY_FIELDS = frozenset({"id", "restaurantId", "createdAt"})


def _normalize(data: dict[str, Any]) -> dict[str, Any]:
    fields = {k: v for k, v in data.items() if k not in READ_ONLY_FIELDS}
    if "price" in fields:
        fields["price"] = round(float(fields["price"]), 2)
    for key in ("name", "description", "category"):
        if isinstance(fields.get(key), str):
            fields[key] = fields[key].strip()
    return fields


def _parse_items(snapshot: QuerySnapshot) -> list[MenuItem]:
    items = []
    for doc in snapshot.docs:
        try:
            items.append(MenuItem.from_snapshot(doc))
        except ValidationError as e:
            logger.error(f"Skipping unreadable menu item {doc.id}: {e.error_count()} validation errors")
    return items


class MenuRepository:
    """Menu item access for one store."""

    def __init__(self, store: Optional[BaseDocumentStore] = None):
        self.store = store or get_document_store()

    async def list_items(self, restaurant_id: str, available_only: bool = False) -> Result:
        if not restaurant_id:
            return Result.validation_error({"restaurantId": "Restaurant ID is required"}, "Restaurant ID is required")
        query = Query(menu_items_path(restaurant_id))
        if available_only:
            query = query.where("available", "==", True)
        try:
            snapshot = await self.store.query(query.order_by("name"))
        except Exception as e:
            logger.error(f"Failed to list menu of {restaurant_id}: {e!r}")
            return Result.from_error(e)
        return Result.ok(_parse_items(snapshot))

    async def get_item(self, restaurant_id: str, item_id: str) -> Result:
        if not restaurant_id or not item_id:
            return Result.fail(IDS_REQUIRED, ErrorCode.VALIDATION_ERROR)
        try:
            snapshot = await self.store.get(menu_items_path(restaurant_id), item_id)
        except Exception as e:
            logger.error(f"Failed to load menu item {item_id}: {e!r}")
            return Result.from_error(e)
        if not snapshot.exists:
            return Result.fail("Menu item not found", ErrorCode.NOT_FOUND)
        return Result.ok(MenuItem.from_snapshot(snapshot))

    async def add_item(self, restaurant_id: str, data: dict[str, Any]) -> Result:
        """
        Add a menu item (available unless stated otherwise).

        Returns:
            Result with ``{"itemId"}``
        """
        if not restaurant_id:
            return Result.validation_error({"restaurantId": "Restaurant ID is required"}, "Restaurant ID is required")
        errors = validate_menu_item_data(data)
        if errors:
            return Result.validation_error(errors)

        fields = _normalize(data)
        fields.setdefault("available", True)
        try:
            item_id = await self.store.add(menu_items_path(restaurant_id), {
                **fields,
                "restaurantId": restaurant_id,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            })
        except Exception as e:
            logger.error(f"Failed to add menu item to {restaurant_id}: {e!r}")
            return Result.from_error(e)

        logger.info(f"Menu item added: {item_id} ({fields.get('name')}) to {restaurant_id}")
        return Result.ok({"itemId": item_id})

    async def update_item(self, restaurant_id: str, item_id: str, data: dict[str, Any]) -> Result:
        if not restaurant_id or not item_id:
            return Result.fail(IDS_REQUIRED, ErrorCode.VALIDATION_ERROR)
        errors = validate_menu_item_data(data, partial=True)
        if errors:
            return Result.validation_error(errors)

        path = menu_items_path(restaurant_id)
        fields = _normalize(data)

        async def apply(transaction: Transaction) -> None:
            snapshot = await transaction.get(path, item_id)
            if not snapshot.exists:
                raise ServiceError(ErrorCode.NOT_FOUND, "Menu item not found")
            transaction.update(path, item_id, {**fields, "updatedAt": SERVER_TIMESTAMP})

        try:
            await self.store.run_transaction(apply)
        except Exception as e:
            logger.error(f"Failed to update menu item {item_id}: {e!r}")
            return Result.from_error(e)
        return Result.ok({"itemId": item_id})

    async def update_availability(self, restaurant_id: str, item_id: str, available: bool) -> Result:
        if not restaurant_id or not item_id:
            return Result.fail(IDS_REQUIRED, ErrorCode.VALIDATION_ERROR)
        try:
            await self.store.update(menu_items_path(restaurant_id), item_id, {
                "available": bool(available),
                "updatedAt": SERVER_TIMESTAMP,
            })
        except Exception as e:
            result = Result.from_error(e)
            if result.error_code == ErrorCode.NOT_FOUND:
                result.error = "Menu item not found"
            logger.error(f"Failed to update availability of {item_id}: {e!r}")
            return result
        return Result.ok({"itemId": item_id, "available": bool(available)})

    async def delete_item(self, restaurant_id: str, item_id: str) -> Result:
        if not restaurant_id or not item_id:
            return Result.fail(IDS_REQUIRED, ErrorCode.VALIDATION_ERROR)
        try:
            await self.store.delete(menu_items_path(restaurant_id), item_id)
        except Exception as e:
            logger.error(f"Failed to delete menu item {item_id}: {e!r}")
            return Result.from_error(e)
        logger.info(f"Menu item deleted: {item_id} from {restaurant_id}")
        return Result.ok()

    async def listen_items(self, restaurant_id: str, on_update: OnUpdate) -> Subscription:
        """Live menu ordered by name."""
        if not restaurant_id:
            on_update(Result.fail("Restaurant ID is required", ErrorCode.VALIDATION_ERROR))
            return Subscription.closed("menu items")
        return await listen(
            self.store,
            Query(menu_items_path(restaurant_id)).order_by("name"),
            lambda snapshot: Result.ok(_parse_items(snapshot)),
            on_update,
            "menu items",
        )


@lru_cache()
def get_menu_repository() -> MenuRepository:
    return MenuRepository(get_document_store())
