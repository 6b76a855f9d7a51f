"""Menu item management."""

from foodorder.core.errors import ErrorCode
from foodorder.models import MenuItem, menu_items_path
from foodorder.services.store import StoreError

ITEMS_PATH = menu_items_path("rest_1")


async def add(menu, **fields):
    result = await menu.add_item("rest_1", {"name": "Pho Tai", "price": 12.5, **fields})
    return result.data["itemId"]


async def test_add_item_defaults(menu, store):
    result = await menu.add_item("rest_1", {"name": "  Pho Tai ", "price": "12.499", "category": "Noodles"})

    assert result.success
    stored = (await store.get(ITEMS_PATH, result.data["itemId"])).data
    assert stored["name"] == "Pho Tai"
    assert stored["price"] == 12.5
    assert stored["available"] is True
    assert stored["restaurantId"] == "rest_1"
    assert stored["createdAt"] is not None


async def test_add_item_respects_availability(menu, store):
    item_id = await add(menu, available=False)

    assert (await store.get(ITEMS_PATH, item_id)).data["available"] is False


async def test_add_item_validation(menu, store):
    result = await menu.add_item("rest_1", {"name": "P", "price": -2})

    assert result.error_code == ErrorCode.VALIDATION_ERROR
    assert set(result.errors) == {"name", "price"}
    assert store.commit_count == 0


async def test_add_item_requires_restaurant(menu):
    result = await menu.add_item("", {"name": "Pho", "price": 1})

    assert result.error_code == ErrorCode.VALIDATION_ERROR


async def test_list_items_sorted_by_name(menu):
    await add(menu, name="Spring Rolls")
    await add(menu, name="Banh Mi", available=False)
    await add(menu, name="Iced Coffee")

    everything = await menu.list_items("rest_1")
    available = await menu.list_items("rest_1", available_only=True)

    assert [i.name for i in everything.data] == ["Banh Mi", "Iced Coffee", "Spring Rolls"]
    assert [i.name for i in available.data] == ["Iced Coffee", "Spring Rolls"]
    assert all(isinstance(i, MenuItem) for i in everything.data)


async def test_get_item(menu):
    item_id = await add(menu)

    assert (await menu.get_item("rest_1", item_id)).data.price == 12.5
    assert (await menu.get_item("rest_1", "ghost")).error_code == ErrorCode.NOT_FOUND
    assert (await menu.get_item("rest_other", item_id)).error_code == ErrorCode.NOT_FOUND


async def test_update_item(menu, store):
    item_id = await add(menu)

    result = await menu.update_item("rest_1", item_id, {"price": 13, "restaurantId": "hijack"})

    stored = (await store.get(ITEMS_PATH, item_id)).data
    assert result.success
    assert stored["price"] == 13.0
    assert stored["name"] == "Pho Tai"
    assert stored["restaurantId"] == "rest_1"


async def test_update_item_validation(menu):
    item_id = await add(menu)

    result = await menu.update_item("rest_1", item_id, {"price": 50_000})

    assert result.errors == {"price": "Price seems too high. Please verify."}


async def test_update_missing_item(menu):
    result = await menu.update_item("rest_1", "ghost", {"price": 1})

    assert result.error_code == ErrorCode.NOT_FOUND
    assert result.error == "Menu item not found"


async def test_update_availability(menu, store):
    item_id = await add(menu)

    result = await menu.update_availability("rest_1", item_id, False)

    assert result.data == {"itemId": item_id, "available": False}
    assert (await store.get(ITEMS_PATH, item_id)).data["available"] is False
    missing = await menu.update_availability("rest_1", "ghost", True)
    assert missing.error == "Menu item not found"


async def test_delete_item(menu, store):
    item_id = await add(menu)

    assert (await menu.delete_item("rest_1", item_id)).success
    assert not (await store.get(ITEMS_PATH, item_id)).exists


async def test_delete_store_failure(menu, store):
    item_id = await add(menu)
    store.inject_failure(StoreError("permission-denied"))

    result = await menu.delete_item("rest_1", item_id)

    assert result.error_code == ErrorCode.PERMISSION_DENIED
    assert result.retryable is False


async def test_menu_feed(menu):
    updates = []
    subscription = await menu.listen_items("rest_1", updates.append)

    await add(menu, name="Pho Ga")
    await add(menu, name="Bun Bo")

    assert updates[0].data == []
    assert [i.name for i in updates[-1].data] == ["Bun Bo", "Pho Ga"]
    subscription.unsubscribe()


async def test_unreadable_item_is_skipped(menu, store):
    await add(menu, name="Pho Ga")
    await store.set(ITEMS_PATH, "broken", {"name": "Mystery", "price": "abc"})
    await store.set(ITEMS_PATH, "unnamed", {"price": 3.0})

    result = await menu.list_items("rest_1")

    assert result.success
    assert [i.id for i in result.data][-1] == "unnamed"
    assert [i.name for i in result.data] == ["Pho Ga", None]


async def test_feed_survives_unreadable_item(menu, store):
    updates = []
    subscription = await menu.listen_items("rest_1", updates.append)

    await store.set(ITEMS_PATH, "broken", {"name": "Mystery", "price": "abc"})
    await add(menu, name="Pho Ga")

    assert all(u.success for u in updates)
    assert [i.name for i in updates[-1].data] == ["Pho Ga"]
    subscription.unsubscribe()
