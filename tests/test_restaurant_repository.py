"""Restaurant onboarding, updates, publishing and browsing."""

import asyncio

from conftest import seed_restaurant
from foodorder.core.errors import ErrorCode
from foodorder.models import RESTAURANT_OWNERS, RESTAURANTS, USERS, Location, Restaurant, RestaurantStatus
from foodorder.services.restaurants import ALREADY_HAS_RESTAURANT
from foodorder.services.store import StoreError

PROFILE = {
    "name": "Pho 99",
    "description": "Family-run noodle house",
    "categories": ["Vietnamese"],
    "phone": "+1 (555) 123-4567",
    "address": "99 Main St",
    "hours": {"Monday": {"open": "09:00", "close": "21:00", "isOpen": True}},
}


async def test_create_starts_as_draft(restaurants, store):
    result = await restaurants.create("owner_1", PROFILE)

    assert result.success
    restaurant_id = result.data["restaurantId"]
    stored = (await store.get(RESTAURANTS, restaurant_id)).data
    assert stored["status"] == "draft"
    assert stored["ownerId"] == "owner_1"
    assert stored["createdAt"] is not None
    assert (await store.get(RESTAURANT_OWNERS, "owner_1")).data["restaurantId"] == restaurant_id


async def test_create_ignores_protected_fields(restaurants, store):
    result = await restaurants.create("owner_1", {**PROFILE, "status": "active", "ownerId": "someone_else"})

    stored = (await store.get(RESTAURANTS, result.data["restaurantId"])).data
    assert stored["status"] == "draft"
    assert stored["ownerId"] == "owner_1"


async def test_create_validation(restaurants, store):
    result = await restaurants.create("owner_1", {"phone": "call me"})

    assert result.error_code == ErrorCode.VALIDATION_ERROR
    assert set(result.errors) == {"name", "categories", "phone"}
    assert store.commit_count == 0


async def test_create_requires_owner(restaurants):
    result = await restaurants.create("", PROFILE)

    assert result.error_code == ErrorCode.VALIDATION_ERROR
    assert "ownerId" in result.errors


async def test_one_restaurant_per_owner(restaurants, store):
    await restaurants.create("owner_1", PROFILE)

    result = await restaurants.create("owner_1", {**PROFILE, "name": "Second Place"})

    assert result.error_code == ErrorCode.CONFLICT_ERROR
    assert result.error == ALREADY_HAS_RESTAURANT
    assert result.retryable is False
    assert len(store.dump(RESTAURANTS)) == 1


async def test_concurrent_creates_for_same_owner(restaurants, store):
    results = await asyncio.gather(
        restaurants.create("owner_1", PROFILE),
        restaurants.create("owner_1", {**PROFILE, "name": "Pho 100"}),
    )

    assert sum(r.success for r in results) == 1
    loser = next(r for r in results if not r.success)
    assert loser.error_code == ErrorCode.CONFLICT_ERROR
    assert loser.error == ALREADY_HAS_RESTAURANT
    assert loser.retryable is False
    assert len(store.dump(RESTAURANTS)) == 1


async def test_get_by_owner_and_id(restaurants):
    restaurant_id = (await restaurants.create("owner_1", PROFILE)).data["restaurantId"]

    by_owner = await restaurants.get_by_owner("owner_1")
    by_id = await restaurants.get_by_id(restaurant_id)

    assert isinstance(by_owner.data, Restaurant)
    assert by_owner.data.id == restaurant_id
    assert by_id.data.name == "Pho 99"
    assert by_id.data.hours["Monday"].is_open is True


async def test_get_missing(restaurants):
    assert (await restaurants.get_by_owner("nobody")).error_code == ErrorCode.NOT_FOUND
    assert (await restaurants.get_by_id("ghost")).error_code == ErrorCode.NOT_FOUND


# =============================================================================
# UPDATE
# =============================================================================

async def test_update_business_info(restaurants, store):
    restaurant_id = (await restaurants.create("owner_1", PROFILE)).data["restaurantId"]
    before = (await store.get(RESTAURANTS, restaurant_id)).data

    result = await restaurants.update(restaurant_id, {"name": "Pho 99 Express"}, owner_id="owner_1")

    after = (await store.get(RESTAURANTS, restaurant_id)).data
    assert result.success
    assert after["name"] == "Pho 99 Express"
    assert after["updatedAt"] > before["updatedAt"]
    assert after["status"] == "draft"


async def test_update_rejects_protected_fields(restaurants, store):
    restaurant_id = (await restaurants.create("owner_1", PROFILE)).data["restaurantId"]

    result = await restaurants.update(restaurant_id, {"status": "active", "name": "Sneaky"})

    assert result.error_code == ErrorCode.VALIDATION_ERROR
    assert result.errors == {"status": "This field cannot be changed"}
    assert (await store.get(RESTAURANTS, restaurant_id)).data["name"] == "Pho 99"


async def test_update_validates_fields(restaurants):
    restaurant_id = (await restaurants.create("owner_1", PROFILE)).data["restaurantId"]

    result = await restaurants.update(restaurant_id, {
        "hours": {"Friday": {"open": "23:00", "close": "10:00", "isOpen": True}},
    })

    assert result.errors == {"hours": "Friday: Close time must be after open time"}


async def test_update_other_owner_denied(restaurants):
    restaurant_id = (await restaurants.create("owner_1", PROFILE)).data["restaurantId"]

    result = await restaurants.update(restaurant_id, {"name": "Mine Now"}, owner_id="owner_2")

    assert result.error_code == ErrorCode.PERMISSION_DENIED


async def test_update_missing(restaurants):
    result = await restaurants.update("ghost", {"name": "Anything"})

    assert result.error_code == ErrorCode.NOT_FOUND
    assert result.error == "Restaurant not found"


async def test_update_requires_changes(restaurants):
    assert (await restaurants.update("r1", {})).error_code == ErrorCode.VALIDATION_ERROR


# =============================================================================
# PUBLISH
# =============================================================================

async def test_publish_activates_and_completes_onboarding(restaurants, users, store):
    await users.create_user_document("owner_1", "restaurant")
    restaurant_id = (await restaurants.create("owner_1", PROFILE)).data["restaurantId"]
    assert (await store.get(USERS, "owner_1")).data["onboardingCompleted"] is False

    result = await restaurants.publish(restaurant_id, "owner_1")

    assert result.success
    assert result.data == {"restaurantId": restaurant_id, "status": "active"}
    stored = (await store.get(RESTAURANTS, restaurant_id)).data
    assert stored["status"] == "active"
    assert stored["publishedAt"] is not None
    assert (await store.get(USERS, "owner_1")).data["onboardingCompleted"] is True


async def test_publish_twice_keeps_first_published_at(restaurants, store):
    restaurant_id = (await restaurants.create("owner_1", PROFILE)).data["restaurantId"]
    await restaurants.publish(restaurant_id, "owner_1")
    first = (await store.get(RESTAURANTS, restaurant_id)).data["publishedAt"]

    result = await restaurants.publish(restaurant_id, "owner_1")

    assert result.success
    assert (await store.get(RESTAURANTS, restaurant_id)).data["publishedAt"] == first


async def test_publish_by_other_owner(restaurants, store):
    restaurant_id = (await restaurants.create("owner_1", PROFILE)).data["restaurantId"]

    result = await restaurants.publish(restaurant_id, "owner_2")

    assert result.error_code == ErrorCode.PERMISSION_DENIED
    assert (await store.get(RESTAURANTS, restaurant_id)).data["status"] == "draft"
    assert not (await store.get(USERS, "owner_2")).exists


async def test_publish_missing(restaurants):
    assert (await restaurants.publish("ghost", "owner_1")).error_code == ErrorCode.NOT_FOUND


async def test_publish_store_failure(restaurants, store):
    restaurant_id = (await restaurants.create("owner_1", PROFILE)).data["restaurantId"]
    store.inject_failure(StoreError("unavailable"))

    result = await restaurants.publish(restaurant_id, "owner_1")

    assert result.retryable is True
    assert (await store.get(RESTAURANTS, restaurant_id)).data["status"] == "draft"


# =============================================================================
# BROWSE
# =============================================================================

async def test_list_active(restaurants, store):
    await seed_restaurant(store, "r1", "o1", name="Pho 99", categories=["Vietnamese"])
    await seed_restaurant(store, "r2", "o2", name="Bella Napoli", categories=["Italian", "Pizza"])
    await seed_restaurant(store, "r3", "o3", name="Draft Diner", status="draft")

    everything = await restaurants.list_active()
    italian = await restaurants.list_active(categories=["Italian", "Thai"])
    searched = await restaurants.list_active(search="pho")
    limited = await restaurants.list_active(limit=1)

    assert [r.id for r in everything.data] == ["r2", "r1"]
    assert [r.id for r in italian.data] == ["r2"]
    assert [r.id for r in searched.data] == ["r1"]
    assert len(limited.data) == 1
    assert all(r.status == RestaurantStatus.ACTIVE for r in everything.data)


async def test_owner_feed(restaurants):
    updates = []
    subscription = await restaurants.listen_by_owner("owner_1", updates.append)

    await restaurants.create("owner_1", PROFILE)

    assert updates[0].error_code == ErrorCode.NOT_FOUND
    assert updates[-1].data.name == "Pho 99"
    subscription.unsubscribe()


# Restaurant r1 sits at the origin below; r2 is ~11 km north, r3 ~111 km north
ORIGIN = Location(lat=51.5, lng=-0.12)
SATURDAY_DAYTIME = {"Saturday": {"open": "09:00", "close": "21:00", "isOpen": True}}
SATURDAY_EVENING = {"Saturday": {"open": "18:00", "close": "23:00", "isOpen": True}}


async def seed_browse(store):
    await seed_restaurant(store, "r1", "o1", name="Alpha", rating=3.5, priceRange="££",
                          location={"lat": 51.5, "lng": -0.12}, hours=SATURDAY_DAYTIME)
    await seed_restaurant(store, "r2", "o2", name="Bravo", rating=4.8, priceRange="£",
                          location={"lat": 51.6, "lng": -0.12}, hours=SATURDAY_EVENING, categories=["Thai"])
    await seed_restaurant(store, "r3", "o3", name="Charlie", rating=4.2, priceRange="£££",
                          location={"lat": 52.5, "lng": -0.12}, categories=["Italian", "Pizza"])
    await seed_restaurant(store, "r4", "o4", name="Delta", categories=["Vietnamese"])


async def test_list_active_marks_open_now(restaurants, store):
    await seed_browse(store)

    result = await restaurants.list_active()

    # Saturday noon: Bravo opens in the evening, the rest are open
    assert {r.id: r.open_now for r in result.data} == {"r1": True, "r2": False, "r3": True, "r4": True}
    assert [r.id for r in result.data] == ["r3", "r1", "r4", "r2"]
    assert all(r.distance is None for r in result.data)


async def test_list_active_open_now_filter(restaurants, store):
    await seed_browse(store)

    result = await restaurants.list_active(open_now=True, limit=2)

    assert [r.id for r in result.data] == ["r3", "r1"]


async def test_list_active_sorted_by_distance(restaurants, store):
    await seed_browse(store)

    result = await restaurants.list_active(user_location=ORIGIN, sort_by="distance")

    assert [r.id for r in result.data] == ["r1", "r2", "r3", "r4"]
    assert [r.distance for r in result.data] == [0.0, 11.1, 111.2, None]


async def test_list_active_max_distance(restaurants, store):
    await seed_browse(store)

    result = await restaurants.list_active(user_location=ORIGIN, max_distance=20)

    assert sorted(r.id for r in result.data) == ["r1", "r2"]


async def test_list_active_rating_and_price(restaurants, store):
    await seed_browse(store)

    by_rating = await restaurants.list_active(sort_by="rating")
    well_rated = await restaurants.list_active(min_rating=4.0)
    cheap = await restaurants.list_active(price_range="£")
    by_price = await restaurants.list_active(sort_by="priceHigh")

    assert [r.id for r in by_rating.data] == ["r2", "r3", "r1", "r4"]
    assert sorted(r.id for r in well_rated.data) == ["r2", "r3"]
    assert [r.id for r in cheap.data] == ["r2"]
    assert by_price.data[0].id == "r3"


async def test_list_active_rejects_unknown_sort(restaurants):
    result = await restaurants.list_active(sort_by="popularity")

    assert result.error_code == ErrorCode.VALIDATION_ERROR
    assert "sortBy" in result.errors


async def test_nearby(restaurants, store):
    await seed_browse(store)

    result = await restaurants.get_nearby(51.5, -0.12, radius_km=50, limit=5)

    assert [r.id for r in result.data] == ["r1", "r2"]


async def test_featured(restaurants, store):
    await seed_browse(store)

    result = await restaurants.get_featured(limit=1)

    assert [r.id for r in result.data] == ["r2"]
    assert [r.id for r in (await restaurants.get_featured()).data] == ["r2", "r3"]


async def test_categories(restaurants, store):
    await seed_browse(store)
    await seed_restaurant(store, "r5", "o5", name="Hidden", categories=["Greek"], status="draft")

    result = await restaurants.get_categories()

    assert result.data == ["Italian", "Pizza", "Thai", "Vietnamese"]


async def test_get_by_id_with_distance(restaurants, store):
    await seed_browse(store)

    result = await restaurants.get_by_id("r2", user_location=ORIGIN)

    assert result.data.distance == 11.1
    assert result.data.open_now is False


async def test_browse_store_failure(restaurants, store):
    store.inject_failure(StoreError("unavailable"))

    result = await restaurants.get_featured()

    assert result.error_code == ErrorCode.NETWORK_ERROR
    assert result.retryable is True


async def test_restaurant_feed(restaurants, store):
    updates = []
    subscription = await restaurants.listen_restaurant("r1", updates.append)

    await seed_restaurant(store, "r1", "o1", name="Alpha", isOpen=False)
    await store.update(RESTAURANTS, "r1", {"isOpen": True})

    assert updates[0].error_code == ErrorCode.NOT_FOUND
    assert [u.data.open_now for u in updates[1:]] == [False, True]
    subscription.unsubscribe()


async def test_restaurant_feed_requires_id(restaurants):
    updates = []

    subscription = await restaurants.listen_restaurant("", updates.append)

    assert updates[0].error_code == ErrorCode.VALIDATION_ERROR
    assert not subscription.active


async def test_unreadable_restaurant_is_skipped(restaurants, store):
    await seed_browse(store)
    await seed_restaurant(store, "r9", "o9", name="Broken", hours="always")

    result = await restaurants.list_active()

    assert result.success
    assert "r9" not in {r.id for r in result.data}
    assert len(result.data) == 4
