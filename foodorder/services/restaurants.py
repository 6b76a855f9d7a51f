"""
Restaurant Repository

Restaurant profiles: creation during onboarding, business-info updates,
publishing, and the customer-facing browse views: open-now status, distance
from the customer, nearby, featured and cuisine lists.

One restaurant per owner is enforced by an owner guard document
(``restaurantOwners/{ownerId}``) created in the same transaction as the
restaurant; a second create for the same owner reads the guard and fails
with CONFLICT_ERROR, and a concurrent one aborts on commit.

Usage:
    restaurants = get_restaurant_repository()
    created = await restaurants.create(owner_id, {"name": "Pho 99", "categories": ["Vietnamese"]})
    await restaurants.publish(created.data["restaurantId"], owner_id)
"""

import logging
from functools import lru_cache
from typing import Any, Optional

from pydantic import ValidationError

from foodorder.core.errors import ErrorCode, ServiceError
from foodorder.core.result import Result
from foodorder.core.availability import calculate_distance, is_restaurant_open
from foodorder.core.validation import validate_restaurant_data
from foodorder.models import RESTAURANT_OWNERS, RESTAURANTS, USERS, Location, Restaurant, RestaurantStatus
from foodorder.services.realtime import OnUpdate, listen
from foodorder.services.store import (
    SERVER_TIMESTAMP,
    BaseDocumentStore,
    DocumentRef,
    DocumentSnapshot,
    Query,
    QuerySnapshot,
    Subscription,
    Transaction,
    get_document_store,
)

logger = logging.getLogger(__name__)

# Fields only the repository itself may write
PROTECTED_FIELDS = frozenset({"ownerId", "status", "publishedAt", "createdAt", "id", "openNow", "distance"})

ALREADY_HAS_RESTAURANT = "You already have a restaurant"

SORT_OPTIONS = ("distance", "rating", "priceLow", "priceHigh")
PRICE_ORDER = {"£": 1, "££": 2, "£££": 3, "££££": 4}
FEATURED_MIN_RATING = 4.0


def _sort_restaurants(restaurants: list[Restaurant], sort_by: Optional[str]) -> None:
    if sort_by == "distance":
        # Unknown distances go last
        restaurants.sort(key=lambda r: r.distance if r.distance is not None else float("inf"))
    elif sort_by == "rating":
        restaurants.sort(key=lambda r: r.rating or 0, reverse=True)
    elif sort_by in ("priceLow", "priceHigh"):
        restaurants.sort(key=lambda r: PRICE_ORDER.get(r.price_range, 2), reverse=sort_by == "priceHigh")
    else:
        restaurants.sort(key=lambda r: (not r.open_now, -(r.rating or 0)))


class RestaurantRepository:
    """Restaurants collection access."""

    def __init__(self, store: Optional[BaseDocumentStore] = None):
        self.store = store or get_document_store()

    # =========================================================================
    # READ
    # =========================================================================

    async def get_by_owner(self, owner_id: str) -> Result:
        if not owner_id:
            return Result.validation_error({"ownerId": "Owner ID is required"}, "Owner ID is required")
        try:
            snapshot = await self.store.query(Query(RESTAURANTS).where("ownerId", "==", owner_id).limit(1))
        except Exception as e:
            logger.error(f"Error getting restaurant for owner {owner_id}: {e!r}")
            return Result.from_error(e)
        if snapshot.empty:
            return Result.fail("Restaurant not found", ErrorCode.NOT_FOUND)
        return Result.ok(Restaurant.from_snapshot(snapshot.docs[0]))

    async def get_by_id(self, restaurant_id: str, user_location: Optional[Location] = None) -> Result:
        """Single restaurant with ``openNow``, and ``distance`` when a location is given."""
        if not restaurant_id:
            return Result.validation_error({"restaurantId": "Restaurant ID is required"}, "Restaurant ID is required")
        try:
            snapshot = await self.store.get(RESTAURANTS, restaurant_id)
        except Exception as e:
            logger.error(f"Error getting restaurant {restaurant_id}: {e!r}")
            return Result.from_error(e)
        if not snapshot.exists:
            return Result.fail("Restaurant not found", ErrorCode.NOT_FOUND)
        return Result.ok(self._enrich(snapshot, user_location))

    async def list_active(
        self,
        categories: Optional[list[str]] = None,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        user_location: Optional[Location] = None,
        sort_by: Optional[str] = None,
        max_distance: Optional[float] = None,
        open_now: bool = False,
        min_rating: Optional[float] = None,
        price_range: Optional[str] = None,
    ) -> Result:
        """
        Published restaurants for the customer browse screens.

        Every restaurant comes back with ``openNow`` computed; ``distance``
        (km) is added when a user location is given and distance matters
        (``sort_by="distance"`` or ``max_distance``).

        Args:
            categories: Match any of these cuisines
            limit: Maximum number of restaurants
            search: Case-insensitive match on name, description or cuisine
            user_location: Customer position for distances
            sort_by: "distance", "rating", "priceLow", "priceHigh"; default
                is open restaurants first, then by rating
            max_distance: Drop restaurants further away than this (km)
            open_now: Only restaurants open right now
            min_rating: Minimum rating
            price_range: Exact price band, e.g. "££"
        """
        if sort_by is not None and sort_by not in SORT_OPTIONS:
            return Result.validation_error(
                {"sortBy": f"Sort must be one of: {', '.join(SORT_OPTIONS)}"},
                "Invalid sort option",
            )

        query = Query(RESTAURANTS).where("status", "==", RestaurantStatus.ACTIVE.value)
        if categories:
            query = query.where("categories", "array-contains-any", list(categories))
        if min_rating is not None:
            query = query.where("rating", ">=", min_rating)
        if price_range:
            query = query.where("priceRange", "==", price_range)
        # Sorting and most filters run here, so the limit is applied afterwards
        query = query.order_by("name")

        try:
            snapshot = await self.store.query(query)
        except Exception as e:
            logger.error(f"Error listing restaurants: {e!r}")
            return Result.from_error(e)

        needs_distance = sort_by == "distance" or max_distance is not None
        restaurants = []
        for doc in snapshot.docs:
            try:
                restaurants.append(self._enrich(doc, user_location if needs_distance else None))
            except ValidationError as e:
                logger.error(f"Skipping unreadable restaurant {doc.id}: {e.error_count()} validation errors")

        if search:
            needle = search.strip().lower()
            restaurants = [
                r for r in restaurants
                if needle in r.name.lower()
                or needle in r.description.lower()
                or any(needle in c.lower() for c in r.categories)
            ]
        if open_now:
            restaurants = [r for r in restaurants if r.open_now]
        if max_distance is not None and user_location is not None:
            restaurants = [r for r in restaurants if r.distance is not None and r.distance <= max_distance]

        _sort_restaurants(restaurants, sort_by)
        if limit:
            restaurants = restaurants[:limit]
        return Result.ok(restaurants)

    async def get_nearby(self, lat: float, lng: float, radius_km: float = 10, limit: int = 10) -> Result:
        """Restaurants within ``radius_km`` of a point, nearest first."""
        return await self.list_active(
            user_location=Location(lat=lat, lng=lng),
            sort_by="distance",
            max_distance=radius_km,
            limit=limit,
        )

    async def get_featured(self, limit: int = 6) -> Result:
        """Best rated restaurants (rating 4.0 and up)."""
        result = await self.list_active(min_rating=FEATURED_MIN_RATING, sort_by="rating")
        if not result.success:
            return result
        return Result.ok(result.data[:limit])

    async def get_categories(self) -> Result:
        """Sorted cuisines offered by published restaurants."""
        result = await self.list_active()
        if not result.success:
            return result
        return Result.ok(sorted({c for r in result.data for c in r.categories}))

    def _enrich(self, snapshot: Any, user_location: Optional[Location] = None) -> Restaurant:
        restaurant = Restaurant.from_snapshot(snapshot)
        restaurant.open_now = is_restaurant_open(restaurant, self.store.now())
        if user_location is not None and restaurant.location is not None:
            restaurant.distance = calculate_distance(
                user_location.lat, user_location.lng,
                restaurant.location.lat, restaurant.location.lng,
            )
        return restaurant

    # =========================================================================
    # WRITE
    # =========================================================================

    async def create(self, owner_id: str, data: dict[str, Any]) -> Result:
        """
        Create the owner's restaurant in ``draft``.

        Returns:
            Result with ``{"restaurantId"}``
        """
        if not owner_id:
            return Result.validation_error({"ownerId": "Owner ID is required"}, "Owner ID is required")

        fields = {k: v for k, v in data.items() if k not in PROTECTED_FIELDS}
        errors = validate_restaurant_data({"name": "", "categories": [], **fields})
        if errors:
            return Result.validation_error(errors)

        try:
            existing = await self.store.query(Query(RESTAURANTS).where("ownerId", "==", owner_id).limit(1))
            if not existing.empty:
                return Result.fail(ALREADY_HAS_RESTAURANT, ErrorCode.CONFLICT_ERROR, retryable=False)

            restaurant_id = self.store.new_id()

            async def apply(transaction: Transaction) -> None:
                guard = await transaction.get(RESTAURANT_OWNERS, owner_id)
                if guard.exists:
                    raise ServiceError(ErrorCode.CONFLICT_ERROR, ALREADY_HAS_RESTAURANT)
                transaction.create(RESTAURANT_OWNERS, owner_id, {
                    "restaurantId": restaurant_id,
                    "createdAt": SERVER_TIMESTAMP,
                })
                transaction.create(RESTAURANTS, restaurant_id, {
                    **fields,
                    "ownerId": owner_id,
                    "status": RestaurantStatus.DRAFT.value,
                    "createdAt": SERVER_TIMESTAMP,
                    "updatedAt": SERVER_TIMESTAMP,
                })

            await self.store.run_transaction(apply)
        except Exception as e:
            result = Result.from_error(e)
            if result.error_code == ErrorCode.CONFLICT_ERROR:
                logger.warning(f"Owner {owner_id} already has a restaurant")
                result.error = ALREADY_HAS_RESTAURANT
                result.retryable = False
            else:
                logger.error(f"Error creating restaurant for {owner_id}: {e!r}")
            return result

        logger.info(f"Restaurant created: {restaurant_id} (owner {owner_id})")
        return Result.ok({"restaurantId": restaurant_id})

    async def update(self, restaurant_id: str, data: dict[str, Any], owner_id: Optional[str] = None) -> Result:
        """
        Update business info.

        Protected fields are rejected; ``owner_id``, when given, must match.
        """
        if not restaurant_id:
            return Result.validation_error({"restaurantId": "Restaurant ID is required"}, "Restaurant ID is required")
        if not data:
            return Result.validation_error({"data": "No changes provided"}, "No changes provided")

        protected = sorted(PROTECTED_FIELDS.intersection(data))
        if protected:
            return Result.validation_error(
                {field: "This field cannot be changed" for field in protected},
                f"Cannot update protected fields: {', '.join(protected)}",
            )

        errors = validate_restaurant_data(data)
        if errors:
            return Result.validation_error(errors)

        async def apply(transaction: Transaction) -> None:
            snapshot = await transaction.get(RESTAURANTS, restaurant_id)
            if not snapshot.exists:
                raise ServiceError(ErrorCode.NOT_FOUND, "Restaurant not found")
            if owner_id and snapshot.get("ownerId") != owner_id:
                raise ServiceError(ErrorCode.PERMISSION_DENIED, "You do not have permission to edit this restaurant")
            transaction.update(RESTAURANTS, restaurant_id, {**data, "updatedAt": SERVER_TIMESTAMP})

        try:
            await self.store.run_transaction(apply)
        except Exception as e:
            logger.error(f"Error updating restaurant {restaurant_id}: {e!r}")
            return Result.from_error(e)

        logger.info(f"Restaurant updated: {restaurant_id} ({', '.join(sorted(data))})")
        return Result.ok({"restaurantId": restaurant_id})

    async def publish(self, restaurant_id: str, owner_id: str) -> Result:
        """
        Make the restaurant visible to customers and finish onboarding.

        Both writes go in one batch. Publishing an active restaurant again
        succeeds and keeps the original ``publishedAt``.
        """
        if not restaurant_id or not owner_id:
            return Result.fail("Restaurant ID and owner ID are required", ErrorCode.VALIDATION_ERROR)

        try:
            snapshot = await self.store.get(RESTAURANTS, restaurant_id)
            if not snapshot.exists:
                return Result.fail("Restaurant not found", ErrorCode.NOT_FOUND)
            if snapshot.get("ownerId") != owner_id:
                return Result.fail("You do not have permission to publish this restaurant", ErrorCode.PERMISSION_DENIED)

            changes: dict[str, Any] = {"status": RestaurantStatus.ACTIVE.value}
            if not snapshot.get("publishedAt"):
                changes["publishedAt"] = SERVER_TIMESTAMP

            batch = self.store.batch()
            batch.update(RESTAURANTS, restaurant_id, changes)
            batch.set(USERS, owner_id, {"onboardingCompleted": True}, merge=True)
            await batch.commit()
        except Exception as e:
            logger.error(f"Error publishing restaurant {restaurant_id}: {e!r}")
            return Result.from_error(e)

        logger.info(f"Restaurant published: {restaurant_id}")
        return Result.ok({"restaurantId": restaurant_id, "status": RestaurantStatus.ACTIVE.value})

    # =========================================================================
    # LISTENERS
    # =========================================================================

    async def listen_by_owner(self, owner_id: str, on_update: OnUpdate) -> Subscription:
        """Live view of the owner's restaurant (NOT_FOUND while none exists)."""
        if not owner_id:
            on_update(Result.fail("Owner ID is required", ErrorCode.VALIDATION_ERROR))
            return Subscription.closed("restaurant")

        def transform(snapshot: QuerySnapshot) -> Result:
            if snapshot.empty:
                return Result.fail("Restaurant not found", ErrorCode.NOT_FOUND)
            return Result.ok(Restaurant.from_snapshot(snapshot.docs[0]))

        return await listen(
            self.store,
            Query(RESTAURANTS).where("ownerId", "==", owner_id).limit(1),
            transform,
            on_update,
            "restaurant",
        )

    async def listen_restaurant(self, restaurant_id: str, on_update: OnUpdate) -> Subscription:
        """Live view of one restaurant for the customer detail screen."""
        if not restaurant_id:
            on_update(Result.fail("Restaurant ID is required", ErrorCode.VALIDATION_ERROR))
            return Subscription.closed("restaurant")

        def transform(snapshot: DocumentSnapshot) -> Result:
            if not snapshot.exists:
                return Result.fail("Restaurant not found", ErrorCode.NOT_FOUND)
            return Result.ok(self._enrich(snapshot))

        return await listen(self.store, DocumentRef(RESTAURANTS, restaurant_id), transform, on_update, "restaurant")


@lru_cache()
def get_restaurant_repository() -> RestaurantRepository:
    return RestaurantRepository(get_document_store())
