"""
Shared fixtures.

Everything runs against the in-memory store and mock transports; no
network, database or Redis is needed.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ["ENV_MODE"] = "development"
os.environ["DEDUPE_BACKEND"] = "memory"

from foodorder.core.config import get_settings  # noqa: E402
from foodorder.models import ORDERS, RESTAURANTS, USERS  # noqa: E402
from foodorder.services.auth import AuthService, MockAuthProvider  # noqa: E402
from foodorder.services.favorites import FavoritesRepository  # noqa: E402
from foodorder.services.menu import MenuRepository  # noqa: E402
from foodorder.services.notifications import (  # noqa: E402
    InMemoryDedupeCache,
    MockPushTransport,
    NotificationDispatcher,
)
from foodorder.services.orders import OrderRepository  # noqa: E402
from foodorder.services.restaurants import RestaurantRepository  # noqa: E402
from foodorder.services.store import InMemoryDocumentStore  # noqa: E402
from foodorder.services.users import UserRepository  # noqa: E402

BASE_TIME = datetime(2026, 1, 17, 12, 0, tzinfo=timezone.utc)


class TickClock:
    """Datetime clock that moves one second forward on every read."""

    def __init__(self, start: datetime = BASE_TIME):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> TickClock:
    return TickClock()


@pytest.fixture
def store(clock) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def transport() -> MockPushTransport:
    return MockPushTransport()


@pytest.fixture
def dedupe_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def dedupe(dedupe_clock) -> InMemoryDedupeCache:
    return InMemoryDedupeCache(window=5, ttl=60, max_entries=100, clock=dedupe_clock)


@pytest.fixture
async def dispatcher(store, transport, dedupe):
    dispatcher = NotificationDispatcher(store=store, transport=transport, dedupe=dedupe)
    yield dispatcher
    await dispatcher.wait_idle()


@pytest.fixture
def orders(store, dispatcher) -> OrderRepository:
    return OrderRepository(store, dispatcher)


@pytest.fixture
def restaurants(store) -> RestaurantRepository:
    return RestaurantRepository(store)


@pytest.fixture
def menu(store) -> MenuRepository:
    return MenuRepository(store)


@pytest.fixture
def users(store) -> UserRepository:
    return UserRepository(store)


@pytest.fixture
def favorites(store) -> FavoritesRepository:
    return FavoritesRepository(store)


@pytest.fixture
def auth() -> AuthService:
    return AuthService(MockAuthProvider())


# =============================================================================
# SEED HELPERS
# =============================================================================

def order_payload(**overrides):
    payload = {
        "customerId": "cust_1",
        "customerName": "Jane Smith",
        "restaurantId": "rest_1",
        "restaurantName": "Pho 99",
        "items": [
            {"menuItemId": "item_1", "name": "Pho Tai", "price": 12.5, "quantity": 2},
            {"menuItemId": "item_2", "name": "Iced Coffee", "price": 4.25, "quantity": 1},
        ],
    }
    payload.update(overrides)
    return payload


async def seed_order(store, order_id="order_1", status="Pending", restaurant_id="rest_1", **fields):
    """Write an order document directly."""
    await store.set(ORDERS, order_id, {
        "restaurantId": restaurant_id,
        "customerId": "cust_1",
        "customerName": "Jane Smith",
        "restaurantName": "Pho 99",
        "items": [{"name": "Pho Tai", "price": 12.5, "quantity": 1}],
        "status": status,
        "createdAt": BASE_TIME,
        **fields,
    })
    return order_id


async def seed_push_user(store, uid, token, **fields):
    await store.set(USERS, uid, {"role": "user", "pushToken": token, **fields})


async def seed_restaurant(store, restaurant_id="rest_1", owner_id="owner_1", **fields):
    await store.set(RESTAURANTS, restaurant_id, {
        "ownerId": owner_id,
        "name": "Pho 99",
        "categories": ["Vietnamese"],
        "status": "active",
        **fields,
    })
