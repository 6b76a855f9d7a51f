"""HTTP and WebSocket surface."""

import pytest
from fastapi.testclient import TestClient

from conftest import order_payload, seed_order, seed_restaurant
from foodorder.main import app
from foodorder.services.favorites import FavoritesRepository, get_favorites_repository
from foodorder.services.menu import MenuRepository, get_menu_repository
from foodorder.services.orders import OrderRepository, get_order_repository
from foodorder.services.restaurants import RestaurantRepository, get_restaurant_repository
from foodorder.services.users import UserRepository, get_user_repository


@pytest.fixture
def client(store):
    app.dependency_overrides = {
        get_order_repository: lambda: OrderRepository(store),
        get_restaurant_repository: lambda: RestaurantRepository(store),
        get_menu_repository: lambda: MenuRepository(store),
        get_user_repository: lambda: UserRepository(store),
        get_favorites_repository: lambda: FavoritesRepository(store),
    }
    with TestClient(app) as client:
        yield client
    app.dependency_overrides = {}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "operational"
    assert body["document_store"] == "memory: healthy"


def test_restaurant_onboarding(client):
    created = client.post("/api/restaurants", json={
        "ownerId": "owner_1",
        "name": "Pho 99",
        "categories": ["Vietnamese"],
    })
    assert created.status_code == 201
    restaurant_id = created.json()["data"]["restaurantId"]

    assert client.get("/api/restaurants").json()["data"] == []

    published = client.post(f"/api/restaurants/{restaurant_id}/publish", json={"ownerId": "owner_1"})
    assert published.json()["data"]["status"] == "active"

    listed = client.get("/api/restaurants", params={"category": "Vietnamese"}).json()["data"]
    assert [r["id"] for r in listed] == [restaurant_id]
    assert client.get("/api/owners/owner_1/restaurant").json()["data"]["name"] == "Pho 99"


def test_browse_views(client, store):
    client.portal.call(lambda: seed_restaurant(
        store, "r1", "o1", name="Alpha", rating=4.5, location={"lat": 51.5, "lng": -0.12}, categories=["Thai"],
    ))
    client.portal.call(lambda: seed_restaurant(
        store, "r2", "o2", name="Bravo", rating=3.0, location={"lat": 52.5, "lng": -0.12},
    ))

    nearby = client.get("/api/restaurants/nearby", params={"lat": 51.5, "lng": -0.12, "radius_km": 5}).json()
    featured = client.get("/api/restaurants/featured").json()
    categories = client.get("/api/categories").json()
    by_distance = client.get("/api/restaurants", params={"lat": 51.5, "lng": -0.12, "sort_by": "distance"}).json()

    assert [r["id"] for r in nearby["data"]] == ["r1"]
    assert nearby["data"][0]["distance"] == 0.0
    assert nearby["data"][0]["openNow"] is True
    assert [r["id"] for r in featured["data"]] == ["r1"]
    assert categories["data"] == ["Thai", "Vietnamese"]
    assert [r["distance"] for r in by_distance["data"]] == [0.0, 111.2]


def test_browse_rejects_unknown_sort(client):
    response = client.get("/api/restaurants", params={"sort_by": "popularity"})

    assert response.status_code == 422
    assert response.json()["errorCode"] == "VALIDATION_ERROR"


def test_second_restaurant_conflicts(client):
    body = {"ownerId": "owner_1", "name": "Pho 99", "categories": ["Vietnamese"]}
    client.post("/api/restaurants", json=body)

    response = client.post("/api/restaurants", json=body)

    assert response.status_code == 409
    assert response.json()["errorCode"] == "CONFLICT_ERROR"


def test_malformed_body_gets_envelope(client):
    response = client.post("/api/restaurants", json={"categories": "not-a-list"})

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["errorCode"] == "VALIDATION_ERROR"
    assert {"ownerId", "name", "categories"} <= set(body["errors"])


def test_business_validation_gets_envelope(client):
    response = client.post("/api/restaurants/rest_1/menu", json={"name": "P", "price": -1})

    assert response.status_code == 422
    assert set(response.json()["errors"]) == {"name", "price"}


def test_missing_order(client):
    response = client.get("/api/orders/ghost")

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "Order not found",
        "errorCode": "NOT_FOUND",
        "retryable": False,
    }


def test_order_workflow(client):
    created = client.post("/api/orders", json=order_payload())
    assert created.status_code == 201
    order_id = created.json()["data"]["orderId"]

    accepted = client.patch(f"/api/orders/{order_id}/status", json={"status": "Cooking", "restaurantId": "rest_1"})
    skipped = client.patch(f"/api/orders/{order_id}/status", json={"status": "Completed", "restaurantId": "rest_1"})

    assert accepted.status_code == 200
    assert skipped.status_code == 409
    assert skipped.json()["errorCode"] == "INVALID_TRANSITION"
    order = client.get(f"/api/orders/{order_id}").json()["data"]
    assert order["status"] == "Cooking"
    assert order["total"] == 29.25


def test_other_restaurant_cannot_update(client, store):
    created = client.post("/api/orders", json=order_payload())
    order_id = created.json()["data"]["orderId"]

    response = client.patch(f"/api/orders/{order_id}/status", json={"status": "Cooking", "restaurantId": "rest_2"})

    assert response.status_code == 403


def test_menu_crud(client):
    item_id = client.post("/api/restaurants/rest_1/menu", json={"name": "Pho Tai", "price": 12.5}).json()["data"]["itemId"]

    client.put(f"/api/restaurants/rest_1/menu/{item_id}/availability", json={"available": False})
    available = client.get("/api/restaurants/rest_1/menu", params={"available_only": True}).json()["data"]
    deleted = client.delete(f"/api/restaurants/rest_1/menu/{item_id}")

    assert available == []
    assert deleted.status_code == 200
    assert client.get(f"/api/restaurants/rest_1/menu/{item_id}").status_code == 404


def test_push_token_and_favorites(client):
    assert client.put("/api/users/u1/push-token", json={"token": "ExponentPushToken[a]"}).status_code == 200

    client.post("/api/users/u1/favorites/rest_1")

    assert client.get("/api/users/u1/favorites").json()["data"] == ["rest_1"]
    assert client.delete("/api/users/u1/push-token").status_code == 200


def test_live_order_feed(client):
    with client.websocket_connect("/ws/restaurants/rest_1/orders") as websocket:
        assert websocket.receive_json() == {"success": True, "data": []}

        client.post("/api/orders", json=order_payload())

        message = websocket.receive_json()
        assert message["success"] is True
        assert [o["status"] for o in message["data"]] == ["Pending"]


def test_live_feed_only_shows_own_orders(client, store):
    client.portal.call(seed_order, store, "order_9", "Pending", "rest_2")

    with client.websocket_connect("/ws/restaurants/rest_1/orders") as websocket:
        assert websocket.receive_json()["data"] == []


def test_unhandled_error_gets_envelope(store):
    def broken():
        raise RuntimeError("boom")

    app.dependency_overrides = {get_order_repository: broken}
    try:
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/api/orders/order_1")
    finally:
        app.dependency_overrides = {}

    assert response.status_code == 500
    assert response.json()["errorCode"] == "UNKNOWN_ERROR"
