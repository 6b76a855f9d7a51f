"""Push notifications: messages, dedupe, dispatch, transports and token ownership."""

import asyncio

import httpx
import pytest
import redis.asyncio as redis

from conftest import seed_push_user, seed_restaurant
from foodorder.core.errors import ErrorCode
from foodorder.models import PUSH_TOKENS, USERS, OrderStatus
from foodorder.services.notifications import (
    ExpoPushTransport,
    InMemoryDedupeCache,
    MockPushTransport,
    NotificationDispatcher,
    RedisDedupeCache,
    status_message,
)
from foodorder.services.notifications.dedupe import dedupe_key
from foodorder.services.store import Query
from foodorder.services.users import push_token_guard_id

ORDER = {"id": "order_1", "restaurantName": "Pho 99"}


# =============================================================================
# MESSAGES
# =============================================================================

@pytest.mark.parametrize("status, title", [
    (OrderStatus.COOKING, "Cooking in Progress"),
    (OrderStatus.READY, "Order Ready!"),
    (OrderStatus.COMPLETED, "Order Completed!"),
    (OrderStatus.DECLINED, "Order Declined"),
    (OrderStatus.CANCELLED, "Order Cancelled"),
])
def test_status_titles(status, title):
    assert status_message(status, "Pho 99")[0] == title


def test_restaurant_name_fallback():
    assert status_message("Ready") == ("Order Ready!", "Your order from The restaurant is ready for pickup")


def test_unknown_status_gets_generic_message():
    assert status_message("Teleported", "Pho 99") == ("Order Update", "Order status: Teleported")


# =============================================================================
# DEDUPE
# =============================================================================

async def test_dedupe_window(dedupe, dedupe_clock):
    key = dedupe_key("order_1", "Ready")

    assert await dedupe.should_send(key) is True
    assert await dedupe.should_send(key) is False
    dedupe_clock.advance(4.9)
    assert await dedupe.should_send(key) is False
    dedupe_clock.advance(0.2)
    assert await dedupe.should_send(key) is True


async def test_dedupe_keys_are_per_status(dedupe):
    assert await dedupe.should_send(dedupe_key("order_1", "Cooking"))
    assert await dedupe.should_send(dedupe_key("order_1", "Ready"))
    assert await dedupe.should_send(dedupe_key("order_2", "Ready"))


async def test_dedupe_evicts_after_ttl(dedupe, dedupe_clock):
    await dedupe.should_send("a")
    await dedupe.should_send("b")
    dedupe_clock.advance(61)

    await dedupe.should_send("c")

    assert len(dedupe) == 1


async def test_dedupe_is_bounded(dedupe_clock):
    cache = InMemoryDedupeCache(window=5, ttl=60, max_entries=3, clock=dedupe_clock)

    for key in "abcde":
        await cache.should_send(key)

    assert len(cache) == 3
    # Oldest keys were evicted, so they send again
    assert await cache.should_send("a") is True
    assert await cache.should_send("e") is False


class FakeRedis:
    """Redis client double for ``SET NX PX``."""

    def __init__(self, fail=False):
        self.fail = fail
        self.keys = {}

    async def set(self, key, value, nx=False, px=None):
        if self.fail:
            raise redis.ConnectionError("redis down")
        if nx and key in self.keys:
            return None
        self.keys[key] = (value, px)
        return True

    async def ping(self):
        if self.fail:
            raise redis.ConnectionError("redis down")
        return True


async def test_redis_dedupe():
    client = FakeRedis()
    cache = RedisDedupeCache("redis://unused", window=5, client=client)

    assert await cache.should_send("notif:o1:Ready") is True
    assert await cache.should_send("notif:o1:Ready") is False
    assert client.keys["notif:o1:Ready"] == ("1", 5000)
    assert await cache.health_check() is True


async def test_redis_dedupe_fails_open():
    cache = RedisDedupeCache("redis://unused", client=FakeRedis(fail=True))

    assert await cache.should_send("notif:o1:Ready") is True
    assert await cache.health_check() is False


# =============================================================================
# DISPATCHER
# =============================================================================

async def test_status_notification_sent_once(dispatcher, store, transport):
    await seed_push_user(store, "cust_1", "ExponentPushToken[abc]")

    first = await dispatcher.notify_order_status_change("cust_1", "Ready", ORDER)
    second = await dispatcher.notify_order_status_change("cust_1", "Ready", ORDER)

    assert first.data["sent"] is True
    assert second.data == {"sent": False, "reason": "duplicate"}
    assert len(transport.sent) == 1


async def test_concurrent_duplicates_send_once(dispatcher, store, transport):
    await seed_push_user(store, "cust_1", "ExponentPushToken[abc]")

    results = await asyncio.gather(*[
        dispatcher.notify_order_status_change("cust_1", OrderStatus.READY, ORDER) for _ in range(4)
    ])

    assert all(r.success for r in results)
    assert len(transport.sent) == 1


@pytest.mark.parametrize("customer_id, user_doc, reason", [
    (None, None, "no-customer"),
    ("cust_1", None, "no-token"),
    ("cust_1", {"role": "user"}, "no-token"),
    ("cust_1", {"pushToken": "ExponentPushToken[abc]", "notificationsEnabled": False}, "no-token"),
])
async def test_nothing_to_send_is_success(dispatcher, store, transport, customer_id, user_doc, reason):
    if user_doc is not None:
        await store.set(USERS, "cust_1", user_doc)

    result = await dispatcher.notify_order_status_change(customer_id, "Ready", ORDER)

    assert result.success
    assert result.data == {"sent": False, "reason": reason}
    assert transport.sent == []


async def test_transport_failure_is_reported_not_raised(store, dedupe):
    dispatcher = NotificationDispatcher(store, MockPushTransport(failure_rate=1.0), dedupe)
    await seed_push_user(store, "cust_1", "ExponentPushToken[abc]")

    result = await dispatcher.notify_order_status_change("cust_1", "Ready", ORDER)

    assert not result.success
    assert result.error_code == ErrorCode.NETWORK_ERROR
    assert result.retryable is True


async def test_store_failure_is_reported_not_raised(dispatcher, store):
    from foodorder.services.store import StoreError

    store.inject_failure(StoreError("unavailable"))

    result = await dispatcher.notify_order_status_change("cust_1", "Ready", ORDER)

    assert result.error_code == ErrorCode.NETWORK_ERROR


async def test_new_order_without_owner(dispatcher, store, transport):
    result = await dispatcher.notify_new_order("ghost_restaurant", {"id": "o1"})

    assert result.data == {"sent": False, "reason": "no-owner"}


async def test_new_order_message(dispatcher, store, transport):
    await seed_restaurant(store)
    await seed_push_user(store, "owner_1", "ExponentPushToken[owner]")

    await dispatcher.notify_new_order("rest_1", {
        "id": "o1",
        "orderDisplayId": "ORD-20260117-AB12",
        "customerName": "Jane",
        "total": 20,
    })

    assert transport.sent[0]["body"] == "Order ORD-20260117-AB12 from Jane - $20.00"
    assert transport.sent[0]["data"] == {"type": "new_order", "orderId": "o1", "restaurantId": "rest_1"}


async def test_fire_and_forget(dispatcher, store, transport):
    await seed_push_user(store, "cust_1", "ExponentPushToken[abc]")

    dispatcher.dispatch_status_change("cust_1", OrderStatus.COOKING, ORDER)
    assert dispatcher.pending == 1

    await dispatcher.wait_idle()

    assert dispatcher.pending == 0
    assert len(transport.sent) == 1


# =============================================================================
# EXPO TRANSPORT
# =============================================================================

def expo_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_expo_success():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"data": {"status": "ok", "id": "ticket-1"}})

    transport = ExpoPushTransport(client=expo_client(handler))
    result = await transport.send("ExponentPushToken[abc]", "Order Ready!", "Come get it", {"orderId": "o1"})

    assert result.success
    assert result.ticket_id == "ticket-1"
    body = requests[0].read()
    assert b'"to":"ExponentPushToken[abc]"' in body.replace(b" ", b"")


async def test_expo_rejected_ticket():
    def handler(request):
        return httpx.Response(200, json={"data": [{"status": "error", "message": "DeviceNotRegistered"}]})

    result = await ExpoPushTransport(client=expo_client(handler)).send("t", "x", "y")

    assert not result.success
    assert result.error_message == "DeviceNotRegistered"


async def test_expo_http_error():
    def handler(request):
        return httpx.Response(503, text="busy")

    result = await ExpoPushTransport(client=expo_client(handler)).send("t", "x", "y")

    assert not result.success
    assert result.error_message == "HTTP 503"


async def test_expo_network_error():
    def handler(request):
        raise httpx.ConnectError("unreachable")

    result = await ExpoPushTransport(client=expo_client(handler)).send("t", "x", "y")

    assert not result.success
    assert result.provider == "expo"


def ok_ticket(request):
    return httpx.Response(200, json={"data": {"status": "ok", "id": "ticket-1"}})


async def test_expo_reuses_one_client(monkeypatch):
    real_client = httpx.AsyncClient
    created = []

    def make_client(**kwargs):
        client = real_client(transport=httpx.MockTransport(ok_ticket), **kwargs)
        created.append(client)
        return client

    monkeypatch.setattr(httpx, "AsyncClient", make_client)
    transport = ExpoPushTransport()

    await transport.send("ExponentPushToken[a]", "x", "y")
    await transport.send("ExponentPushToken[b]", "x", "y")
    await transport.close()

    assert len(created) == 1
    assert created[0].is_closed


async def test_expo_leaves_injected_client_open():
    client = expo_client(ok_ticket)
    transport = ExpoPushTransport(client=client)

    await transport.send("ExponentPushToken[a]", "x", "y")
    await transport.close()

    assert not client.is_closed
    await client.aclose()


# =============================================================================
# PUSH TOKEN OWNERSHIP
# =============================================================================

async def test_token_moves_between_accounts(users, store):
    await users.save_push_token("alice", "ExponentPushToken[shared]", "ios")

    result = await users.save_push_token("bob", "ExponentPushToken[shared]", "android")

    assert result.success
    alice = (await store.get(USERS, "alice")).data
    bob = (await store.get(USERS, "bob")).data
    assert "pushToken" not in alice
    assert "pushTokenUpdatedAt" not in alice
    assert bob["pushToken"] == "ExponentPushToken[shared]"
    assert bob["platform"] == "android"


async def test_saving_same_token_again_keeps_it(users, store):
    await users.save_push_token("alice", "ExponentPushToken[a]")
    await users.save_push_token("alice", "ExponentPushToken[a]")

    assert (await store.get(USERS, "alice")).data["pushToken"] == "ExponentPushToken[a]"


async def test_remove_push_token(users, store):
    await users.save_push_token("alice", "ExponentPushToken[a]")

    assert (await users.remove_push_token("alice")).success
    assert "pushToken" not in (await store.get(USERS, "alice")).data


async def test_save_push_token_requires_arguments(users):
    assert (await users.save_push_token("alice", "")).error_code == ErrorCode.VALIDATION_ERROR


async def test_concurrent_saves_leave_one_holder(users, store):
    token = "ExponentPushToken[race]"

    results = await asyncio.gather(
        users.save_push_token("alice", token),
        users.save_push_token("bob", token),
    )

    assert all(r.success for r in results)
    holders = await store.query(Query(USERS).where("pushToken", "==", token))
    assert len(holders.docs) == 1
    guard = await store.get(PUSH_TOKENS, push_token_guard_id(token))
    assert guard.data["uid"] == holders.docs[0].id


async def test_save_after_holder_account_deleted(users, store):
    token = "ExponentPushToken[orphan]"
    await users.save_push_token("alice", token)
    await store.delete(USERS, "alice")

    result = await users.save_push_token("bob", token)

    assert result.success
    assert not (await store.get(USERS, "alice")).exists
    assert (await store.get(PUSH_TOKENS, push_token_guard_id(token))).data["uid"] == "bob"


async def test_legacy_holder_without_guard_is_cleared(users, store):
    await seed_push_user(store, "alice", "ExponentPushToken[old]")

    await users.save_push_token("bob", "ExponentPushToken[old]")

    assert "pushToken" not in (await store.get(USERS, "alice")).data


async def test_remove_push_token_releases_guard(users, store):
    token = "ExponentPushToken[a]"
    await users.save_push_token("alice", token)

    await users.remove_push_token("alice")

    assert not (await store.get(PUSH_TOKENS, push_token_guard_id(token))).exists
