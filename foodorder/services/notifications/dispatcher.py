"""
Notification Dispatcher

Turns order events into push notifications:
    - status changes are pushed to the customer
    - new orders are pushed to the restaurant owner

A missing push token (or notifications switched off) is not an error; the
call succeeds without sending. Transport failures come back as a failed
Result and are never raised, so callers can fire and forget.

Usage:
    dispatcher = get_notification_dispatcher()
    dispatcher.dispatch_status_change(customer_id, OrderStatus.READY, order_data)
    ...
    await dispatcher.wait_idle()

Version: 1.0.0
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional

from foodorder.core.errors import ErrorCode
from foodorder.core.result import Result
from foodorder.models import RESTAURANTS, USERS, OrderStatus
from foodorder.services.notifications.base import BasePushTransport
from foodorder.services.notifications.dedupe import BaseDedupeCache, dedupe_key
from foodorder.services.store.base import BaseDocumentStore

logger = logging.getLogger(__name__)


# status -> (title, body template)
STATUS_MESSAGES: dict[str, tuple[str, str]] = {
    OrderStatus.PENDING.value: ("Order Received", "{restaurant} received your order"),
    OrderStatus.COOKING.value: ("Cooking in Progress", "{restaurant} is cooking your delicious meal"),
    OrderStatus.READY.value: ("Order Ready!", "Your order from {restaurant} is ready for pickup"),
    OrderStatus.COMPLETED.value: ("Order Completed!", "Enjoy your meal! Rate your experience"),
    OrderStatus.DECLINED.value: ("Order Declined", "{restaurant} couldn't accept your order"),
    OrderStatus.CANCELLED.value: ("Order Cancelled", "Your order has been cancelled"),
}


def status_message(status: Any, restaurant_name: Optional[str] = None) -> tuple[str, str]:
    """Title and body for a status; unknown statuses get a generic message."""
    value = getattr(status, "value", status)
    if value not in STATUS_MESSAGES:
        return "Order Update", f"Order status: {value}"
    title, body = STATUS_MESSAGES[value]
    return title, body.format(restaurant=restaurant_name or "The restaurant")


class NotificationDispatcher:
    """Looks up push tokens and sends order notifications."""

    def __init__(
        self,
        store: BaseDocumentStore,
        transport: BasePushTransport,
        dedupe: BaseDedupeCache,
    ):
        self.store = store
        self.transport = transport
        self.dedupe = dedupe
        self._tasks: set[asyncio.Task] = set()

    async def _token_for(self, user_id: str) -> Optional[str]:
        snapshot = await self.store.get(USERS, user_id)
        if not snapshot.exists:
            return None
        if snapshot.get("notificationsEnabled") is False:
            logger.debug(f"Notifications disabled for user {user_id}")
            return None
        return snapshot.get("pushToken") or None

    async def _deliver(self, token: str, title: str, body: str, data: dict[str, Any]) -> Result:
        push = await self.transport.send(token, title, body, data)
        if not push.success:
            logger.warning(f"Push via {push.provider} failed: {push.error_message}")
            return Result.fail(push.error_message or "Push delivery failed", ErrorCode.NETWORK_ERROR)
        return Result.ok({"sent": True, "ticketId": push.ticket_id})

    async def notify_order_status_change(
        self,
        customer_id: Optional[str],
        new_status: Any,
        order_data: dict[str, Any],
    ) -> Result:
        """Push a status change to the customer who placed the order."""
        status = getattr(new_status, "value", new_status)
        order_id = order_data.get("id") or order_data.get("orderId")
        try:
            if not customer_id:
                return Result.ok({"sent": False, "reason": "no-customer"})

            token = await self._token_for(customer_id)
            if not token:
                logger.debug(f"No push token for customer {customer_id}, skipping")
                return Result.ok({"sent": False, "reason": "no-token"})

            if order_id and not await self.dedupe.should_send(dedupe_key(order_id, status)):
                return Result.ok({"sent": False, "reason": "duplicate"})

            title, body = status_message(status, order_data.get("restaurantName"))
            return await self._deliver(token, title, body, {
                "type": "order_status",
                "orderId": order_id,
                "status": status,
            })
        except Exception as e:
            logger.exception(f"Status notification failed for order {order_id}: {e}")
            return Result.from_error(e)

    async def notify_new_order(self, restaurant_id: str, order_data: dict[str, Any]) -> Result:
        """Push an incoming-order alert to the restaurant owner."""
        order_id = order_data.get("id") or order_data.get("orderId")
        try:
            restaurant = await self.store.get(RESTAURANTS, restaurant_id)
            owner_id = restaurant.get("ownerId")
            if not owner_id:
                logger.debug(f"Restaurant {restaurant_id} has no owner on record, skipping")
                return Result.ok({"sent": False, "reason": "no-owner"})

            token = await self._token_for(owner_id)
            if not token:
                return Result.ok({"sent": False, "reason": "no-token"})

            if order_id and not await self.dedupe.should_send(dedupe_key(order_id, "new")):
                return Result.ok({"sent": False, "reason": "duplicate"})

            display_id = order_data.get("orderDisplayId") or order_id
            customer = order_data.get("customerName") or "Customer"
            body = f"Order {display_id} from {customer}"
            if order_data.get("total") is not None:
                body += f" - ${float(order_data['total']):.2f}"

            return await self._deliver(token, "New Order!", body, {
                "type": "new_order",
                "orderId": order_id,
                "restaurantId": restaurant_id,
            })
        except Exception as e:
            logger.exception(f"New-order notification failed for restaurant {restaurant_id}: {e}")
            return Result.from_error(e)

    # -------------------------------------------------------------------------
    # Fire-and-forget
    # -------------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Result]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def dispatch_status_change(self, customer_id: Optional[str], new_status: Any, order_data: dict[str, Any]) -> asyncio.Task:
        return self._spawn(self.notify_order_status_change(customer_id, new_status, order_data))

    def dispatch_new_order(self, restaurant_id: str, order_data: dict[str, Any]) -> asyncio.Task:
        return self._spawn(self.notify_new_order(restaurant_id, order_data))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait for every scheduled notification to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
