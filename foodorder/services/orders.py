"""
Order Repository

Order placement, the status workflow and real-time order feeds.

Status changes follow ``ORDER_TRANSITIONS`` and are applied in a
transaction that re-checks ownership and the stored status, so two staff
devices racing on the same order get one success and one CONFLICT_ERROR.
Notifications are scheduled after a successful change and never affect
its result.

Usage:
    orders = get_order_repository()
    result = await orders.update_status(order_id, OrderStatus.COOKING, restaurant_id)
    if not result.success and result.retryable:
        ...
"""

import logging
import secrets
import string
from datetime import datetime
from functools import lru_cache
from typing import Any, Optional

from pydantic import ValidationError

from foodorder.core.errors import ErrorCode, ServiceError
from foodorder.core.result import Result
from foodorder.core.validation import validate_order_status_transition
from foodorder.models import ACTIVE_STATUSES, ORDERS, NewOrderItem, Order, OrderStatus
from foodorder.services.notifications import NotificationDispatcher, get_notification_dispatcher
from foodorder.services.realtime import OnUpdate, listen
from foodorder.services.store import (
    SERVER_TIMESTAMP,
    BaseDocumentStore,
    DocumentRef,
    Query,
    QuerySnapshot,
    Subscription,
    Transaction,
    get_document_store,
)

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "Order was updated by another process. Please refresh."
DISPLAY_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_display_id(now: datetime) -> str:
    """Human-readable id, e.g. ``ORD-20260117-K3QZ``."""
    suffix = "".join(secrets.choice(DISPLAY_ID_ALPHABET) for _ in range(4))
    return f"ORD-{now:%Y%m%d}-{suffix}"


def sort_newest_first(orders: list[Order]) -> list[Order]:
    """Sort by createdAt descending; orders without a timestamp go last."""
    stamped = sorted((o for o in orders if o.created_at), key=lambda o: o.created_at, reverse=True)
    return stamped + [o for o in orders if not o.created_at]


def parse_orders(snapshot: QuerySnapshot, context: str) -> list[Order]:
    """
    Build Order models from a query snapshot.

    Only documents without an id or a restaurantId are dropped; other
    irregular fields (legacy items, null names, unknown statuses) are kept.
    """
    if snapshot.from_cache:
        logger.debug(f"Orders for {context} served from cache")

    orders = []
    for doc in snapshot.docs:
        if not doc.id or not (doc.data or {}).get("restaurantId"):
            logger.error(f"Dropping order {doc.id!r} without restaurantId ({context})")
            continue
        try:
            orders.append(Order.from_snapshot(doc))
        except ValidationError as e:
            logger.error(f"Dropping unreadable order {doc.id} ({context}): {e.error_count()} validation errors")
    return sort_newest_first(orders)


class OrderRepository:
    """Orders collection access."""

    def __init__(
        self,
        store: Optional[BaseDocumentStore] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.store = store or get_document_store()
        self.dispatcher = dispatcher

    # =========================================================================
    # CREATE / READ
    # =========================================================================

    async def create_order(self, data: dict[str, Any]) -> Result:
        """
        Place an order with status Pending.

        Returns:
            Result with ``{"orderId", "orderDisplayId"}``
        """
        if not data.get("customerId"):
            return Result.validation_error({"customerId": "Customer ID is required"}, "Customer ID is required")
        if not data.get("restaurantId"):
            return Result.validation_error({"restaurantId": "Restaurant ID is required"}, "Restaurant ID is required")
        if not data.get("items"):
            return Result.validation_error({"items": "Order must have at least one item"}, "Order must have at least one item")

        try:
            items = [NewOrderItem.model_validate(item) for item in data["items"]]
        except ValidationError as e:
            logger.warning(f"Rejected order items: {e.error_count()} validation errors")
            return Result.validation_error({"items": "Order contains an invalid item"})

        subtotal = data.get("subtotal")
        if subtotal is None:
            subtotal = round(sum(item.price * item.quantity for item in items), 2)
        tax = data.get("tax") or 0
        delivery_fee = data.get("deliveryFee") or 0
        total = data.get("total")
        if total is None:
            total = round(subtotal + tax + delivery_fee, 2)

        display_id = generate_display_id(self.store.now())
        document = {
            "orderDisplayId": display_id,
            "customerId": data["customerId"],
            "customerName": data.get("customerName") or "Customer",
            "phoneNumber": data.get("phoneNumber") or "",
            "restaurantId": data["restaurantId"],
            "restaurantName": data.get("restaurantName") or "",
            "items": [item.model_dump(by_alias=True) for item in items],
            "subtotal": subtotal,
            "tax": tax,
            "deliveryFee": delivery_fee,
            "total": total,
            "deliveryAddress": data.get("deliveryAddress") or "",
            "specialInstructions": data.get("specialInstructions") or "",
            "status": OrderStatus.PENDING.value,
            "createdAt": SERVER_TIMESTAMP,
            "statusUpdatedAt": SERVER_TIMESTAMP,
            "completedAt": None,
        }

        try:
            order_id = await self.store.add(ORDERS, document)
        except Exception as e:
            logger.exception(f"Failed to create order for customer {data['customerId']}: {e}")
            return Result.from_error(e)

        logger.info(f"Order created: {order_id} ({display_id}) for restaurant {data['restaurantId']}")

        if self.dispatcher:
            self.dispatcher.dispatch_new_order(data["restaurantId"], {
                "id": order_id,
                "orderDisplayId": display_id,
                "customerName": document["customerName"],
                "total": total,
            })

        return Result.ok({"orderId": order_id, "orderDisplayId": display_id})

    async def get_order(self, order_id: str) -> Result:
        if not order_id:
            return Result.validation_error({"orderId": "Order ID is required"}, "Order ID is required")
        try:
            snapshot = await self.store.get(ORDERS, order_id)
            if not snapshot.exists:
                return Result.fail("Order not found", ErrorCode.NOT_FOUND)
            return Result.ok(Order.from_snapshot(snapshot))
        except ValidationError as e:
            logger.error(f"Order {order_id} is unreadable: {e.error_count()} validation errors")
            return Result.fail("Order data is invalid", ErrorCode.VALIDATION_ERROR, retryable=False)
        except Exception as e:
            logger.exception(f"Failed to load order {order_id}: {e}")
            return Result.from_error(e)

    async def list_by_restaurant(
        self,
        restaurant_id: str,
        status: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Result:
        """One-shot version of ``listen_by_restaurant``."""
        if not restaurant_id:
            return Result.validation_error({"restaurantId": "Restaurant ID is required"}, "Restaurant ID is required")
        query = Query(ORDERS).where("restaurantId", "==", restaurant_id)
        if status:
            query = query.where("status", "==", status)
        try:
            orders = parse_orders(await self.store.query(query), restaurant_id)
        except Exception as e:
            logger.exception(f"Failed to list orders for restaurant {restaurant_id}: {e}")
            return Result.from_error(e)
        return Result.ok(orders[:limit] if limit else orders)

    async def get_active_order(self, customer_id: str) -> Result:
        """Most recent non-terminal order of a customer (``data`` is None if none)."""
        if not customer_id:
            return Result.validation_error({"customerId": "Customer ID is required"}, "Customer ID is required")
        query = (
            Query(ORDERS)
            .where("customerId", "==", customer_id)
            .where("status", "in", [s.value for s in ACTIVE_STATUSES])
        )
        try:
            orders = parse_orders(await self.store.query(query), customer_id)
        except Exception as e:
            logger.exception(f"Failed to load active order for {customer_id}: {e}")
            return Result.from_error(e)
        return Result.ok(orders[0] if orders else None)

    # =========================================================================
    # STATUS WORKFLOW
    # =========================================================================

    async def update_status(self, order_id: str, new_status: Any, restaurant_id: str) -> Result:
        """
        Move an order to ``new_status`` on behalf of ``restaurant_id``.

        Steps:
            1. Load the order (NOT_FOUND)
            2. Check the transition against the stored status (INVALID_TRANSITION, no write)
            3. Transaction: re-read, ownership (PERMISSION_DENIED), status
               unchanged (CONFLICT_ERROR), write status + statusUpdatedAt
               (+ completedAt for Completed)
            4. Schedule the customer notification
        """
        if not order_id or not new_status or not restaurant_id:
            return Result.fail(
                "Order ID, status, and restaurant ID are required",
                ErrorCode.VALIDATION_ERROR,
                retryable=False,
            )
        try:
            target = OrderStatus(new_status)
        except ValueError:
            return Result.validation_error({"status": f"Unknown status: {new_status}"}, f"Unknown status: {new_status}")

        current_status = None
        try:
            snapshot = await self.store.get(ORDERS, order_id)
            if not snapshot.exists:
                return Result.fail("Order not found", ErrorCode.NOT_FOUND)

            current_status = snapshot.get("status")
            transition_error = validate_order_status_transition(current_status, target)
            if transition_error:
                return Result.fail(transition_error, ErrorCode.INVALID_TRANSITION, retryable=False)

            async def apply(transaction: Transaction) -> dict[str, Any]:
                fresh = await transaction.get(ORDERS, order_id)
                if not fresh.exists:
                    raise ServiceError(ErrorCode.NOT_FOUND, "Order not found")
                if fresh.get("restaurantId") != restaurant_id:
                    raise ServiceError(ErrorCode.PERMISSION_DENIED, "You do not have permission to update this order")
                if fresh.get("status") != current_status:
                    raise ServiceError(ErrorCode.CONFLICT_ERROR, CONFLICT_MESSAGE)

                changes = {"status": target.value, "statusUpdatedAt": SERVER_TIMESTAMP}
                if target == OrderStatus.COMPLETED:
                    changes["completedAt"] = SERVER_TIMESTAMP
                transaction.update(ORDERS, order_id, changes)
                return fresh.data

            order_data = await self.store.run_transaction(apply)
        except Exception as e:
            result = Result.from_error(e)
            if result.error_code == ErrorCode.CONFLICT_ERROR:
                result.error = CONFLICT_MESSAGE
                logger.warning(f"Status update conflict on order {order_id} ({current_status} -> {target.value})")
            else:
                logger.error(f"Failed to update order {order_id} to {target.value}: {e!r}")
            return result

        logger.info(f"Order {order_id}: {current_status} -> {target.value}")

        if self.dispatcher:
            self.dispatcher.dispatch_status_change(
                order_data.get("customerId"),
                target,
                {**order_data, "id": order_id},
            )

        return Result.ok({"orderId": order_id, "status": target.value})

    # =========================================================================
    # LISTENERS
    # =========================================================================

    async def listen_by_restaurant(self, restaurant_id: str, on_update: OnUpdate) -> Subscription:
        """Live, newest-first list of a restaurant's orders."""
        if not restaurant_id:
            on_update(Result.fail("Restaurant ID is required", ErrorCode.VALIDATION_ERROR))
            return Subscription.closed("orders")
        return await listen(
            self.store,
            Query(ORDERS).where("restaurantId", "==", restaurant_id),
            lambda snapshot: Result.ok(parse_orders(snapshot, restaurant_id)),
            on_update,
            "orders",
        )

    async def listen_by_customer(self, customer_id: str, on_update: OnUpdate) -> Subscription:
        """Live, newest-first list of a customer's orders."""
        if not customer_id:
            on_update(Result.fail("Customer ID is required", ErrorCode.VALIDATION_ERROR))
            return Subscription.closed("orders")
        return await listen(
            self.store,
            Query(ORDERS).where("customerId", "==", customer_id),
            lambda snapshot: Result.ok(parse_orders(snapshot, customer_id)),
            on_update,
            "orders",
        )

    async def listen_to_order(self, order_id: str, on_update: OnUpdate) -> Subscription:
        """Live view of a single order."""
        if not order_id:
            on_update(Result.fail("Order ID is required", ErrorCode.VALIDATION_ERROR))
            return Subscription.closed("order")

        def transform(snapshot: Any) -> Result:
            if not snapshot.exists:
                return Result.fail("Order not found", ErrorCode.NOT_FOUND)
            return Result.ok(Order.from_snapshot(snapshot))

        return await listen(self.store, DocumentRef(ORDERS, order_id), transform, on_update, "order")

    async def listen_active_order(self, customer_id: str, on_update: OnUpdate) -> Subscription:
        """
        Live view of the customer's most recent non-terminal order.

        ``data`` is None while there is none. Listener errors are logged
        and delivered the same way, as no active order.
        """
        if not customer_id:
            on_update(Result.ok(None))
            return Subscription.closed("active order")

        def transform(snapshot: QuerySnapshot) -> Result:
            orders = parse_orders(snapshot, customer_id)
            return Result.ok(orders[0] if orders else None)

        def deliver(result: Result) -> None:
            on_update(result if result.success else Result.ok(None))

        return await listen(
            self.store,
            Query(ORDERS)
            .where("customerId", "==", customer_id)
            .where("status", "in", [s.value for s in ACTIVE_STATUSES]),
            transform,
            deliver,
            "active order",
        )


@lru_cache()
def get_order_repository() -> OrderRepository:
    """Get the order repository wired to the configured store and dispatcher."""
    return OrderRepository(get_document_store(), get_notification_dispatcher())
