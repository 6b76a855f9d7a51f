"""
Domain Models

Pydantic models for the documents kept in the document store:
- Orders and their status workflow
- Restaurants and menu items
- User documents and app settings

Documents are stored with camelCase keys; models expose snake_case
attributes and dump back to camelCase with ``to_document()``.

Version: 1.0.0
"""

import enum
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# COLLECTIONS
# =============================================================================

ORDERS = "orders"
RESTAURANTS = "restaurants"
RESTAURANT_OWNERS = "restaurantOwners"
USERS = "users"
PUSH_TOKENS = "pushTokens"


def menu_items_path(restaurant_id: str) -> str:
    """Sub-collection path holding a restaurant's menu items."""
    return f"{RESTAURANTS}/{restaurant_id}/menuItems"


# =============================================================================
# ENUMS
# =============================================================================

class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "Pending"
    COOKING = "Cooking"
    READY = "Ready"
    COMPLETED = "Completed"
    DECLINED = "Declined"
    CANCELLED = "Cancelled"


# current -> allowed next
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.COOKING, OrderStatus.DECLINED}),
    OrderStatus.COOKING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.DECLINED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.COMPLETED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, allowed in ORDER_TRANSITIONS.items() if not allowed)
ACTIVE_STATUSES = frozenset(OrderStatus) - TERMINAL_STATUSES


class RestaurantStatus(str, enum.Enum):
    """Restaurant publication state."""
    DRAFT = "draft"
    ACTIVE = "active"


class UserRole(str, enum.Enum):
    """Role picked at sign-up."""
    USER = "user"
    RESTAURANT = "restaurant"


# =============================================================================
# BASE
# =============================================================================

class DocumentModel(BaseModel):
    """Base for store documents: camelCase aliases, unknown keys kept."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str = Field(..., min_length=1)

    @classmethod
    def from_snapshot(cls, snapshot: Any) -> "DocumentModel":
        """Build from a DocumentSnapshot (``id`` + ``data``)."""
        return cls.model_validate({**(snapshot.data or {}), "id": snapshot.id})

    def to_document(self) -> dict[str, Any]:
        """Dump as a camelCase document body (without ``id``)."""
        return self.model_dump(by_alias=True, exclude={"id"})


# =============================================================================
# ORDERS
# =============================================================================

class OrderItem(BaseModel):
    """Single line of a stored order, as read back (legacy lines included)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    menu_item_id: Optional[str] = None
    name: Optional[str] = None
    price: Optional[float] = None
    quantity: Optional[int] = None


class NewOrderItem(OrderItem):
    """Order line accepted at placement time."""
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)


class Order(DocumentModel):
    """
    Order document.

    Tracks the lifecycle from placement to a terminal status. ``restaurant_id``
    never changes after creation; ``status`` only moves along
    ``ORDER_TRANSITIONS``.
    """
    restaurant_id: str = Field(..., min_length=1)
    customer_id: Optional[str] = None
    customer_name: Optional[str] = "Customer"
    restaurant_name: Optional[str] = None
    order_display_id: Optional[str] = None
    items: list[OrderItem] = Field(default_factory=list)
    subtotal: Optional[float] = None
    total: Optional[float] = None
    # Unknown statuses written by other clients are kept as plain strings
    status: Union[OrderStatus, str] = Field(default=OrderStatus.PENDING, union_mode="left_to_right")
    created_at: Optional[datetime] = None
    status_updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<Order {self.id} - {self.restaurant_id} - {getattr(self.status, 'value', self.status)}>"


# =============================================================================
# RESTAURANTS
# =============================================================================

class Location(BaseModel):
    lat: float
    lng: float


class DayHours(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    open: Optional[str] = None
    close: Optional[str] = None
    is_open: Optional[bool] = None


class Restaurant(DocumentModel):
    """Restaurant profile. One per owner; ``draft`` until published."""
    owner_id: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    categories: list[str] = Field(default_factory=list)
    address: str = ""
    location: Optional[Location] = None
    phone: str = ""
    hours: dict[str, DayHours] = Field(default_factory=dict)
    status: RestaurantStatus = RestaurantStatus.DRAFT
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    rating: Optional[float] = None
    price_range: Optional[str] = None
    # Manual overrides set from the owner app
    restaurant_status: Optional[str] = None
    is_open: Optional[bool] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Computed on read, never stored
    open_now: Optional[bool] = None
    distance: Optional[float] = None

    def __repr__(self) -> str:
        return f"<Restaurant {self.id} - {self.name!r} - {self.status.value}>"


class MenuItem(DocumentModel):
    """Menu item living in a restaurant's ``menuItems`` sub-collection."""
    restaurant_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = ""
    price: Optional[float] = None
    image_url: Optional[str] = None
    category: Optional[str] = ""
    available: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# USERS
# =============================================================================

class AppSettings(BaseModel):
    """Per-user app preferences stored on the user document."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    notifications_enabled: bool = True
    printer_settings: dict[str, Any] = Field(default_factory=dict)


class UserProfile(DocumentModel):
    """User document created at role selection."""
    role: Optional[UserRole] = None
    onboarding_completed: bool = False
    favorite_restaurants: list[str] = Field(default_factory=list)
    push_token: Optional[str] = None
    push_token_updated_at: Optional[datetime] = None
    platform: Optional[str] = None
    notifications_enabled: bool = True
    printer_settings: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
