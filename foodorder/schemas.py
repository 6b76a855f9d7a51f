"""
Pydantic Schemas for Request/Response Validation

Request bodies accept camelCase (the document wire format) or snake_case
and are handed to the repositories as camelCase dicts. Business rules
(name length, price range, transitions ...) are checked by the
repositories so every rule violation comes back in the same envelope.

Version: 1.0.0
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    """Base for request bodies."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """Fields the client actually sent, camelCase."""
        return self.model_dump(by_alias=True, exclude_unset=True)


# =============================================================================
# RESTAURANTS
# =============================================================================

class LocationIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class RestaurantCreate(RequestModel):
    """Request schema for creating a restaurant during onboarding."""
    owner_id: str = Field(..., min_length=1, examples=["uid_123"])
    name: str = Field(..., examples=["Pho 99"])
    description: Optional[str] = Field(None, examples=["Family-run noodle house"])
    categories: list[str] = Field(default_factory=list, examples=[["Vietnamese"]])
    address: Optional[str] = None
    location: Optional[LocationIn] = None
    phone: Optional[str] = Field(None, examples=["+1 (555) 123-4567"])
    hours: Optional[dict[str, Any]] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None

    def to_document(self) -> dict[str, Any]:
        document = super().to_document()
        document.pop("ownerId", None)
        document.setdefault("categories", [])
        return document


class RestaurantUpdate(RequestModel):
    """
    Partial business-info update.

    Unknown keys are passed through so protected fields (``status``,
    ``ownerId`` ...) are rejected by the repository with field errors.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    owner_id: Optional[str] = Field(None, description="When set, must match the restaurant owner")
    name: Optional[str] = None
    description: Optional[str] = None
    categories: Optional[list[str]] = None
    address: Optional[str] = None
    location: Optional[LocationIn] = None
    phone: Optional[str] = None
    hours: Optional[dict[str, Any]] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None

    def changes(self) -> dict[str, Any]:
        """Fields to write (without the ``ownerId`` check value)."""
        document = self.to_document()
        document.pop("ownerId", None)
        return document


class PublishRequest(RequestModel):
    owner_id: str = Field(..., min_length=1)


# =============================================================================
# MENU
# =============================================================================

class MenuItemCreate(RequestModel):
    """Request schema for adding a menu item."""
    name: Optional[str] = Field(None, examples=["Pho Tai"])
    price: Any = Field(None, examples=[12.5])
    description: Optional[str] = None
    category: Optional[str] = Field(None, examples=["Noodles"])
    image_url: Optional[str] = None
    available: Optional[bool] = None


class MenuItemUpdate(MenuItemCreate):
    """Partial menu item update; only sent fields are validated."""


class AvailabilityUpdate(RequestModel):
    available: bool


# =============================================================================
# ORDERS
# =============================================================================

class OrderItemIn(RequestModel):
    """Single item in an order."""
    menu_item_id: Optional[str] = None
    name: str = Field(..., min_length=1, examples=["Pho Tai"])
    price: float = Field(..., examples=[12.5])
    quantity: int = Field(default=1, examples=[2])


class OrderCreate(RequestModel):
    """Request schema for placing an order."""
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    restaurant_id: Optional[str] = None
    restaurant_name: Optional[str] = None
    items: list[OrderItemIn] = Field(default_factory=list)
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    delivery_fee: Optional[float] = None
    total: Optional[float] = None
    delivery_address: Optional[str] = None
    phone_number: Optional[str] = None
    special_instructions: Optional[str] = None


class OrderStatusUpdate(RequestModel):
    """Status change requested by restaurant staff."""
    status: str = Field(..., examples=["Cooking"])
    restaurant_id: str = Field(..., examples=["r_123"])


# =============================================================================
# USERS
# =============================================================================

class PushTokenRequest(RequestModel):
    token: str = Field(..., min_length=1, examples=["ExponentPushToken[xxxxxxxx]"])
    platform: Optional[str] = Field(None, examples=["ios", "android"])


# =============================================================================
# RESPONSES
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    environment: str
    document_store: str
    dedupe_cache: str
    push_transport: str
    timestamp: datetime
