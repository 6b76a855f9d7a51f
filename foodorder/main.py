"""
FastAPI Application Entry Point

Food Ordering Data Layer - HTTP surface over the repositories.
Every endpoint answers with the result envelope; the HTTP status follows
its ``errorCode``.

Endpoints:
    - GET  /health: System health check
    - POST /api/restaurants: Create restaurant (draft)
    - GET  /api/restaurants: Browse published restaurants (filters, sorting, distance)
    - GET  /api/restaurants/nearby, /api/restaurants/featured, /api/categories
    - GET  /api/restaurants/{id}, /api/owners/{owner_id}/restaurant
    - PATCH /api/restaurants/{id}: Update business info
    - POST /api/restaurants/{id}/publish
    - /api/restaurants/{id}/menu[...]: Menu CRUD
    - POST /api/orders, GET /api/orders/{id}
    - GET  /api/restaurants/{id}/orders
    - PATCH /api/orders/{id}/status: Order workflow
    - PUT/DELETE /api/users/{uid}/push-token
    - GET/POST/DELETE /api/users/{uid}/favorites[...]
    - WS   /ws/restaurants/{id}/orders: Live order feed

Version: 1.0.0
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from foodorder.core.config import get_settings, setup_logging
from foodorder.core.errors import ErrorCode
from foodorder.core.result import Result
from foodorder.models import Location
from foodorder.schemas import (
    AvailabilityUpdate,
    HealthResponse,
    MenuItemCreate,
    MenuItemUpdate,
    OrderCreate,
    OrderStatusUpdate,
    PublishRequest,
    PushTokenRequest,
    RestaurantCreate,
    RestaurantUpdate,
)
from foodorder.services.favorites import FavoritesRepository, get_favorites_repository
from foodorder.services.menu import MenuRepository, get_menu_repository
from foodorder.services.notifications import get_dedupe_cache, get_notification_dispatcher, get_push_transport
from foodorder.services.orders import OrderRepository, get_order_repository
from foodorder.services.restaurants import RestaurantRepository, get_restaurant_repository
from foodorder.services.store import get_document_store
from foodorder.services.users import UserRepository, get_user_repository

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# errorCode -> HTTP status (anything else is a 500)
HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.USER_NOT_FOUND: 404,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.AUTH_ERROR: 401,
    ErrorCode.CONFLICT_ERROR: 409,
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.TOO_MANY_REQUESTS: 429,
    ErrorCode.QUOTA_EXCEEDED: 429,
    ErrorCode.NETWORK_ERROR: 503,
    ErrorCode.CONNECTION_ERROR: 503,
    ErrorCode.UNAVAILABLE: 503,
    ErrorCode.TIMEOUT_ERROR: 503,
}


def envelope(result: Result, success_status: int = 200) -> JSONResponse:
    """Render a Result as the JSON envelope with a matching status code."""
    status_code = success_status if result.success else HTTP_STATUS.get(result.error_code, 500)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(result.to_dict()))


def location_param(lat: Optional[float], lng: Optional[float]) -> Optional[Location]:
    if lat is None or lng is None:
        return None
    return Location(lat=lat, lng=lng)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    store = get_document_store()
    init = getattr(store, "init", None)
    if init is not None:
        await init()
    logger.info(f"Document Store: {store.provider_name}")
    logger.info(f"Push Transport: {get_push_transport().provider_name}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await get_notification_dispatcher().wait_idle()
    await get_push_transport().close()
    await store.close()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Data layer for a two-sided food ordering app: restaurants, menus, "
        "the order workflow and live order feeds."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check() -> HealthResponse:
    """Verify all system components are operational."""
    store = get_document_store()
    store_status = "healthy" if await store.health_check() else "unhealthy"
    dedupe_status = "healthy" if await get_dedupe_cache().health_check() else "unhealthy"
    push_status = "healthy" if await get_push_transport().health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [store_status, dedupe_status, push_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        environment=settings.env_mode.value,
        document_store=f"{store.provider_name}: {store_status}",
        dedupe_cache=dedupe_status,
        push_transport=push_status,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# RESTAURANT ENDPOINTS
# =============================================================================

@app.post("/api/restaurants", tags=["Restaurants"], summary="Create Restaurant")
async def create_restaurant(
    body: RestaurantCreate,
    restaurants: RestaurantRepository = Depends(get_restaurant_repository),
) -> JSONResponse:
    """Create the owner's restaurant in draft status (one per owner)."""
    result = await restaurants.create(body.owner_id, body.to_document())
    return envelope(result, success_status=201)


@app.get("/api/restaurants", tags=["Restaurants"], summary="Browse Restaurants")
async def list_restaurants(
    category: Optional[list[str]] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    limit: Optional[int] = Query(None, ge=1, le=100),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    sort_by: Optional[str] = Query(None),
    max_distance: Optional[float] = Query(None, gt=0),
    open_now: bool = Query(False),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    price_range: Optional[str] = Query(None),
    restaurants: RestaurantRepository = Depends(get_restaurant_repository),
) -> JSONResponse:
    """List published restaurants, with open-now status and optional distance."""
    return envelope(await restaurants.list_active(
        categories=category,
        limit=limit,
        search=search,
        user_location=location_param(lat, lng),
        sort_by=sort_by,
        max_distance=max_distance,
        open_now=open_now,
        min_rating=min_rating,
        price_range=price_range,
    ))


@app.get("/api/restaurants/nearby", tags=["Restaurants"], summary="Nearby Restaurants")
async def nearby_restaurants(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(10, gt=0),
    limit: int = Query(10, ge=1, le=100),
    restaurants: RestaurantRepository = Depends(get_restaurant_repository),
) -> JSONResponse:
    return envelope(await restaurants.get_nearby(lat, lng, radius_km=radius_km, limit=limit))


@app.get("/api/restaurants/featured", tags=["Restaurants"], summary="Featured Restaurants")
async def featured_restaurants(
    limit: int = Query(6, ge=1, le=50),
    restaurants: RestaurantRepository = Depends(get_restaurant_repository),
) -> JSONResponse:
    return envelope(await restaurants.get_featured(limit=limit))


@app.get("/api/categories", tags=["Restaurants"], summary="Cuisine Categories")
async def restaurant_categories(
    restaurants: RestaurantRepository = Depends(get_restaurant_repository),
) -> JSONResponse:
    return envelope(await restaurants.get_categories())


@app.get("/api/restaurants/{restaurant_id}", tags=["Restaurants"])
async def get_restaurant(
    restaurant_id: str,
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    restaurants: RestaurantRepository = Depends(get_restaurant_repository),
) -> JSONResponse:
    return envelope(await restaurants.get_by_id(restaurant_id, user_location=location_param(lat, lng)))


@app.get("/api/owners/{owner_id}/restaurant", tags=["Restaurants"])
async def get_restaurant_by_owner(
    owner_id: str,
    restaurants: RestaurantRepository = Depends(get_restaurant_repository),
) -> JSONResponse:
    return envelope(await restaurants.get_by_owner(owner_id))


@app.patch("/api/restaurants/{restaurant_id}", tags=["Restaurants"], summary="Update Business Info")
async def update_restaurant(
    restaurant_id: str,
    body: RestaurantUpdate,
    restaurants: RestaurantRepository = Depends(get_restaurant_repository),
) -> JSONResponse:
    return envelope(await restaurants.update(restaurant_id, body.changes(), owner_id=body.owner_id))


@app.post("/api/restaurants/{restaurant_id}/publish", tags=["Restaurants"], summary="Publish Restaurant")
async def publish_restaurant(
    restaurant_id: str,
    body: PublishRequest,
    restaurants: RestaurantRepository = Depends(get_restaurant_repository),
) -> JSONResponse:
    return envelope(await restaurants.publish(restaurant_id, body.owner_id))


# =============================================================================
# MENU ENDPOINTS
# =============================================================================

@app.get("/api/restaurants/{restaurant_id}/menu", tags=["Menu"])
async def list_menu(
    restaurant_id: str,
    available_only: bool = Query(False),
    menu: MenuRepository = Depends(get_menu_repository),
) -> JSONResponse:
    return envelope(await menu.list_items(restaurant_id, available_only=available_only))


@app.post("/api/restaurants/{restaurant_id}/menu", tags=["Menu"])
async def add_menu_item(
    restaurant_id: str,
    body: MenuItemCreate,
    menu: MenuRepository = Depends(get_menu_repository),
) -> JSONResponse:
    return envelope(await menu.add_item(restaurant_id, body.to_document()), success_status=201)


@app.get("/api/restaurants/{restaurant_id}/menu/{item_id}", tags=["Menu"])
async def get_menu_item(
    restaurant_id: str,
    item_id: str,
    menu: MenuRepository = Depends(get_menu_repository),
) -> JSONResponse:
    return envelope(await menu.get_item(restaurant_id, item_id))


@app.patch("/api/restaurants/{restaurant_id}/menu/{item_id}", tags=["Menu"])
async def update_menu_item(
    restaurant_id: str,
    item_id: str,
    body: MenuItemUpdate,
    menu: MenuRepository = Depends(get_menu_repository),
) -> JSONResponse:
    return envelope(await menu.update_item(restaurant_id, item_id, body.to_document()))


@app.put("/api/restaurants/{restaurant_id}/menu/{item_id}/availability", tags=["Menu"])
async def update_menu_item_availability(
    restaurant_id: str,
    item_id: str,
    body: AvailabilityUpdate,
    menu: MenuRepository = Depends(get_menu_repository),
) -> JSONResponse:
    return envelope(await menu.update_availability(restaurant_id, item_id, body.available))


@app.delete("/api/restaurants/{restaurant_id}/menu/{item_id}", tags=["Menu"])
async def delete_menu_item(
    restaurant_id: str,
    item_id: str,
    menu: MenuRepository = Depends(get_menu_repository),
) -> JSONResponse:
    return envelope(await menu.delete_item(restaurant_id, item_id))


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post("/api/orders", tags=["Orders"], summary="Place Order")
async def create_order(
    body: OrderCreate,
    orders: OrderRepository = Depends(get_order_repository),
) -> JSONResponse:
    return envelope(await orders.create_order(body.to_document()), success_status=201)


@app.get("/api/orders/{order_id}", tags=["Orders"])
async def get_order(
    order_id: str,
    orders: OrderRepository = Depends(get_order_repository),
) -> JSONResponse:
    return envelope(await orders.get_order(order_id))


@app.get("/api/restaurants/{restaurant_id}/orders", tags=["Orders"])
async def list_restaurant_orders(
    restaurant_id: str,
    status: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=200),
    orders: OrderRepository = Depends(get_order_repository),
) -> JSONResponse:
    return envelope(await orders.list_by_restaurant(restaurant_id, status=status, limit=limit))


@app.get("/api/customers/{customer_id}/active-order", tags=["Orders"])
async def get_active_order(
    customer_id: str,
    orders: OrderRepository = Depends(get_order_repository),
) -> JSONResponse:
    return envelope(await orders.get_active_order(customer_id))


@app.patch("/api/orders/{order_id}/status", tags=["Orders"], summary="Update Order Status")
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    orders: OrderRepository = Depends(get_order_repository),
) -> JSONResponse:
    """
    Move an order along its workflow.

    409 with INVALID_TRANSITION for an illegal change, 409 with
    CONFLICT_ERROR (retryable) when another device changed it first.
    """
    return envelope(await orders.update_status(order_id, body.status, body.restaurant_id))


# =============================================================================
# USER ENDPOINTS
# =============================================================================

@app.put("/api/users/{user_id}/push-token", tags=["Users"])
async def save_push_token(
    user_id: str,
    body: PushTokenRequest,
    users: UserRepository = Depends(get_user_repository),
) -> JSONResponse:
    return envelope(await users.save_push_token(user_id, body.token, body.platform))


@app.delete("/api/users/{user_id}/push-token", tags=["Users"])
async def remove_push_token(
    user_id: str,
    users: UserRepository = Depends(get_user_repository),
) -> JSONResponse:
    return envelope(await users.remove_push_token(user_id))


@app.get("/api/users/{user_id}/favorites", tags=["Favorites"])
async def get_favorites(
    user_id: str,
    favorites: FavoritesRepository = Depends(get_favorites_repository),
) -> JSONResponse:
    return envelope(await favorites.get_user_favorites(user_id))


@app.post("/api/users/{user_id}/favorites/{restaurant_id}", tags=["Favorites"])
async def add_favorite(
    user_id: str,
    restaurant_id: str,
    favorites: FavoritesRepository = Depends(get_favorites_repository),
) -> JSONResponse:
    return envelope(await favorites.add_to_favorites(user_id, restaurant_id))


@app.delete("/api/users/{user_id}/favorites/{restaurant_id}", tags=["Favorites"])
async def remove_favorite(
    user_id: str,
    restaurant_id: str,
    favorites: FavoritesRepository = Depends(get_favorites_repository),
) -> JSONResponse:
    return envelope(await favorites.remove_from_favorites(user_id, restaurant_id))


# =============================================================================
# LIVE ORDER FEED
# =============================================================================

@app.websocket("/ws/restaurants/{restaurant_id}/orders")
async def restaurant_orders_feed(
    websocket: WebSocket,
    restaurant_id: str,
    orders: OrderRepository = Depends(get_order_repository),
) -> None:
    """
    Stream the restaurant's orders.

    Each message is the envelope with the full newest-first order list.
    The subscription lives exactly as long as the connection.
    """
    await websocket.accept()
    updates: asyncio.Queue = asyncio.Queue()

    async def forward() -> None:
        while True:
            result = await updates.get()
            await websocket.send_json(jsonable_encoder(result.to_dict()))

    async def watch_disconnect() -> None:
        while True:
            await websocket.receive_text()

    with await orders.listen_by_restaurant(restaurant_id, updates.put_nowait):
        tasks = [asyncio.create_task(forward()), asyncio.create_task(watch_disconnect())]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"Order feed for {restaurant_id} closed with error: {error!r}")

    logger.info(f"Order feed closed for restaurant {restaurant_id}")


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies get the same envelope as business-rule failures."""
    errors = {
        ".".join(str(part) for part in error["loc"] if part != "body"): error["msg"]
        for error in exc.errors()
    }
    return envelope(Result.validation_error(errors, "Invalid request"))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    result = Result.from_error(exc)
    if settings.debug:
        result.error = f"{result.error} ({exc})"
    return envelope(result)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "foodorder.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
