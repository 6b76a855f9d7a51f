"""
                        Services Module

Contains the repositories and the infrastructure services behind them,
each with a Mock/in-memory (development) and a Real (production) backend.

Services:
    - store: Document store (in-memory / SQL) with live listeners
    - auth: Email/password sign-in (mock / Firebase)
    - notifications: Push dispatch with dedupe (mock / Expo)
    - orders, restaurants, menu, users, favorites, app_settings: Repositories
"""

from foodorder.services.app_settings import AppSettingsRepository, get_app_settings_repository
from foodorder.services.favorites import FavoritesRepository, get_favorites_repository
from foodorder.services.menu import MenuRepository, get_menu_repository
from foodorder.services.orders import OrderRepository, get_order_repository
from foodorder.services.restaurants import RestaurantRepository, get_restaurant_repository
from foodorder.services.users import UserRepository, get_user_repository

__all__ = [
    "AppSettingsRepository",
    "FavoritesRepository",
    "MenuRepository",
    "OrderRepository",
    "RestaurantRepository",
    "UserRepository",
    "get_app_settings_repository",
    "get_favorites_repository",
    "get_menu_repository",
    "get_order_repository",
    "get_restaurant_repository",
    "get_user_repository",
]
