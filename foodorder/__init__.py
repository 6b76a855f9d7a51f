"""
                Food Ordering Data Layer

Backend data layer for a two-sided food ordering app: customers browse
restaurants and place orders, restaurant staff run the order workflow
and manage menus, with live updates and push notifications.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
