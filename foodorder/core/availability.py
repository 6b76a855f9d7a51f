"""
Availability

Customer-side helpers for browsing: straight-line distance between two
coordinates and whether a restaurant is open at a given moment.
"""

import math
from datetime import datetime
from typing import Optional

from foodorder.core.validation import TIME_PATTERN, WEEKDAYS
from foodorder.models import Restaurant

EARTH_RADIUS_KM = 6371
MINUTES_PER_DAY = 24 * 60


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in kilometres, rounded to 0.1 km."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 1)


def _minutes(value: Optional[str]) -> Optional[int]:
    if not value or not TIME_PATTERN.match(value):
        return None
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def is_restaurant_open(restaurant: Restaurant, now: datetime) -> bool:
    """
    Whether the restaurant takes orders at ``now``.

    Manual overrides win: ``restaurantStatus`` of "open"/"closed" first,
    then an explicit ``isOpen`` flag. Without overrides the day's hours
    decide; a restaurant with no hours at all counts as open. Closing
    times earlier than the opening time run past midnight.
    """
    if restaurant.restaurant_status == "closed":
        return False
    if restaurant.restaurant_status == "open":
        return True
    if restaurant.is_open is not None:
        return restaurant.is_open

    if not restaurant.hours:
        return True

    day = WEEKDAYS[now.weekday()]
    # Older documents use lowercase weekday keys
    today = restaurant.hours.get(day) or restaurant.hours.get(day.lower())
    if today is None or today.is_open is False:
        return False

    open_minutes = _minutes(today.open)
    close_minutes = _minutes(today.close)
    if open_minutes is None or close_minutes is None:
        return False

    current = now.hour * 60 + now.minute
    if close_minutes < open_minutes:
        close_minutes += MINUTES_PER_DAY
        if current < open_minutes:
            current += MINUTES_PER_DAY
    return open_minutes <= current < close_minutes
