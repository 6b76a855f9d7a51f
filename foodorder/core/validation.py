"""
Validation

Pure checks run before any store call. Inputs are the camelCase dicts
callers send; outputs are ``None`` when valid, otherwise a field -> message
mapping (or a single message for hours and transitions).
"""

import re
from typing import Any, Optional

from foodorder.models import ORDER_TRANSITIONS, OrderStatus

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")
TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
MAX_ITEM_PRICE = 10_000


def _check_name(value: Any, label: str) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return f"{label} is required"
    length = len(value.strip())
    if length < NAME_MIN_LENGTH:
        return f"{label} must be at least {NAME_MIN_LENGTH} characters"
    if length > NAME_MAX_LENGTH:
        return f"{label} must be less than {NAME_MAX_LENGTH} characters"
    return None


def _parse_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def validate_hours(hours: Any) -> Optional[str]:
    """
    Validate an operating-hours mapping of weekday -> {open, close, isOpen}.

    Days that are missing or closed are skipped. Returns the first problem
    found, prefixed with the weekday.
    """
    if not isinstance(hours, dict):
        return "Hours must be a mapping of weekday to opening times"

    for day in WEEKDAYS:
        day_hours = hours.get(day)
        if not day_hours:
            continue
        if not isinstance(day_hours, dict):
            return f"{day}: Invalid hours entry"
        if not day_hours.get("isOpen"):
            continue

        open_time = day_hours.get("open")
        close_time = day_hours.get("close")
        if not open_time or not close_time:
            return f"{day}: Open and close times are required when restaurant is open"

        if not TIME_PATTERN.match(str(open_time)) or not TIME_PATTERN.match(str(close_time)):
            return f"{day}: Invalid time format. Use HH:MM format (e.g., 09:00)"

        if _parse_minutes(open_time) >= _parse_minutes(close_time):
            return f"{day}: Close time must be after open time"

    return None


def validate_restaurant_data(data: dict[str, Any]) -> Optional[dict[str, str]]:
    """
    Validate restaurant profile fields.

    Only keys present in ``data`` are checked, so partial updates validate
    the fields they touch.
    """
    errors: dict[str, str] = {}

    if "name" in data:
        name_error = _check_name(data["name"], "Restaurant name")
        if name_error:
            errors["name"] = name_error

    phone = data.get("phone")
    if phone:
        if not isinstance(phone, str) or not PHONE_PATTERN.match(phone):
            errors["phone"] = "Invalid phone number format"

    description = data.get("description")
    if description:
        if not isinstance(description, str):
            errors["description"] = "Description must be text"
        elif len(description.strip()) > DESCRIPTION_MAX_LENGTH:
            errors["description"] = f"Description must be less than {DESCRIPTION_MAX_LENGTH} characters"

    if "categories" in data:
        categories = data["categories"]
        if isinstance(categories, str):
            if not categories.strip():
                errors["categories"] = "Cuisine type is required"
        elif not categories:
            errors["categories"] = "At least one cuisine type is required"

    if data.get("hours"):
        hours_error = validate_hours(data["hours"])
        if hours_error:
            errors["hours"] = hours_error

    return errors or None


def validate_menu_item_data(data: dict[str, Any], partial: bool = False) -> Optional[dict[str, str]]:
    """
    Validate menu item fields.

    Args:
        data: Item fields
        partial: When True, only fields present in ``data`` are required
    """
    errors: dict[str, str] = {}

    if not partial or "name" in data:
        name_error = _check_name(data.get("name"), "Item name")
        if name_error:
            errors["name"] = name_error

    if not partial or "price" in data:
        raw_price = data.get("price")
        if raw_price is None:
            errors["price"] = "Price is required"
        else:
            try:
                price = float(raw_price)
            except (TypeError, ValueError):
                price = float("nan")
            if isinstance(raw_price, bool) or price != price or price < 0:
                errors["price"] = "Price must be a valid positive number"
            elif price > MAX_ITEM_PRICE:
                errors["price"] = "Price seems too high. Please verify."

    category = data.get("category")
    if category is not None and isinstance(category, str) and category and not category.strip():
        errors["category"] = "Category cannot be empty"

    description = data.get("description")
    if description and len(str(description)) > DESCRIPTION_MAX_LENGTH:
        errors["description"] = f"Description must be less than {DESCRIPTION_MAX_LENGTH} characters"

    return errors or None


def validate_order_status_transition(current_status: Any, new_status: Any) -> Optional[str]:
    """Return an error message when ``current -> new`` is not an allowed edge."""
    try:
        current = OrderStatus(current_status)
        target = OrderStatus(new_status)
    except ValueError:
        return f"Cannot change status from {current_status} to {new_status}"

    if target not in ORDER_TRANSITIONS[current]:
        return f"Cannot change status from {current.value} to {target.value}"
    return None
