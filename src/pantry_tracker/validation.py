"""Field validation for user-supplied product and shopping data.

Every rule is evaluated so callers get the complete list of problems in one
``ValidationError`` instead of fixing them one at a time.
"""

import math
from datetime import date
from typing import Any

from .errors import ValidationError
from .models import Category, Unit

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
QUANTITY_TOTAL_MIN = 0.1
QUANTITY_TOTAL_MAX = 9999
THRESHOLD_INPUT_MIN = 0.1
THRESHOLD_INPUT_MAX = 1.0
SHOPPING_QUANTITY_MIN = 0.1
SHOPPING_QUANTITY_MAX = 999

PRODUCT_FIELDS = {
    "name",
    "category",
    "unit",
    "quantity_total",
    "quantity_current",
    "low_stock_threshold",
    "expiration_date",
    "notes",
}


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number)


def _check_name(value: Any, errors: list[str], label: str = "name") -> None:
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{label}: required")
        return
    length = len(value.strip())
    if length < NAME_MIN_LENGTH:
        errors.append(f"{label}: must be at least {NAME_MIN_LENGTH} characters")
    elif length > NAME_MAX_LENGTH:
        errors.append(f"{label}: must be at most {NAME_MAX_LENGTH} characters")


def _check_enum(enum_cls: type, field: str, value: Any, errors: list[str]) -> None:
    allowed = [member.value for member in enum_cls]
    raw = value.value if hasattr(value, "value") else value
    if raw not in allowed:
        errors.append(f"{field}: must be one of {', '.join(allowed)}")


def _check_expiration(value: Any, errors: list[str]) -> None:
    if value is None or value == "" or isinstance(value, date):
        return
    if isinstance(value, str):
        try:
            date.fromisoformat(value)
            return
        except ValueError:
            pass
    errors.append("expiration_date: must be a date in YYYY-MM-DD format")


def _check_threshold(value: Any, errors: list[str]) -> None:
    if value is None:
        return
    if not _is_number(value):
        errors.append("low_stock_threshold: must be a number")
    elif not THRESHOLD_INPUT_MIN <= float(value) <= THRESHOLD_INPUT_MAX:
        errors.append(
            f"low_stock_threshold: must be between {THRESHOLD_INPUT_MIN} and {THRESHOLD_INPUT_MAX}"
        )


def _check_quantities(total: Any, current: Any, errors: list[str]) -> None:
    total_ok = False
    if not _is_number(total):
        errors.append("quantity_total: must be a number")
    elif not QUANTITY_TOTAL_MIN <= float(total) <= QUANTITY_TOTAL_MAX:
        errors.append(
            f"quantity_total: must be between {QUANTITY_TOTAL_MIN} and {QUANTITY_TOTAL_MAX}"
        )
    else:
        total_ok = True

    if current is None:
        return
    if not _is_number(current):
        errors.append("quantity_current: must be a number")
    elif float(current) < 0:
        errors.append("quantity_current: cannot be negative")
    elif total_ok and float(current) > float(total):
        errors.append("quantity_current: cannot exceed quantity_total")


def validate_new_product(data: dict[str, Any]) -> None:
    """Validate data for a new product.

    Raises:
        ValidationError: Listing every violated field
    """
    errors: list[str] = []
    unknown = sorted(set(data) - PRODUCT_FIELDS)
    if unknown:
        errors.append(f"unknown fields: {', '.join(unknown)}")

    _check_name(data.get("name"), errors)
    _check_enum(Category, "category", data.get("category"), errors)
    _check_enum(Unit, "unit", data.get("unit"), errors)
    _check_quantities(data.get("quantity_total"), data.get("quantity_current"), errors)
    _check_threshold(data.get("low_stock_threshold"), errors)
    _check_expiration(data.get("expiration_date"), errors)

    if errors:
        raise ValidationError(errors)


def validate_product_update(merged: dict[str, Any], updates: dict[str, Any]) -> None:
    """Validate an update against the merged (existing + updated) record.

    Only fields present in ``updates`` are checked, except that quantities are
    always checked together so a lone ``quantity_current`` is compared to the
    stored ``quantity_total``.

    Raises:
        ValidationError: Listing every violated field
    """
    errors: list[str] = []
    unknown = sorted(set(updates) - PRODUCT_FIELDS)
    if unknown:
        errors.append(f"unknown fields: {', '.join(unknown)}")

    if "name" in updates:
        _check_name(updates["name"], errors)
    if "category" in updates:
        _check_enum(Category, "category", updates["category"], errors)
    if "unit" in updates:
        _check_enum(Unit, "unit", updates["unit"], errors)
    if "quantity_total" in updates or "quantity_current" in updates:
        _check_quantities(merged.get("quantity_total"), merged.get("quantity_current"), errors)
    if "low_stock_threshold" in updates:
        _check_threshold(updates["low_stock_threshold"], errors)
    if "expiration_date" in updates:
        _check_expiration(updates["expiration_date"], errors)

    if errors:
        raise ValidationError(errors)


def validate_consume_amount(amount: Any) -> float:
    """Validate a consumption amount and return it as a float."""
    if not _is_number(amount) or float(amount) <= 0:
        raise ValidationError(["amount: must be a number greater than 0"])
    return float(amount)


def validate_shopping_item(product_name: Any, quantity: Any) -> None:
    """Validate a manually added shopping list item."""
    errors: list[str] = []
    _check_name(product_name, errors, label="product_name")
    if not _is_number(quantity):
        errors.append("quantity: must be a number")
    elif not SHOPPING_QUANTITY_MIN <= float(quantity) <= SHOPPING_QUANTITY_MAX:
        errors.append(
            f"quantity: must be between {SHOPPING_QUANTITY_MIN} and {SHOPPING_QUANTITY_MAX}"
        )
    if errors:
        raise ValidationError(errors)


def validate_expiration_date(value: Any) -> date | None:
    """Validate an optional expiration date and return it as a date."""
    errors: list[str] = []
    _check_expiration(value, errors)
    if errors:
        raise ValidationError(errors)
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)
