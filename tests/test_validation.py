"""Tests for input validation."""

from datetime import date

import pytest

from pantry_tracker.errors import ValidationError
from pantry_tracker.validation import (
    validate_consume_amount,
    validate_expiration_date,
    validate_new_product,
    validate_product_update,
    validate_shopping_item,
)

VALID = {"name": "Milk", "category": "food", "unit": "volume", "quantity_total": 2}


class TestValidateNewProduct:
    """Tests for new product validation."""

    def test_valid_product(self):
        validate_new_product(VALID)

    def test_collects_every_error(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_new_product(
                {"name": "M", "category": "toys", "unit": "volume", "quantity_total": 0}
            )
        errors = exc_info.value.errors
        assert len(errors) == 3
        assert any(e.startswith("name:") for e in errors)
        assert any(e.startswith("category:") for e in errors)
        assert any(e.startswith("quantity_total:") for e in errors)

    def test_name_too_long(self):
        with pytest.raises(ValidationError):
            validate_new_product({**VALID, "name": "x" * 101})

    def test_quantity_total_upper_bound(self):
        with pytest.raises(ValidationError):
            validate_new_product({**VALID, "quantity_total": 10000})

    def test_threshold_input_range(self):
        validate_new_product({**VALID, "low_stock_threshold": 0.1})
        with pytest.raises(ValidationError):
            validate_new_product({**VALID, "low_stock_threshold": 0.05})

    def test_current_cannot_exceed_total(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_new_product({**VALID, "quantity_current": 3})
        assert "quantity_current: cannot exceed quantity_total" in exc_info.value.errors

    def test_bad_expiration_date(self):
        with pytest.raises(ValidationError):
            validate_new_product({**VALID, "expiration_date": "next week"})

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_new_product({**VALID, "colour": "white"})
        assert "unknown fields: colour" in exc_info.value.errors


class TestValidateProductUpdate:
    """Tests for product update validation."""

    def test_lone_current_checked_against_stored_total(self):
        merged = {**VALID, "quantity_current": 5}
        with pytest.raises(ValidationError):
            validate_product_update(merged, {"quantity_current": 5})

    def test_untouched_fields_not_checked(self):
        merged = {**VALID, "name": "M", "notes": "x"}
        validate_product_update(merged, {"notes": "x"})


class TestSmallValidators:
    """Tests for amount, shopping item and date validators."""

    @pytest.mark.parametrize("amount", [0, -1, "abc", None, float("inf")])
    def test_bad_consume_amounts(self, amount):
        with pytest.raises(ValidationError):
            validate_consume_amount(amount)

    def test_consume_amount_returns_float(self):
        assert validate_consume_amount("2.5") == 2.5

    def test_shopping_item_limits(self):
        validate_shopping_item("Bread", 999)
        with pytest.raises(ValidationError):
            validate_shopping_item("Bread", 1000)
        with pytest.raises(ValidationError):
            validate_shopping_item("B", 1)

    def test_expiration_date(self):
        assert validate_expiration_date(None) is None
        assert validate_expiration_date("2026-05-01") == date(2026, 5, 1)
        assert validate_expiration_date(date(2026, 5, 1)) == date(2026, 5, 1)
        with pytest.raises(ValidationError):
            validate_expiration_date("01/05/2026")
