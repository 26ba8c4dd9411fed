"""Tests for output formatting."""

import json
from datetime import date, datetime, time
from io import StringIO

import pytest
from rich.console import Console

from pantry_tracker.models import (
    OperationResult,
    Prediction,
    Product,
    ShoppingListItem,
    ShoppingReason,
    ShoppingStats,
    SweepResult,
)
from pantry_tracker.output_formatter import JSONEncoder, OutputFormatter
from pantry_tracker.status import StockStatus


@pytest.fixture
def rich_formatter():
    formatter = OutputFormatter(json_mode=False)
    formatter.console = Console(file=StringIO(), width=140)
    return formatter


def _rendered(formatter):
    return formatter.console.file.getvalue()


def _product(**fields):
    base = {"id": "prod-0001-abcd", "name": "Milk", "quantity_total": 4, "quantity_current": 1}
    return Product(**{**base, **fields}).model_dump(mode="json")


class TestJSONEncoder:
    """Tests for JSONEncoder."""

    def test_encode_datetime(self):
        result = json.dumps({"time": datetime(2026, 1, 15, 10, 30)}, cls=JSONEncoder)
        assert "2026-01-15T10:30:00" in result

    def test_encode_date_and_time(self):
        result = json.dumps({"d": date(2026, 1, 15), "t": time(14, 30)}, cls=JSONEncoder)
        assert "2026-01-15" in result
        assert "14:30" in result

    def test_encode_enum(self):
        assert json.dumps({"s": StockStatus.LOW}, cls=JSONEncoder) == '{"s": "low"}'

    def test_encode_fallback(self):
        with pytest.raises(TypeError):
            json.dumps({"bad": object()}, cls=JSONEncoder)


class TestOutputFormatterJSON:
    """Tests for JSON output mode."""

    def test_json_mode_output(self, capsys):
        formatter = OutputFormatter(json_mode=True)
        formatter.output({"success": True, "data": {"product": _product()}}, "ignored")
        data = json.loads(capsys.readouterr().out)
        assert data["data"]["product"]["name"] == "Milk"
        assert data["data"]["product"]["status"] == "available"

    def test_operation_result_output(self, capsys):
        result = OperationResult(
            success=True,
            message="Consumed 1 of Milk",
            product=Product(id="p1", name="Milk", quantity_total=4, quantity_current=0),
            previous_status=StockStatus.LOW,
            new_status=StockStatus.OUT,
        )
        OutputFormatter(json_mode=True).output(result.to_output())
        data = json.loads(capsys.readouterr().out)
        assert data["message"] == "Consumed 1 of Milk"
        assert data["data"]["new_status"] == "out"
        assert data["data"]["status_changed"] is True

    def test_json_error(self, capsys):
        formatter = OutputFormatter(json_mode=True)
        formatter.error(
            "Product validation failed",
            error_code="VALIDATION_ERROR",
            validation_errors=["Name is required"],
        )
        data = json.loads(capsys.readouterr().out)
        assert data == {
            "success": False,
            "error": "Product validation failed",
            "error_code": "VALIDATION_ERROR",
            "validation_errors": ["Name is required"],
        }

    def test_json_error_without_code(self, capsys):
        OutputFormatter(json_mode=True).error("boom")
        assert json.loads(capsys.readouterr().out) == {"success": False, "error": "boom"}

    def test_json_success_and_warning(self, capsys):
        formatter = OutputFormatter(json_mode=True)
        formatter.success("Done", data={"count": 5})
        formatter.warning("Careful")
        first, second = capsys.readouterr().out.strip().splitlines()
        assert json.loads(first) == {"success": True, "message": "Done", "data": {"count": 5}}
        assert json.loads(second) == {"warning": "Careful"}


class TestOutputFormatterRich:
    """Tests for Rich output mode."""

    def test_products_table(self, rich_formatter):
        rich_formatter.output(
            {
                "success": True,
                "data": {
                    "products": [_product(), _product(id="prod-0002", name="Rice", quantity_current=0)],
                    "title": "Pantry",
                },
            }
        )
        output = _rendered(rich_formatter)
        assert "Pantry" in output
        assert "Milk" in output
        assert "Rice" in output
        assert "out" in output
        assert "Total products: 2" in output

    def test_empty_products(self, rich_formatter):
        rich_formatter.output({"success": True, "data": {"products": []}})
        assert "No products" in _rendered(rich_formatter)

    def test_single_product_with_item(self, rich_formatter):
        item = ShoppingListItem(
            id="item-1", product_id="prod-0001-abcd", product_name="Milk", reason=ShoppingReason.LOW
        )
        rich_formatter.output(
            {
                "success": True,
                "message": "Consumed 3 of Milk",
                "data": {
                    "product": _product(notes="Lactose free"),
                    "shopping_item": item.model_dump(mode="json"),
                },
            },
            "Consumed 3 of Milk",
        )
        output = _rendered(rich_formatter)
        assert "✓ Consumed 3 of Milk" in output
        assert "Lactose free" in output
        assert "Milk: 1 count (low)" in output

    def test_shopping_list(self, rich_formatter):
        items = [
            ShoppingListItem(id="item-1", product_name="Candles").model_dump(mode="json"),
            ShoppingListItem(
                id="item-2", product_name="Rice", reason=ShoppingReason.OUT, checked=True
            ).model_dump(mode="json"),
        ]
        rich_formatter.output({"success": True, "data": {"shopping_list": items}})
        output = _rendered(rich_formatter)
        assert "Shopping List" in output
        assert "Candles" in output
        assert "Rice" in output
        assert "Total items: 2" in output

    def test_empty_shopping_list(self, rich_formatter):
        rich_formatter.output({"success": True, "data": {"shopping_list": []}})
        assert "Shopping list is empty" in _rendered(rich_formatter)

    def test_shopping_stats(self, rich_formatter):
        stats = ShoppingStats(total=3, pending=2, purchased=1, manual_items=1)
        rich_formatter.output({"success": True, "data": {"shopping_stats": stats.model_dump()}})
        assert "Pending: 2  Purchased: 1  Total: 3" in _rendered(rich_formatter)

    def test_sweep(self, rich_formatter):
        sweep = SweepResult(household_id="h", products_processed=4, items_created=2, failures=["p9: boom"])
        rich_formatter.output({"success": True, "data": {"sweep": sweep.model_dump()}})
        output = _rendered(rich_formatter)
        assert "Products processed: 4" in output
        assert "Items created: 2" in output
        assert "p9: boom" in output

    def test_prediction_panel(self, rich_formatter):
        prediction = Prediction(
            product_id="p1",
            product_name="Milk",
            status=StockStatus.LOW,
            estimated_days_left=2,
            insights=["Runs out soon"],
            ai_enhanced=True,
        )
        rich_formatter.output(
            {"success": True, "data": {"prediction": prediction.model_dump(mode="json")}}
        )
        output = _rendered(rich_formatter)
        assert "Forecast (enhanced)" in output
        assert "Days left: 2" in output
        assert "Runs out soon" in output

    def test_predictions_table(self, rich_formatter):
        predictions = [
            Prediction(
                product_id=f"p{i}", product_name=name, status=StockStatus.AVAILABLE,
                estimated_days_left=days,
            ).model_dump(mode="json")
            for i, (name, days) in enumerate([("Milk", 2), ("Rice", 20)])
        ]
        rich_formatter.output(
            {
                "success": True,
                "data": {
                    "predictions": predictions,
                    "stats": {"urgent": 1, "warning": 0, "coverage": 50},
                },
            }
        )
        output = _rendered(rich_formatter)
        assert "Forecasts" in output
        assert "Rice" in output
        assert "Coverage: 50%" in output

    def test_parsed(self, rich_formatter):
        parsed = {"name": "Milk", "quantity": 2.0, "unit": "volume", "category": "food",
                  "expiration_date": None, "from_fallback": True}
        rich_formatter.output({"success": True, "data": {"parsed": parsed}})
        assert "Milk: 2 volume, food (local parser)" in _rendered(rich_formatter)

    def test_rich_error_lists_problems(self, rich_formatter):
        rich_formatter.error("Product validation failed", validation_errors=["Name is required"])
        output = _rendered(rich_formatter)
        assert "Product validation failed" in output
        assert "Name is required" in output

    def test_rich_success_and_warning(self, rich_formatter):
        rich_formatter.success("All good")
        rich_formatter.warning("Watch out")
        output = _rendered(rich_formatter)
        assert "All good" in output
        assert "Watch out" in output
