"""Tests for natural-language product parsing."""

import json

import pytest
from conftest import FakeCompletionClient

from pantry_tracker.errors import ExternalServiceError
from pantry_tracker.models import Category, Unit
from pantry_tracker.text_parser import ProductTextParser


class TestFallbackParse:
    """Tests for the local keyword parser."""

    @pytest.fixture
    def parser(self):
        return ProductTextParser()

    def test_quantity_unit_and_category(self, parser):
        parsed = parser.parse("2 liters of milk")
        assert parsed.name == "Milk"
        assert parsed.quantity == 2
        assert parsed.unit == Unit.VOLUME
        assert parsed.category == Category.FOOD
        assert parsed.from_fallback is True

    def test_weight(self, parser):
        parsed = parser.parse("1.5 kg rice")
        assert parsed.quantity == 1.5
        assert parsed.unit == Unit.WEIGHT
        assert parsed.name == "Rice"

    def test_defaults(self, parser):
        parsed = parser.parse("hand soap")
        assert parsed.quantity == 1
        assert parsed.unit == Unit.COUNT
        assert parsed.category == Category.PERSONAL_CARE
        assert parsed.name == "Hand soap"

    def test_only_numbers(self, parser):
        assert parser.parse("3").name == "Unnamed product"

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_blank_input(self, parser, text):
        assert parser.parse(text) is None


class TestServiceParse:
    """Tests for parsing through the completion service."""

    def test_uses_service_reply(self):
        reply = json.dumps(
            {
                "name": "Whole milk",
                "quantity": 2,
                "unit": "l",
                "category": "bebidas",
                "expirationDate": "2026-04-01",
            }
        )
        client = FakeCompletionClient(f"```json\n{reply}\n```")
        parsed = ProductTextParser(client).parse("two liters whole milk")

        assert parsed.name == "Whole milk"
        assert parsed.unit == Unit.VOLUME
        assert parsed.category == Category.BEVERAGES
        assert parsed.expiration_date.isoformat() == "2026-04-01"
        assert parsed.from_fallback is False
        assert "two liters whole milk" in client.calls[0]["prompt"]

    def test_missing_quantity_defaults_to_one(self):
        client = FakeCompletionClient('{"name": "Bleach", "unit": null, "category": "cleaning"}')
        parsed = ProductTextParser(client).parse("bleach")
        assert parsed.quantity == 1
        assert parsed.unit == Unit.COUNT

    @pytest.mark.parametrize(
        "reply",
        [
            ExternalServiceError("down"),
            RuntimeError("boom"),
            "sorry, no idea",
            '{"name": "", "quantity": 2}',
            '{"name": "Milk", "unit": "barrels"}',
        ],
    )
    def test_falls_back(self, reply):
        parsed = ProductTextParser(FakeCompletionClient(reply)).parse("2 liters of milk")
        assert parsed.from_fallback is True
        assert parsed.name == "Milk"
