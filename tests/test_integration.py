"""End-to-end flows across products, shopping list, history and forecasts."""

import json
from datetime import timedelta

import pytest
from conftest import HOUSEHOLD, START, FakeCompletionClient

from pantry_tracker.errors import ExternalServiceError
from pantry_tracker.models import (
    ActionType,
    Confidence,
    ConsumptionLogEntry,
    Priority,
    ShoppingReason,
)
from pantry_tracker.record_store import Collection
from pantry_tracker.status import StockStatus, clamp_threshold, classify


def _open_items(shopping_manager):
    return shopping_manager.get_shopping_list(HOUSEHOLD)


class TestRestockLifecycle:
    """A product running low, running out and being bought again."""

    def test_low_then_out_then_purchased(self, product_manager, shopping_manager, make_product):
        product = make_product("Milk", 5, low_stock_threshold=0.2)
        assert product.status == StockStatus.AVAILABLE

        result = product_manager.consume(product.id, 4)
        assert result.product.quantity_current == 1
        assert result.new_status == StockStatus.LOW
        items = _open_items(shopping_manager)
        assert len(items) == 1
        assert items[0].reason == ShoppingReason.LOW
        assert items[0].priority == Priority.MEDIUM
        assert items[0].quantity == 4

        result = product_manager.consume(product.id, 1)
        assert result.new_status == StockStatus.OUT
        items = _open_items(shopping_manager)
        assert len(items) == 1
        assert items[0].reason == ShoppingReason.OUT
        assert items[0].priority == Priority.HIGH

        purchased = shopping_manager.mark_as_purchased(items[0].id)
        assert purchased.success
        restored = product_manager.get_product(product.id)
        assert restored.quantity_current == 5
        assert restored.status == StockStatus.AVAILABLE
        assert restored.last_opened_at is None
        assert _open_items(shopping_manager) == []

    def test_opened_cycle_is_recorded(self, product_manager, make_product, history, clock):
        product = make_product("Coffee", 1)
        product_manager.open(product.id)
        clock.advance(days=9)
        product_manager.consume(product.id, 1)
        product_manager.restore(product.id)

        summary = history.get_history(product.id, HOUSEHOLD)
        assert summary.total_cycles == 1
        assert summary.average_cycle_duration == 9


class TestDegenerateTotal:
    """Empty product with no capacity."""

    def test_empty_and_zero_total_is_out(self):
        assert classify(0, 0, 0.2) == StockStatus.OUT

    def test_positive_current_with_zero_total_is_available(self):
        assert classify(1, 0, 0.2) == StockStatus.AVAILABLE


class TestSparseHistoryForecast:
    """Two consume entries six days apart."""

    def test_low_confidence_rate(self, make_product, history, engine_factory):
        product = make_product("Flour", 10)
        for days_ago in (6, 0):
            history.append(
                ConsumptionLogEntry(
                    product_id=product.id,
                    household_id=HOUSEHOLD,
                    product_name="Flour",
                    quantity=3,
                    action_type=ActionType.CONSUME,
                    created_at=START - timedelta(days=days_ago),
                )
            )

        summary = history.get_history(product.id, HOUSEHOLD)
        assert summary.total_consumed == 6
        assert summary.days_since_first >= 6
        assert summary.daily_rate == pytest.approx(1.0)

        prediction = engine_factory().analyze_product(product, HOUSEHOLD)
        assert prediction.confidence == Confidence.LOW
        assert prediction.daily_consumption_rate == pytest.approx(1.0)


class TestBudgetedBatch:
    """Slow completion service against a short time budget."""

    def test_stops_at_budget_and_sorts(self, make_product, product_manager, engine_factory, monotonic):
        products = []
        for i in range(10):
            product = make_product(f"Item {i}", 10)
            for _ in range(3):
                product_manager.consume(product.id, 0.5)
            products.append(product_manager.get_product(product.id))

        replies = [
            json.dumps({"predictedDaysLeft": days, "consumptionRate": 0.5, "recommendedPurchase": 2})
            for days in (9, 3, 6, 1, 1, 1, 1, 1, 1, 1)
        ]
        client = FakeCompletionClient(*replies, on_call=lambda: monotonic.advance(2))
        engine = engine_factory(client, time_budget_ms=5000, inter_call_delay_ms=0, batch_limit=10)

        predictions = engine.analyze_household_products(products, HOUSEHOLD)

        assert len(client.calls) == 3
        assert client.calls[-1]["timeout"] == pytest.approx(1.0)
        assert [p.estimated_days_left for p in predictions] == [3, 6, 9]
        assert all(p.ai_enhanced for p in predictions)

    def test_offset_timestamps_in_store(self, make_product, memory_store, engine_factory):
        product = make_product("Milk", 10)
        memory_store.insert(
            Collection.CONSUMPTION_LOGS,
            {
                "product_id": product.id,
                "household_id": HOUSEHOLD,
                "product_name": "Milk",
                "quantity": 2,
                "action_type": "consume",
                "created_at": "2026-03-05T09:00:00+00:00",
            },
        )

        predictions = engine_factory().analyze_household_products([product], HOUSEHOLD)

        assert len(predictions) == 1
        assert predictions[0].daily_consumption_rate > 0


class TestProperties:
    """Invariants that hold across the engine."""

    @pytest.mark.parametrize("threshold", [0.2, 0.35, 0.5, 1.0])
    def test_status_never_improves_as_stock_drops(self, threshold):
        order = {StockStatus.OUT: 0, StockStatus.LOW: 1, StockStatus.AVAILABLE: 2}
        total = 10
        previous = order[StockStatus.AVAILABLE]
        for tenths in range(100, -1, -1):
            current = tenths / 10
            status = classify(current, total, threshold)
            assert order[status] <= previous
            previous = order[status]
            if current == 0:
                assert status == StockStatus.OUT
            elif current <= total * threshold:
                assert status == StockStatus.LOW
            else:
                assert status == StockStatus.AVAILABLE

    @pytest.mark.parametrize("requested", [0.0, 0.1, 0.19, -3])
    def test_threshold_floor(self, requested, make_product):
        assert clamp_threshold(requested) == 0.2
        if 0.1 <= requested:
            assert make_product("Tea", 10, low_stock_threshold=requested).low_stock_threshold == 0.2

    def test_over_consumption_floors_at_zero(self, product_manager, make_product):
        product = make_product("Rice", 3)
        result = product_manager.consume(product.id, 50)
        assert result.product.quantity_current == 0
        assert result.product.status == StockStatus.OUT

    def test_repeated_sync_keeps_one_item(self, product_manager, shopping_sync, make_product, memory_store):
        product = make_product("Rice", 10)
        product = product_manager.consume(product.id, 9).product
        for _ in range(2):
            shopping_sync.on_status_transition(product, StockStatus.AVAILABLE, StockStatus.LOW)
            shopping_sync.sync_product_with_shopping_list(product.id)

        assert len(shopping_sync.open_items_for(product.id, HOUSEHOLD)) == 1

    def test_out_item_not_reverted_to_low(self, product_manager, shopping_sync, make_product):
        product = make_product("Rice", 10)
        product_manager.consume(product.id, 10)
        recovered = product_manager.update(product.id, {"quantity_current": 1}).product
        assert recovered.status == StockStatus.LOW
        shopping_sync.on_status_transition(recovered, StockStatus.OUT, StockStatus.LOW)

        items = shopping_sync.open_items_for(product.id, HOUSEHOLD)
        assert [i.reason for i in items] == [ShoppingReason.OUT]

    def test_empty_history(self, history):
        summary = history.get_history("never-logged", HOUSEHOLD)
        assert summary.daily_rate == 0
        assert summary.total_consumed == 0

    @pytest.mark.parametrize(
        "reply", [ExternalServiceError("down"), TimeoutError("slow"), "no json at all"]
    )
    def test_forecast_falls_back_to_baseline(self, reply, product_manager, make_product, engine_factory):
        product = make_product("Milk", 10)
        for _ in range(3):
            product_manager.consume(product.id, 1)
        product = product_manager.get_product(product.id)

        enriched = engine_factory(FakeCompletionClient(reply)).analyze_product(product, HOUSEHOLD)
        plain = engine_factory(enrichment_enabled=False).analyze_product(product, HOUSEHOLD)

        assert enriched.ai_enhanced is False
        assert enriched.model_dump(exclude={"analyzed_at"}) == plain.model_dump(
            exclude={"analyzed_at"}
        )

    @pytest.mark.parametrize("opened", [True, False])
    def test_restore_resets_cycle(self, opened, product_manager, make_product):
        product = make_product("Milk", 4)
        if opened:
            product_manager.open(product.id)
        product_manager.consume(product.id, 4)

        restored = product_manager.restore(product.id).product
        assert restored.last_opened_at is None
        assert restored.quantity_current == restored.quantity_total == 4
        assert restored.status == StockStatus.AVAILABLE
