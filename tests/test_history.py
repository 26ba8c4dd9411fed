"""Tests for consumption history and aggregates."""

from datetime import datetime, timedelta

from conftest import HOUSEHOLD, START

from pantry_tracker.errors import StoreUnavailableError
from pantry_tracker.history import ConsumptionHistory, months_before
from pantry_tracker.models import ActionType, ConsumptionLogEntry, Product
from pantry_tracker.record_store import Collection


def _entry(action=ActionType.CONSUME, quantity=1.0, created_at=START, product_id="p1", **fields):
    return ConsumptionLogEntry(
        product_id=product_id,
        household_id=fields.pop("household_id", HOUSEHOLD),
        product_name=fields.pop("product_name", "Milk"),
        quantity=quantity,
        action_type=action,
        created_at=created_at,
        **fields,
    )


class TestMonthsBefore:
    """Tests for calendar month arithmetic."""

    def test_simple(self):
        assert months_before(datetime(2026, 5, 15, 8), 2) == datetime(2026, 3, 15, 8)

    def test_crosses_year(self):
        assert months_before(datetime(2026, 1, 10), 2) == datetime(2025, 11, 10)

    def test_clamps_day(self):
        assert months_before(datetime(2026, 5, 31), 3) == datetime(2026, 2, 28)


class TestAppend:
    """Tests for appending entries."""

    def test_append_assigns_id(self, history):
        entry = history.append(_entry())
        assert entry.id
        assert history.get_product_logs("p1")[0].id == entry.id

    def test_append_failure_returns_none(self, memory_store, monkeypatch):
        def fail(*args, **kwargs):
            raise StoreUnavailableError("disk full")

        monkeypatch.setattr(memory_store, "insert", fail)
        assert ConsumptionHistory(memory_store).append(_entry()) is None

    def test_log_action_uses_clock(self, history, clock):
        product = Product(id="p9", household_id=HOUSEHOLD, name="Tea", quantity_total=5)
        entry = history.log_action(product, ActionType.OPEN)
        assert entry.created_at == clock.now
        assert entry.product_name == "Tea"


class TestGetHistory:
    """Tests for the per-product summary."""

    def test_empty(self, history):
        summary = history.get_history("p1", HOUSEHOLD)
        assert summary.total_logs == 0
        assert summary.daily_rate == 0
        assert summary.days_since_first == 0
        assert summary.average_cycle_duration == 0

    def test_daily_rate(self, history):
        for days_ago, quantity in [(10, 2), (5, 3), (1, 1)]:
            history.append(_entry(quantity=quantity, created_at=START - timedelta(days=days_ago)))
        history.append(_entry(ActionType.OPEN, created_at=START - timedelta(days=3)))

        summary = history.get_history("p1", HOUSEHOLD)
        assert summary.total_logs == 4
        assert summary.total_consumed == 6
        assert summary.days_since_first == 10
        assert summary.daily_rate == 0.6

    def test_days_since_first_at_least_one(self, history):
        history.append(_entry(quantity=3, created_at=START - timedelta(hours=2)))
        summary = history.get_history("p1", HOUSEHOLD)
        assert summary.days_since_first == 1
        assert summary.daily_rate == 3

    def test_logs_newest_first(self, history):
        history.append(_entry(created_at=START - timedelta(days=2), notes="older"))
        history.append(_entry(created_at=START - timedelta(days=1), notes="newer"))
        summary = history.get_history("p1", HOUSEHOLD)
        assert [log.notes for log in summary.logs] == ["newer", "older"]

    def test_window_excludes_old_entries(self, history):
        history.append(_entry(created_at=START - timedelta(days=90)))
        history.append(_entry(created_at=START - timedelta(days=10)))
        assert history.get_history("p1", HOUSEHOLD).total_logs == 1
        assert history.get_history("p1", HOUSEHOLD, window_months=6).total_logs == 2

    def test_other_household_excluded(self, history):
        history.append(_entry(household_id="elsewhere"))
        assert history.get_history("p1", HOUSEHOLD).total_logs == 0

    def test_cycles(self, history):
        for opened_days, length in [(30, 6), (20, 8), (10, 7)]:
            opened = START - timedelta(days=opened_days)
            history.append(
                _entry(
                    ActionType.CYCLE_COMPLETE,
                    created_at=opened + timedelta(days=length),
                    opened_at=opened,
                    finished_at=opened + timedelta(days=length),
                )
            )
        history.append(_entry(ActionType.PURCHASE, created_at=START - timedelta(days=1)))

        summary = history.get_history("p1", HOUSEHOLD)
        assert summary.total_cycles == 3
        assert summary.average_cycle_duration == 7.0
        assert summary.total_consumed == 0

    def test_caps_logs(self, history):
        for minutes in range(60):
            history.append(_entry(created_at=START - timedelta(minutes=minutes)))
        summary = history.get_history("p1", HOUSEHOLD)
        assert summary.total_logs == 60
        assert len(summary.logs) == 50

    def test_offset_timestamps_are_normalized(self, history, memory_store):
        memory_store.insert(
            Collection.CONSUMPTION_LOGS,
            {
                "product_id": "p1",
                "household_id": HOUSEHOLD,
                "product_name": "Milk",
                "quantity": 2,
                "action_type": "consume",
                "created_at": "2026-03-01T10:00:00+00:00",
            },
        )
        history.append(_entry(created_at=START - timedelta(days=1)))

        summary = history.get_history("p1", HOUSEHOLD)
        assert summary.total_logs == 2
        assert summary.total_consumed == 3
        assert all(log.created_at.tzinfo is None for log in summary.logs)

    def test_skips_malformed_records(self, history, memory_store):
        memory_store.insert(Collection.CONSUMPTION_LOGS, {"product_id": "p1", "action_type": "eat"})
        history.append(_entry(created_at=START - timedelta(days=1)))
        assert history.get_history("p1", HOUSEHOLD).total_logs == 1


class TestHouseholdAggregates:
    """Tests for household-wide rollups."""

    def test_household_stats(self, history):
        history.append(_entry())
        history.append(
            _entry(
                ActionType.CYCLE_COMPLETE,
                opened_at=START - timedelta(days=4),
                finished_at=START,
            )
        )
        history.append(
            _entry(
                ActionType.PURCHASE,
                product_id="p2",
                opened_at=START - timedelta(days=8),
                finished_at=START - timedelta(days=1),
            )
        )
        stats = history.get_household_stats(HOUSEHOLD)
        assert stats.total_logs == 3
        assert stats.total_cycles == 2
        assert stats.average_duration == 5.5
        assert stats.recent_cycles[0].product_id == "p1"

    def test_most_consumed(self, history):
        for _ in range(3):
            history.append(_entry(product_id="p2", product_name="Rice"))
        history.append(_entry(product_id="p1"))
        ranked = history.get_most_consumed(HOUSEHOLD)
        assert [(p.name, p.consumption_count) for p in ranked] == [("Rice", 3), ("Milk", 1)]

    def test_count_logs_by_product(self, history):
        history.append(_entry())
        history.append(_entry())
        history.append(_entry(ActionType.OPEN))
        history.append(_entry(product_id="p2"))
        assert history.count_logs_by_product(HOUSEHOLD) == {"p1": 2, "p2": 1}
