"""Shared test fixtures for Pantry Tracker."""

from datetime import datetime, timedelta

import pytest

from pantry_tracker.config import PredictionsConfig
from pantry_tracker.history import ConsumptionHistory
from pantry_tracker.list_manager import ShoppingListManager
from pantry_tracker.predictions import PredictionEngine
from pantry_tracker.product_manager import ProductManager
from pantry_tracker.record_store import JSONRecordStore, MemoryRecordStore
from pantry_tracker.shopping_sync import ShoppingListSync

HOUSEHOLD = "house-1"
START = datetime(2026, 3, 10, 12, 0, 0)


class FakeClock:
    """Settable clock; call it to get the current time."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeMonotonic:
    """Settable monotonic timer in seconds."""

    def __init__(self):
        self.value = 0.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakeCompletionClient:
    """Text-completion double that replays canned replies.

    Each reply is returned in order (the last one repeats). A reply that is
    an exception instance is raised instead.
    """

    def __init__(self, *replies, on_call=None):
        self.replies = list(replies) or ["{}"]
        self.calls: list[dict] = []
        self.on_call = on_call

    def complete(self, prompt, *, model=None, temperature=None, max_tokens=None, timeout=None):
        self.calls.append({"prompt": prompt, "model": model, "timeout": timeout})
        if self.on_call is not None:
            self.on_call()
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def temp_data_dir(tmp_path):
    """Create a temporary data directory."""
    data_dir = tmp_path / "test_data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def memory_store():
    """In-memory record store."""
    return MemoryRecordStore()


@pytest.fixture
def json_store(temp_data_dir):
    """JSON record store in a temporary directory."""
    return JSONRecordStore(data_dir=temp_data_dir)


@pytest.fixture
def clock():
    """Fake clock starting at START."""
    return FakeClock()


@pytest.fixture
def history(memory_store, clock):
    """Consumption history over the memory store."""
    return ConsumptionHistory(memory_store, clock=clock)


@pytest.fixture
def shopping_sync(memory_store, clock):
    """Shopping list sync over the memory store."""
    return ShoppingListSync(memory_store, clock=clock)


@pytest.fixture
def product_manager(memory_store, history, shopping_sync, clock):
    """ProductManager wired to history and shopping sync."""
    return ProductManager(memory_store, history=history, shopping_sync=shopping_sync, clock=clock)


@pytest.fixture
def shopping_manager(memory_store, product_manager, clock):
    """ShoppingListManager sharing the product manager."""
    return ShoppingListManager(memory_store, product_manager=product_manager, clock=clock)


@pytest.fixture
def make_product(product_manager):
    """Factory that creates a product and returns it."""

    def _make(name="Milk", quantity_total=10, household_id=HOUSEHOLD, **fields):
        data = {
            "name": name,
            "category": fields.pop("category", "food"),
            "unit": fields.pop("unit", "count"),
            "quantity_total": quantity_total,
            **fields,
        }
        result = product_manager.create(data, household_id)
        assert result.success, result.error
        return result.product

    return _make


@pytest.fixture
def monotonic():
    """Fake monotonic timer."""
    return FakeMonotonic()


@pytest.fixture
def engine_factory(history, clock, monotonic):
    """Build a PredictionEngine with fake time sources and an optional client."""
    sleeps: list[float] = []

    def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
        monotonic.advance(seconds)

    def _make(client=None, **config):
        engine = PredictionEngine(
            history=history,
            client=client,
            config=PredictionsConfig(**config),
            clock=clock,
            monotonic=monotonic,
            sleep=_sleep,
        )
        engine.sleeps = sleeps
        return engine

    return _make
