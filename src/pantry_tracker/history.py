"""Consumption history: append-only log plus aggregates.

Aggregates are always recomputed from a scan of the log; nothing is cached.
"""

import calendar
import logging
import math
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError as PydanticValidationError

from .errors import secondary_effect
from .models import (
    ActionType,
    CompletedCycle,
    ConsumptionLogEntry,
    HistorySummary,
    HouseholdConsumptionStats,
    MostConsumedProduct,
    Product,
)
from .record_store import Collection, MemoryRecordStore, RecordStore

logger = logging.getLogger(__name__)

MAX_SUMMARY_LOGS = 50
MAX_SUMMARY_CYCLES = 10
CYCLE_ACTIONS = {ActionType.PURCHASE, ActionType.CYCLE_COMPLETE}


def months_before(moment: datetime, months: int) -> datetime:
    """Same wall-clock time ``months`` calendar months earlier, day clamped."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _to_cycle(entry: ConsumptionLogEntry) -> CompletedCycle:
    return CompletedCycle(
        product_id=entry.product_id,
        product_name=entry.product_name,
        quantity=entry.quantity,
        duration_days=entry.duration_days or 0,
        opened_at=entry.opened_at,
        finished_at=entry.finished_at,
        recorded_at=entry.created_at,
    )


class ConsumptionHistory:
    """Appends log entries and computes consumption statistics."""

    def __init__(
        self,
        store: RecordStore | None = None,
        window_months: int = 2,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store or MemoryRecordStore()
        self.window_months = window_months
        self.clock = clock

    def append(self, entry: ConsumptionLogEntry) -> ConsumptionLogEntry | None:
        """Persist a log entry.

        Never raises: a failed append is logged and None is returned so the
        primary mutation it accompanies stands.
        """
        with secondary_effect(f"append {entry.action_type.value} log for {entry.product_id}"):
            entry.id = self.store.insert(Collection.CONSUMPTION_LOGS, entry.to_record())
            return entry
        return None

    def log_action(
        self,
        product: Product,
        action_type: ActionType,
        quantity: float = 1.0,
        notes: str = "",
        opened_at: datetime | None = None,
        finished_at: datetime | None = None,
    ) -> ConsumptionLogEntry | None:
        """Build and append an entry for an action on ``product``."""
        entry = ConsumptionLogEntry(
            product_id=product.id or "",
            household_id=product.household_id,
            product_name=product.name,
            quantity=quantity,
            action_type=action_type,
            opened_at=opened_at,
            finished_at=finished_at,
            notes=notes,
            created_at=self.clock(),
        )
        return self.append(entry)

    def _load(self, field: str, value: str) -> list[ConsumptionLogEntry]:
        entries = []
        for record in self.store.query(Collection.CONSUMPTION_LOGS, {field: value}):
            try:
                entries.append(ConsumptionLogEntry.from_record(record))
            except PydanticValidationError:
                logger.warning("Skipping malformed log record %s", record.get("id"))
        return entries

    def get_history(
        self,
        product_id: str,
        household_id: str,
        window_months: int | None = None,
        now: datetime | None = None,
    ) -> HistorySummary:
        """Summarize a product's consumption within the history window.

        Args:
            product_id: Product to summarize
            household_id: Owning household
            window_months: Months of history to include (defaults to the
                configured window)
            now: Reference time (defaults to the clock)

        Returns:
            HistorySummary; an empty log yields all-zero aggregates
        """
        now = now or self.clock()
        months = self.window_months if window_months is None else window_months
        cutoff = months_before(now, months)

        entries = [
            e
            for e in self._load("product_id", product_id)
            if e.household_id == household_id and e.created_at >= cutoff
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)

        total_consumed = sum(e.quantity for e in entries if e.action_type == ActionType.CONSUME)
        first = min((e.created_at for e in entries), default=None)
        last = max((e.created_at for e in entries), default=None)

        days_since_first = 0
        if first is not None:
            days_since_first = max(1, math.ceil((now - first).total_seconds() / 86400))
        daily_rate = round(total_consumed / days_since_first, 2) if days_since_first else 0.0

        cycles = [
            _to_cycle(e)
            for e in entries
            if e.action_type in CYCLE_ACTIONS and e.duration_days is not None
        ]
        average = (
            round(sum(c.duration_days for c in cycles) / len(cycles), 1) if cycles else 0.0
        )

        return HistorySummary(
            product_id=product_id,
            household_id=household_id,
            window_months=months,
            logs=entries[:MAX_SUMMARY_LOGS],
            cycles=cycles[:MAX_SUMMARY_CYCLES],
            total_logs=len(entries),
            total_cycles=len(cycles),
            total_consumed=total_consumed,
            days_since_first=days_since_first,
            daily_rate=daily_rate,
            average_cycle_duration=average,
            first_log_date=first,
            last_log_date=last,
        )

    def get_product_logs(self, product_id: str, limit: int = 20) -> list[ConsumptionLogEntry]:
        """Most recent log entries for a product."""
        entries = self._load("product_id", product_id)
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    def get_household_stats(self, household_id: str) -> HouseholdConsumptionStats:
        """Household-wide totals and the ten most recent completed cycles."""
        entries = self._load("household_id", household_id)
        finished = [
            e
            for e in entries
            if e.action_type in CYCLE_ACTIONS and e.duration_days and e.duration_days > 0
        ]
        finished.sort(key=lambda e: e.finished_at or e.created_at, reverse=True)
        average = (
            round(sum(e.duration_days or 0 for e in finished) / len(finished), 1)
            if finished
            else 0.0
        )
        return HouseholdConsumptionStats(
            household_id=household_id,
            total_logs=len(entries),
            total_cycles=len(finished),
            average_duration=average,
            recent_cycles=[_to_cycle(e) for e in finished[:MAX_SUMMARY_CYCLES]],
        )

    def get_most_consumed(self, household_id: str, limit: int = 10) -> list[MostConsumedProduct]:
        """Products with the most log entries in a household."""
        rollup: dict[str, MostConsumedProduct] = {}
        for entry in self._load("household_id", household_id):
            if not entry.product_id:
                continue
            current = rollup.get(entry.product_id)
            if current is None:
                rollup[entry.product_id] = MostConsumedProduct(
                    product_id=entry.product_id,
                    name=entry.product_name,
                    consumption_count=1,
                    total_quantity=entry.quantity,
                    last_consumed=entry.created_at,
                )
                continue
            current.consumption_count += 1
            current.total_quantity += entry.quantity
            if entry.created_at > current.last_consumed:
                current.last_consumed = entry.created_at
                current.name = entry.product_name

        ranked = sorted(rollup.values(), key=lambda p: p.consumption_count, reverse=True)
        return ranked[:limit]

    def count_logs_by_product(self, household_id: str) -> dict[str, int]:
        """Number of consume entries per product id."""
        counts: dict[str, int] = {}
        for entry in self._load("household_id", household_id):
            if entry.action_type == ActionType.CONSUME:
                counts[entry.product_id] = counts.get(entry.product_id, 0) + 1
        return counts
