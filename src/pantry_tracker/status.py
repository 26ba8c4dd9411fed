"""Stock status classification."""

import math
from enum import Enum


class StockStatus(str, Enum):
    """Derived stock level of a product."""

    AVAILABLE = "available"
    LOW = "low"
    OUT = "out"


MIN_THRESHOLD = 0.2
MAX_THRESHOLD = 1.0

_URGENCY = {
    StockStatus.AVAILABLE: 0,
    StockStatus.LOW: 1,
    StockStatus.OUT: 2,
}


def clamp_threshold(ratio: float | None) -> float:
    """Clamp a low-stock threshold ratio to [0.2, 1.0].

    Missing or non-numeric ratios fall back to the 20% floor.
    """
    try:
        value = float(ratio)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return MIN_THRESHOLD
    if math.isnan(value):
        return MIN_THRESHOLD
    return max(MIN_THRESHOLD, min(MAX_THRESHOLD, value))


def classify(quantity_current: float, quantity_total: float, threshold: float) -> StockStatus:
    """Classify stock level from current/total quantities.

    Rules are first-match-wins: an empty product is ``out`` even when the total
    is also zero.

    Args:
        quantity_current: Amount remaining
        quantity_total: Capacity when full
        threshold: Low-stock ratio, clamped before use

    Returns:
        The derived StockStatus
    """
    if quantity_current <= 0:
        return StockStatus.OUT
    if quantity_total <= 0:
        return StockStatus.AVAILABLE
    if quantity_current <= quantity_total * clamp_threshold(threshold):
        return StockStatus.LOW
    return StockStatus.AVAILABLE


def is_escalation(previous: StockStatus | None, new: StockStatus) -> bool:
    """True when ``new`` is more urgent than ``previous``."""
    if previous is None:
        return new != StockStatus.AVAILABLE
    return _URGENCY[new] > _URGENCY[previous]
