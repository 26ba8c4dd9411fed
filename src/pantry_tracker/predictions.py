"""Consumption forecasting.

The deterministic baseline is always computed and never fails. When a
text-completion client is configured and the product has enough history,
the engine asks it to refine the forecast; the reply is validated as a whole
and either replaces the baseline numbers entirely or is discarded.
"""

import logging
import math
import threading
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from pydantic import ValidationError as PydanticValidationError

from .completion import TextCompletionClient, build_consumption_prompt, extract_json_object
from .config import CompletionConfig, PredictionsConfig
from .errors import ExternalServiceError, PantryError, RateLimitedError
from .history import ConsumptionHistory
from .models import (
    AIConsumptionInsights,
    Confidence,
    ExpiringProduct,
    HistorySummary,
    Prediction,
    PredictionStats,
    Product,
)
from .status import StockStatus

logger = logging.getLogger(__name__)

FALLBACK_DAYS_LEFT = {
    StockStatus.OUT: 0,
    StockStatus.LOW: 3,
    StockStatus.AVAILABLE: 14,
}
MAX_MERGED_INSIGHTS = 3
INSIGHT_MATCH_PREFIX = 20

INSIGHT_RUNS_OUT_SOON = "Will run out in the next few days"
INSIGHT_THIS_WEEK = "Enough left for this week"
INSIGHT_OVER_A_MONTH = "Stock for more than a month"
INSIGHT_LOG_MORE = "Log more consumption to improve accuracy"


def has_min_data(history: HistorySummary) -> bool:
    """Enough history to bother the completion service."""
    return history.total_logs >= 3 or history.total_cycles >= 1


def calculate_confidence(history: HistorySummary, daily_rate: float) -> Confidence:
    """Score how much a forecast can be trusted.

    Points: logs (>=20: 40, >=10: 30, >=5: 20, else 10), cycles (>=3: 30,
    >=1: 15) and a positive rate (30). 70+ is high, 40+ medium. Histories
    below the minimum data threshold are always low.
    """
    if not has_min_data(history):
        return Confidence.LOW

    score = 0
    if history.total_logs >= 20:
        score += 40
    elif history.total_logs >= 10:
        score += 30
    elif history.total_logs >= 5:
        score += 20
    else:
        score += 10

    if history.total_cycles >= 3:
        score += 30
    elif history.total_cycles >= 1:
        score += 15

    if daily_rate > 0:
        score += 30

    if score >= 70:
        return Confidence.HIGH
    if score >= 40:
        return Confidence.MEDIUM
    return Confidence.LOW


def data_quality(history: HistorySummary) -> str:
    """Human-readable description of the history backing a forecast."""
    if history.total_cycles >= 3:
        return "High - multiple complete cycles"
    if history.total_cycles >= 1:
        return "Medium - cycles recorded"
    if history.total_logs >= 5:
        return "Low - consumption logs only"
    return "Very low - insufficient data"


def _days_insight(days_left: int) -> str | None:
    if days_left <= 3:
        return INSIGHT_RUNS_OUT_SOON
    if days_left <= 7:
        return INSIGHT_THIS_WEEK
    if days_left > 30:
        return INSIGHT_OVER_A_MONTH
    return None


def _merge_insights(base: list[str], extra: Iterable[str]) -> list[str]:
    merged = list(base)
    for insight in extra:
        insight = insight.strip()
        if not insight:
            continue
        prefix = insight[:INSIGHT_MATCH_PREFIX]
        if any(prefix in existing for existing in merged):
            continue
        merged.append(insight)
    return merged[:MAX_MERGED_INSIGHTS]


class PredictionEngine:
    """Produces consumption forecasts for products."""

    def __init__(
        self,
        history: ConsumptionHistory | None = None,
        client: TextCompletionClient | None = None,
        config: PredictionsConfig | None = None,
        completion_config: CompletionConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the engine.

        Args:
            history: Source of consumption summaries
            client: Optional text-completion client for enrichment
            config: Prediction settings
            completion_config: Model and sampling settings for the client
            clock: Source of "now" for forecast dates
            monotonic: Elapsed-time source for budgets and rate-limit cooldown
            sleep: Used for the delay between external calls
        """
        self.history = history or ConsumptionHistory(clock=clock)
        self.client = client
        self.config = config or PredictionsConfig()
        self.completion_config = completion_config or CompletionConfig()
        self.clock = clock
        self.monotonic = monotonic
        self.sleep = sleep
        self._rate_limited_until: float | None = None

    @property
    def rate_limited(self) -> bool:
        """Whether a recent rate-limit signal is still cooling down."""
        if self._rate_limited_until is None:
            return False
        if self.monotonic() >= self._rate_limited_until:
            self._rate_limited_until = None
            return False
        return True

    def _can_enrich(self, history: HistorySummary) -> bool:
        return (
            self.client is not None
            and self.config.enrichment_enabled
            and has_min_data(history)
            and not self.rate_limited
        )

    def baseline(self, product: Product, history: HistorySummary) -> Prediction:
        """Deterministic forecast from the history aggregates alone."""
        return self._compose(product, history, None)

    def predict(
        self,
        product: Product,
        history: HistorySummary,
        timeout: float | None = None,
    ) -> Prediction:
        """Forecast a product, refined by the completion service when possible.

        Never raises for enrichment problems: any failure leaves the
        deterministic baseline in place.

        Args:
            product: Product to forecast
            history: Its consumption summary
            timeout: Upper bound in seconds for the external call
        """
        insights = self._enrich(product, history, timeout) if self._can_enrich(history) else None
        return self._compose(product, history, insights)

    def _enrich(
        self,
        product: Product,
        history: HistorySummary,
        timeout: float | None,
    ) -> AIConsumptionInsights | None:
        try:
            reply = self.client.complete(  # type: ignore[union-attr]
                build_consumption_prompt(product, history),
                model=self.completion_config.model,
                temperature=self.completion_config.temperature,
                max_tokens=self.completion_config.max_tokens,
                timeout=timeout if timeout is not None else self.completion_config.timeout_s,
            )
        except RateLimitedError:
            logger.warning(
                "Completion service rate limited; skipping enrichment for %ss",
                self.config.rate_limit_cooldown_s,
            )
            self._rate_limited_until = self.monotonic() + self.config.rate_limit_cooldown_s
            return None
        except ExternalServiceError as e:
            logger.warning("Enrichment failed for %s: %s", product.name, e)
            return None
        except Exception:
            logger.warning("Enrichment client raised for %s", product.name, exc_info=True)
            return None

        data = extract_json_object(reply)
        if data is None:
            logger.info("Enrichment reply for %s had no JSON object", product.name)
            return None
        try:
            return AIConsumptionInsights.model_validate(data)
        except PydanticValidationError as e:
            logger.info(
                "Enrichment reply for %s failed validation (%d errors)",
                product.name, e.error_count(),
            )
            return None

    def _compose(
        self,
        product: Product,
        history: HistorySummary,
        ai: AIConsumptionInsights | None,
    ) -> Prediction:
        today = self.clock().date()
        rate = history.daily_rate

        if rate > 0 and product.quantity_current > 0:
            days_left = math.ceil(product.quantity_current / rate)
            finish = today + timedelta(days=days_left)
        else:
            days_left = FALLBACK_DAYS_LEFT[product.status]
            finish = None

        if rate > 0:
            recommended = math.ceil(rate * self.config.purchase_horizon_days)
        else:
            recommended = 1

        insights = []
        days_insight = _days_insight(days_left)
        if days_insight:
            insights.append(days_insight)
        if history.total_logs < 5:
            insights.append(INSIGHT_LOG_MORE)

        notes = None
        if ai is not None:
            days_left = ai.predicted_days_left
            finish = today + timedelta(days=days_left)
            rate = ai.consumption_rate
            recommended = ai.recommended_purchase
            insights = _merge_insights(insights, ai.insights)
            notes = ai.notes

        if product.status in (StockStatus.LOW, StockStatus.OUT):
            insights.append(f"Suggested purchase: {recommended} {product.unit.value}")

        return Prediction(
            product_id=product.id,
            product_name=product.name,
            status=product.status,
            unit=product.unit,
            current_quantity=product.quantity_current,
            total_quantity=product.quantity_total,
            estimated_days_left=days_left,
            estimated_finish_date=finish,
            daily_consumption_rate=rate,
            recommended_purchase_quantity=recommended,
            confidence=calculate_confidence(history, history.daily_rate),
            data_quality=data_quality(history),
            has_min_data=has_min_data(history),
            ai_enhanced=ai is not None,
            insights=insights,
            notes=notes,
            analyzed_at=self.clock(),
        )

    def _history_for(self, product: Product, household_id: str) -> HistorySummary:
        try:
            return self.history.get_history(product.id or "", household_id)
        except PantryError as e:
            logger.warning("Could not load history for %s: %s", product.name, e)
            return HistorySummary(product_id=product.id or "", household_id=household_id)

    def analyze_product(
        self, product: Product, household_id: str, timeout: float | None = None
    ) -> Prediction:
        """Load a product's history and forecast it."""
        return self.predict(product, self._history_for(product, household_id), timeout)

    def analyze_household_products(
        self,
        products: list[Product],
        household_id: str,
        limit: int | None = None,
        time_budget_ms: int | None = None,
        abort_event: threading.Event | None = None,
    ) -> list[Prediction]:
        """Forecast a household's most relevant products within a time budget.

        Low and out products go first, then available products with the most
        consumption entries. Calls run one at a time with a fixed delay
        between external calls. Once the budget is spent, or ``abort_event``
        is set, no further products are started and the forecasts made so
        far are returned.

        Returns:
            Predictions sorted by ``estimated_days_left`` ascending
        """
        limit = self.config.batch_limit if limit is None else limit
        budget_s = (
            self.config.time_budget_ms if time_budget_ms is None else time_budget_ms
        ) / 1000
        delay_s = self.config.inter_call_delay_ms / 1000

        try:
            counts = self.history.count_logs_by_product(household_id)
        except PantryError as e:
            logger.warning("Could not count consumption logs: %s", e)
            counts = {}

        urgent = [p for p in products if p.status != StockStatus.AVAILABLE]
        available = sorted(
            (p for p in products if p.status == StockStatus.AVAILABLE),
            key=lambda p: counts.get(p.id or "", 0),
            reverse=True,
        )
        queue: list[Product] = []
        seen: set[str | None] = set()
        for product in urgent + available:
            if product.id in seen:
                continue
            seen.add(product.id)
            queue.append(product)
        queue = queue[:limit]

        logger.debug("Analyzing %d of %d products", len(queue), len(products))
        predictions: list[Prediction] = []
        start = self.monotonic()
        called_before = False

        for product in queue:
            if abort_event is not None and abort_event.is_set():
                logger.info("Batch analysis aborted after %d products", len(predictions))
                break
            if self.monotonic() - start >= budget_s:
                logger.info("Time budget reached after %d products", len(predictions))
                break

            history = self._history_for(product, household_id)
            if not self._can_enrich(history):
                predictions.append(self.baseline(product, history))
                continue

            if called_before and delay_s > 0:
                self.sleep(delay_s)
            remaining = budget_s - (self.monotonic() - start)
            if remaining <= 0:
                logger.info("Time budget reached after %d products", len(predictions))
                break

            called_before = True
            predictions.append(
                self.predict(
                    product,
                    history,
                    timeout=min(self.completion_config.timeout_s, remaining),
                )
            )

        return sorted(predictions, key=lambda p: p.estimated_days_left)

    def get_soon_to_expire(
        self,
        products: list[Product],
        predictions: list[Prediction],
        days: int = 7,
    ) -> list[ExpiringProduct]:
        """Products expected to run out, or expiring, within ``days``.

        A product flagged by its forecast is not listed again for its
        expiration date.
        """
        by_id = {p.id: p for p in products}
        found: list[ExpiringProduct] = []
        flagged: set[str | None] = set()

        for prediction in predictions:
            product = by_id.get(prediction.product_id)
            if product is None or prediction.estimated_days_left > days:
                continue
            found.append(
                ExpiringProduct(
                    product=product,
                    reason="consumption",
                    days_left=prediction.estimated_days_left,
                    prediction=prediction,
                )
            )
            flagged.add(product.id)

        today = self.clock().date()
        for product in products:
            if product.expiration_date is None or product.id in flagged:
                continue
            days_left = (product.expiration_date - today).days
            if days_left <= days:
                found.append(ExpiringProduct(product=product, reason="expiration", days_left=days_left))

        return sorted(found, key=lambda e: e.days_left)

    def get_prediction_stats(
        self, predictions: list[Prediction], products: list[Product]
    ) -> PredictionStats:
        """Rollup of confidence, urgency and data coverage."""
        with_data = sum(1 for p in predictions if p.has_min_data)
        return PredictionStats(
            total=len(predictions),
            high_confidence=sum(1 for p in predictions if p.confidence == Confidence.HIGH),
            medium_confidence=sum(1 for p in predictions if p.confidence == Confidence.MEDIUM),
            low_confidence=sum(1 for p in predictions if p.confidence == Confidence.LOW),
            urgent=sum(1 for p in predictions if p.estimated_days_left <= 3),
            warning=sum(1 for p in predictions if 3 < p.estimated_days_left <= 7),
            with_data=with_data,
            without_data=len(products) - with_data,
            coverage=round(with_data / len(products) * 100) if products else 0,
        )
