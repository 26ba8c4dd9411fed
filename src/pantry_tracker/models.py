"""Core data models for Pantry Tracker."""

import math
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .status import StockStatus, clamp_threshold, classify

DEFAULT_THRESHOLD = 0.2
UNNAMED_PRODUCT = "Unnamed product"
MAX_PREDICTED_DAYS = 3650


class Category(str, Enum):
    """Product categories."""

    FOOD = "food"
    BEVERAGES = "beverages"
    CLEANING = "cleaning"
    PERSONAL_CARE = "personal_care"
    MEDICINE = "medicine"
    OTHER = "other"


class Unit(str, Enum):
    """How a product is measured."""

    COUNT = "count"
    WEIGHT = "weight"
    VOLUME = "volume"


class ShoppingReason(str, Enum):
    """Why an item is on the shopping list."""

    OUT = "out"
    LOW = "low"
    MANUAL = "manual"


class Priority(str, Enum):
    """Shopping list item priority levels."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActionType(str, Enum):
    """Consumption log action types."""

    CONSUME = "consume"
    OPEN = "open"
    PURCHASE = "purchase"
    CYCLE_COMPLETE = "cycle_complete"


class Confidence(str, Enum):
    """Prediction confidence levels."""

    HIGH = "alta"
    MEDIUM = "media"
    LOW = "baja"


PRIORITY_BY_REASON = {
    ShoppingReason.OUT: Priority.HIGH,
    ShoppingReason.LOW: Priority.MEDIUM,
    ShoppingReason.MANUAL: Priority.LOW,
}


def coerce_number(value: Any, default: float = 0.0) -> float:
    """Coerce a stored value to a finite float, falling back to ``default``."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def _coerce_enum(enum_cls: type[Enum], value: Any, default: Enum) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _coerce_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _naive_local(value: datetime) -> datetime:
    # Stored timestamps are naive local time; offsets are converted, then dropped.
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _coerce_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _naive_local(value)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, str):
        try:
            return _naive_local(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


class RecordModel(BaseModel):
    """Base for models persisted in the record store."""

    id: str | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]):
        """Validate and coerce a raw store record into a typed model."""
        return cls.model_validate(record)

    def to_record(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible record without the id."""
        return self.model_dump(mode="json", exclude={"id"})

    def with_changes(self, **changes: Any):
        """Return a re-validated copy with ``changes`` applied."""
        return type(self).model_validate({**self.model_dump(), **changes})


class Product(RecordModel):
    """A household inventory product.

    ``status`` is always recomputed from the quantities and threshold when a
    Product is built; whatever status a record carries is ignored.
    """

    household_id: str = ""
    name: str = UNNAMED_PRODUCT
    category: Category = Category.OTHER
    unit: Unit = Unit.COUNT
    quantity_total: float = 1.0
    quantity_current: float = 0.0
    low_stock_threshold: float = DEFAULT_THRESHOLD
    status: StockStatus = StockStatus.AVAILABLE
    last_opened_at: datetime | None = None
    auto_added_to_shopping: bool = False
    expiration_date: date | None = None
    purchased_at: datetime | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            return UNNAMED_PRODUCT
        return v.strip()

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> Category:
        return _coerce_enum(Category, v, Category.OTHER)  # type: ignore[return-value]

    @field_validator("unit", mode="before")
    @classmethod
    def default_unit(cls, v: Any) -> Unit:
        return _coerce_enum(Unit, v, Unit.COUNT)  # type: ignore[return-value]

    @field_validator("quantity_total", "quantity_current", mode="before")
    @classmethod
    def coerce_quantity(cls, v: Any) -> float:
        return coerce_number(v)

    @field_validator("low_stock_threshold", mode="before")
    @classmethod
    def clamp_low_stock_threshold(cls, v: Any) -> float:
        return clamp_threshold(v)

    @field_validator("auto_added_to_shopping", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        return bool(v) if v is not None else False

    @field_validator("expiration_date", mode="before")
    @classmethod
    def coerce_expiration(cls, v: Any) -> date | None:
        return _coerce_date(v)

    @field_validator("last_opened_at", "purchased_at", mode="before")
    @classmethod
    def coerce_optional_timestamp(cls, v: Any) -> datetime | None:
        return _coerce_datetime(v)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> datetime:
        return _coerce_datetime(v) or datetime.now()

    @model_validator(mode="after")
    def derive_status(self) -> "Product":
        self.status = classify(
            self.quantity_current, self.quantity_total, self.low_stock_threshold
        )
        return self

    @property
    def is_opened(self) -> bool:
        """Whether the product has been opened since creation or last restore."""
        return self.last_opened_at is not None

    @property
    def days_until_expiration(self) -> int | None:
        """Days until expiration."""
        if self.expiration_date is None:
            return None
        return (self.expiration_date - date.today()).days


class ShoppingListItem(RecordModel):
    """A shopping list entry, optionally linked to a product.

    Priority and the out-of-stock flag mirror ``reason``.
    """

    household_id: str = ""
    product_id: str | None = None
    product_name: str = UNNAMED_PRODUCT
    quantity: float = 1.0
    unit: Unit = Unit.COUNT
    category: Category = Category.OTHER
    reason: ShoppingReason = ShoppingReason.MANUAL
    priority: Priority = Priority.LOW
    checked: bool = False
    is_out_of_stock: bool = False
    original_status: StockStatus | None = None
    notes: str | None = None
    auto_added: bool = False
    has_expiration_date: bool = False
    original_expiration_date: date | None = None
    added_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime | None = None
    purchased_at: datetime | None = None

    @field_validator("product_name", mode="before")
    @classmethod
    def default_name(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            return UNNAMED_PRODUCT
        return v.strip()

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, v: Any) -> float:
        return coerce_number(v, default=1.0)

    @field_validator("unit", mode="before")
    @classmethod
    def default_unit(cls, v: Any) -> Unit:
        return _coerce_enum(Unit, v, Unit.COUNT)  # type: ignore[return-value]

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> Category:
        return _coerce_enum(Category, v, Category.OTHER)  # type: ignore[return-value]

    @field_validator("reason", mode="before")
    @classmethod
    def default_reason(cls, v: Any) -> ShoppingReason:
        return _coerce_enum(ShoppingReason, v, ShoppingReason.MANUAL)  # type: ignore[return-value]

    @field_validator("original_status", mode="before")
    @classmethod
    def coerce_original_status(cls, v: Any) -> StockStatus | None:
        if v is None:
            return None
        return _coerce_enum(StockStatus, v, None)  # type: ignore[return-value, arg-type]

    @field_validator("checked", "auto_added", "has_expiration_date", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        return bool(v) if v is not None else False

    @field_validator("original_expiration_date", mode="before")
    @classmethod
    def coerce_expiration(cls, v: Any) -> date | None:
        return _coerce_date(v)

    @field_validator("updated_at", "purchased_at", mode="before")
    @classmethod
    def coerce_optional_timestamp(cls, v: Any) -> datetime | None:
        return _coerce_datetime(v)

    @field_validator("added_at", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> datetime:
        return _coerce_datetime(v) or datetime.now()

    @model_validator(mode="after")
    def mirror_reason(self) -> "ShoppingListItem":
        self.priority = PRIORITY_BY_REASON[self.reason]
        self.is_out_of_stock = self.reason == ShoppingReason.OUT
        return self


class ConsumptionLogEntry(RecordModel):
    """An append-only consumption history entry."""

    product_id: str
    household_id: str = ""
    product_name: str = UNNAMED_PRODUCT
    quantity: float = 1.0
    action_type: ActionType = ActionType.CONSUME
    opened_at: datetime | None = None
    finished_at: datetime | None = None
    duration_days: int | None = None
    notes: str = ""
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, v: Any) -> float:
        return coerce_number(v, default=1.0)

    @field_validator("opened_at", "finished_at", mode="before")
    @classmethod
    def coerce_optional_timestamp(cls, v: Any) -> datetime | None:
        return _coerce_datetime(v)

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> datetime:
        return _coerce_datetime(v) or datetime.now()

    @field_validator("notes", mode="before")
    @classmethod
    def default_notes(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @model_validator(mode="after")
    def derive_duration(self) -> "ConsumptionLogEntry":
        if self.opened_at is not None and self.finished_at is not None:
            seconds = (self.finished_at - self.opened_at).total_seconds()
            self.duration_days = math.ceil(seconds / 86400)
        else:
            self.duration_days = None
        return self


class StatusTransition(BaseModel):
    """A product status change emitted after a primary write."""

    product: Product
    previous_status: StockStatus
    new_status: StockStatus


class CompletedCycle(BaseModel):
    """A finished open-to-empty or purchase-to-purchase span."""

    product_id: str
    product_name: str
    quantity: float
    duration_days: int
    opened_at: datetime | None = None
    finished_at: datetime | None = None
    recorded_at: datetime


class HistorySummary(BaseModel):
    """Consumption aggregates for one product, recomputed from its log."""

    product_id: str
    household_id: str
    window_months: int = 2
    logs: list[ConsumptionLogEntry] = Field(default_factory=list)
    cycles: list[CompletedCycle] = Field(default_factory=list)
    total_logs: int = 0
    total_cycles: int = 0
    total_consumed: float = 0.0
    days_since_first: int = 0
    daily_rate: float = 0.0
    average_cycle_duration: float = 0.0
    first_log_date: datetime | None = None
    last_log_date: datetime | None = None


class HouseholdConsumptionStats(BaseModel):
    """Consumption aggregates across a household."""

    household_id: str
    total_logs: int = 0
    total_cycles: int = 0
    average_duration: float = 0.0
    recent_cycles: list[CompletedCycle] = Field(default_factory=list)


class MostConsumedProduct(BaseModel):
    """Consumption count rollup for a product."""

    product_id: str
    name: str
    consumption_count: int
    total_quantity: float
    last_consumed: datetime


class Prediction(BaseModel):
    """Consumption forecast for a product."""

    product_id: str | None
    product_name: str
    status: StockStatus
    unit: Unit = Unit.COUNT
    current_quantity: float = 0.0
    total_quantity: float = 0.0
    estimated_days_left: int
    estimated_finish_date: date | None = None
    daily_consumption_rate: float = 0.0
    recommended_purchase_quantity: int = 1
    confidence: Confidence = Confidence.LOW
    data_quality: str = ""
    has_min_data: bool = False
    ai_enhanced: bool = False
    insights: list[str] = Field(default_factory=list)
    notes: str | None = None
    analyzed_at: datetime = Field(default_factory=datetime.now)


class AIConsumptionInsights(BaseModel):
    """Schema a completion response must satisfy before it can refine a forecast."""

    model_config = ConfigDict(populate_by_name=True)

    predicted_days_left: int = Field(alias="predictedDaysLeft", ge=0, le=MAX_PREDICTED_DAYS)
    consumption_rate: float = Field(alias="consumptionRate", ge=0, allow_inf_nan=False)
    recommended_purchase: int = Field(alias="recommendedPurchase", ge=1)
    insights: list[str] = Field(default_factory=list)
    confidence: Confidence | None = None
    notes: str | None = None


class ParsedProduct(BaseModel):
    """A product guess extracted from free text."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    quantity: float = Field(default=1.0, gt=0, allow_inf_nan=False)
    unit: Unit = Unit.COUNT
    category: Category = Category.OTHER
    expiration_date: date | None = Field(default=None, alias="expirationDate")
    from_fallback: bool = False


class ExpiringProduct(BaseModel):
    """A product that will run out or expire soon."""

    product: Product
    reason: str  # "consumption" or "expiration"
    days_left: int
    prediction: Prediction | None = None


class PredictionStats(BaseModel):
    """Rollup over a batch of predictions."""

    total: int = 0
    high_confidence: int = 0
    medium_confidence: int = 0
    low_confidence: int = 0
    urgent: int = 0
    warning: int = 0
    with_data: int = 0
    without_data: int = 0
    coverage: int = 0


class ShoppingStats(BaseModel):
    """Shopping list counters."""

    total: int = 0
    pending: int = 0
    purchased: int = 0
    high_priority: int = 0
    medium_priority: int = 0
    low_priority: int = 0
    out_of_stock_items: int = 0
    low_stock_items: int = 0
    manual_items: int = 0


class SyncAction(str, Enum):
    """What a shopping-list sync did for a product."""

    CREATED = "created"
    ESCALATED = "escalated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


class SyncOutcome(BaseModel):
    """Result of syncing one product with the shopping list."""

    product_id: str
    action: SyncAction
    item: ShoppingListItem | None = None
    duplicates_removed: int = 0


class SweepResult(BaseModel):
    """Result of a household reconciliation sweep."""

    household_id: str
    products_processed: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_removed: int = 0
    failures: list[str] = Field(default_factory=list)


class OperationResult(BaseModel):
    """Outcome of a primary operation, success or failure."""

    success: bool
    message: str = ""
    error: str | None = None
    error_code: str | None = None
    validation_errors: list[str] = Field(default_factory=list)
    product: Product | None = None
    item: ShoppingListItem | None = None
    previous_status: StockStatus | None = None
    new_status: StockStatus | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def status_changed(self) -> bool:
        return (
            self.previous_status is not None
            and self.new_status is not None
            and self.previous_status != self.new_status
        )

    @classmethod
    def from_error(cls, exc: Exception) -> "OperationResult":
        """Build a failure result from a PantryError."""
        return cls(
            success=False,
            error=str(exc),
            error_code=getattr(exc, "error_code", None),
            validation_errors=list(getattr(exc, "errors", [])),
        )

    def to_output(self) -> dict[str, Any]:
        """Render as the ``{"success", "message", "data"}`` shape used by the CLI."""
        if not self.success:
            output: dict[str, Any] = {"success": False, "error": self.error}
            if self.error_code:
                output["error_code"] = self.error_code
            if self.validation_errors:
                output["validation_errors"] = self.validation_errors
            return output

        data: dict[str, Any] = dict(self.data)
        if self.product is not None:
            data["product"] = self.product.model_dump(mode="json")
        if self.item is not None:
            data["shopping_item"] = self.item.model_dump(mode="json")
        if self.new_status is not None:
            data["new_status"] = self.new_status.value
            data["status_changed"] = self.status_changed
        return {"success": True, "message": self.message, "data": data}
