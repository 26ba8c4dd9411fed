"""Pantry Tracker - Household stock status and automatic shopping list."""

from .completion import ChatCompletionClient
from .config import ConfigManager
from .errors import (
    ExternalServiceError,
    InvalidStateError,
    NotFoundError,
    PantryError,
    RateLimitedError,
    StoreUnavailableError,
    ValidationError,
)
from .history import ConsumptionHistory
from .list_manager import ShoppingListManager
from .models import (
    ActionType,
    Category,
    Confidence,
    ConsumptionLogEntry,
    HistorySummary,
    OperationResult,
    ParsedProduct,
    Prediction,
    Priority,
    Product,
    ShoppingListItem,
    ShoppingReason,
    StatusTransition,
    Unit,
)
from .output_formatter import OutputFormatter
from .predictions import PredictionEngine
from .product_manager import ProductManager
from .record_store import (
    BackendType,
    Collection,
    JSONRecordStore,
    MemoryRecordStore,
    RecordStore,
    create_record_store,
)
from .shopping_sync import ShoppingListSync
from .sqlite_store import SQLiteRecordStore
from .status import StockStatus, clamp_threshold, classify
from .text_parser import ProductTextParser

__version__ = "0.1.0"

__all__ = [
    "ActionType",
    "BackendType",
    "Category",
    "ChatCompletionClient",
    "classify",
    "clamp_threshold",
    "Collection",
    "ConfigManager",
    "Confidence",
    "ConsumptionHistory",
    "ConsumptionLogEntry",
    "create_record_store",
    "ExternalServiceError",
    "HistorySummary",
    "InvalidStateError",
    "JSONRecordStore",
    "MemoryRecordStore",
    "NotFoundError",
    "OperationResult",
    "OutputFormatter",
    "PantryError",
    "ParsedProduct",
    "Prediction",
    "PredictionEngine",
    "Priority",
    "Product",
    "ProductManager",
    "ProductTextParser",
    "RateLimitedError",
    "RecordStore",
    "ShoppingListItem",
    "ShoppingListManager",
    "ShoppingListSync",
    "ShoppingReason",
    "SQLiteRecordStore",
    "StatusTransition",
    "StockStatus",
    "StoreUnavailableError",
    "Unit",
    "ValidationError",
]
