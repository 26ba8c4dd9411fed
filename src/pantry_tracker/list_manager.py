"""Shopping list management operations."""

import logging
from collections.abc import Callable
from datetime import date, datetime

from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidStateError, NotFoundError, PantryError
from .item_normalizer import name_matches
from .models import (
    Category,
    OperationResult,
    Priority,
    Product,
    ShoppingListItem,
    ShoppingReason,
    ShoppingStats,
    Unit,
)
from .product_manager import ProductManager
from .record_store import Collection, MemoryRecordStore, RecordStore
from .status import StockStatus
from .validation import validate_shopping_item

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}
ITEM_TYPES = ("all", "out", "low", "manual")
MIN_SEARCH_LENGTH = 2


class ShoppingListManager:
    """Manages shopping list operations."""

    def __init__(
        self,
        store: RecordStore | None = None,
        product_manager: ProductManager | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize shopping list manager.

        Args:
            store: Record store. Creates an in-memory one if not provided.
            product_manager: Used to restore products when their item is
                purchased. Built on the same store if not provided.
            clock: Source of "now"
        """
        self.store = store or MemoryRecordStore()
        self.product_manager = product_manager or ProductManager(self.store, clock=clock)
        self.clock = clock

    def _load_items(self, household_id: str) -> list[ShoppingListItem]:
        items = []
        for record in self.store.query(Collection.SHOPPING_LIST, {"household_id": household_id}):
            try:
                items.append(ShoppingListItem.from_record(record))
            except PydanticValidationError:
                logger.warning("Skipping malformed shopping item %s", record.get("id"))
        return items

    def get_item(self, item_id: str) -> ShoppingListItem:
        """Get a shopping item by id.

        Raises:
            NotFoundError: If the item does not exist
        """
        record = self.store.get_by_id(Collection.SHOPPING_LIST, item_id)
        if record is None:
            raise NotFoundError("Shopping item", item_id)
        return ShoppingListItem.from_record(record)

    def add_manual_item(
        self,
        household_id: str,
        product_name: str,
        quantity: float = 1,
        unit: Unit | str = Unit.COUNT,
        category: Category | str = Category.OTHER,
        notes: str | None = None,
    ) -> OperationResult:
        """Add an item that is not linked to inventory.

        Args:
            household_id: Owning household
            product_name: Item name (2-100 characters)
            quantity: Amount to buy (0.1-999)
            unit: Unit of measurement
            category: Product category
            notes: Optional notes

        Returns:
            OperationResult with the created item
        """
        try:
            validate_shopping_item(product_name, quantity)
            item = ShoppingListItem(
                household_id=household_id,
                product_id=None,
                product_name=product_name.strip(),
                quantity=quantity,
                unit=unit,
                category=category,
                reason=ShoppingReason.MANUAL,
                notes=notes or "Added manually",
                added_at=self.clock(),
            )
            item.id = self.store.insert(Collection.SHOPPING_LIST, item.to_record())
        except PantryError as e:
            logger.error("Failed to add shopping item: %s", e)
            return OperationResult.from_error(e)

        return OperationResult(
            success=True,
            message=f"Added {item.product_name} to shopping list",
            item=item,
        )

    def mark_as_purchased(
        self, item_id: str, new_expiration_date: date | str | None = None
    ) -> OperationResult:
        """Check off an item and restore its linked product.

        The checked flag is the primary write. Restoring the product follows
        it; a failed restore is logged and reported in ``data`` but does not
        uncheck the item.
        """
        try:
            item = self.get_item(item_id)
            if item.checked:
                raise InvalidStateError(f"{item.product_name} is already purchased")
            now = self.clock()
            item = item.with_changes(checked=True, purchased_at=now, updated_at=now)
            self.store.update(
                Collection.SHOPPING_LIST,
                item_id,
                {"checked": True, "purchased_at": now, "updated_at": now},
            )
        except PantryError as e:
            logger.error("Failed to mark item %s as purchased: %s", item_id, e)
            return OperationResult.from_error(e)

        product = None
        restored = False
        if item.product_id:
            result = self.product_manager.restore(item.product_id, new_expiration_date)
            if result.success:
                product = result.product
                restored = True
            else:
                logger.warning(
                    "Purchased item %s but could not restore product %s: %s",
                    item_id, item.product_id, result.error,
                )

        return OperationResult(
            success=True,
            message=f"Marked {item.product_name} as purchased",
            item=item,
            product=product,
            new_status=product.status if product else None,
            data={"product_restored": restored},
        )

    def remove_item(self, item_id: str) -> OperationResult:
        """Remove an item from the shopping list."""
        try:
            item = self.get_item(item_id)
            self.store.delete(Collection.SHOPPING_LIST, item_id)
        except PantryError as e:
            logger.error("Failed to remove shopping item %s: %s", item_id, e)
            return OperationResult.from_error(e)

        return OperationResult(
            success=True,
            message=f"Removed {item.product_name} from shopping list",
            item=item,
        )

    def get_shopping_list(
        self, household_id: str, only_unchecked: bool = True
    ) -> list[ShoppingListItem]:
        """Items sorted by priority (high first), newest first within a priority."""
        items = self._load_items(household_id)
        if only_unchecked:
            items = [i for i in items if not i.checked]
        items.sort(key=lambda i: i.added_at, reverse=True)
        items.sort(key=lambda i: PRIORITY_ORDER[i.priority])
        return items

    def get_items_by_type(self, household_id: str, item_type: str = "all") -> list[ShoppingListItem]:
        """Unchecked items of one kind: ``all``, ``out``, ``low`` or ``manual``."""
        if item_type not in ITEM_TYPES:
            raise ValueError(f"Unknown item type: {item_type}")
        items = self.get_shopping_list(household_id)
        if item_type == "out":
            return [i for i in items if i.is_out_of_stock]
        if item_type == "low":
            return [i for i in items if i.reason == ShoppingReason.LOW]
        if item_type == "manual":
            return [i for i in items if i.reason == ShoppingReason.MANUAL]
        return items

    def get_shopping_stats(self, household_id: str) -> ShoppingStats:
        """Counters over a household's shopping list."""
        stats = ShoppingStats()
        for item in self._load_items(household_id):
            stats.total += 1
            if item.checked:
                stats.purchased += 1
                continue
            stats.pending += 1
            if item.priority == Priority.HIGH:
                stats.high_priority += 1
            elif item.priority == Priority.MEDIUM:
                stats.medium_priority += 1
            else:
                stats.low_priority += 1

            if item.reason == ShoppingReason.OUT:
                stats.out_of_stock_items += 1
            elif item.reason == ShoppingReason.LOW:
                stats.low_stock_items += 1
            else:
                stats.manual_items += 1
        return stats

    def get_purchase_history(self, household_id: str, limit: int = 20) -> list[ShoppingListItem]:
        """Purchased items, most recent first."""
        purchased = [i for i in self._load_items(household_id) if i.checked]
        purchased.sort(key=lambda i: i.purchased_at or i.added_at, reverse=True)
        return purchased[:limit]

    def search_products_for_shopping(self, household_id: str, term: str) -> list[Product]:
        """Inventory products whose name matches ``term``.

        Terms shorter than two characters return nothing. Products that need
        restocking are listed first.
        """
        if not term or len(term.strip()) < MIN_SEARCH_LENGTH:
            return []
        matches = [
            p
            for p in self.product_manager.list_products(household_id)
            if name_matches(p.name, term)
        ]
        return sorted(matches, key=lambda p: p.status == StockStatus.AVAILABLE)
