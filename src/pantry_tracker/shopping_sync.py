"""Keeps the shopping list consistent with product stock status.

At most one unchecked item may exist per product. There is no unique
constraint in the store, so every write is preceded by a read of the open
items for the product, and the reconciliation helpers repair any duplicates
that concurrent writers manage to create.
"""

import logging
import math
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError as PydanticValidationError

from .errors import NotFoundError, PantryError
from .models import (
    Product,
    ShoppingListItem,
    ShoppingReason,
    StatusTransition,
    SweepResult,
    SyncAction,
    SyncOutcome,
)
from .record_store import Collection, MemoryRecordStore, RecordStore
from .status import StockStatus

logger = logging.getLogger(__name__)

NEEDS_RESTOCK = {StockStatus.LOW, StockStatus.OUT}

NOTE_ADDED_OUT = "Added automatically when it ran out"
NOTE_ADDED_LOW = "Added automatically for low stock"
NOTE_ESCALATED = "Updated automatically: low stock -> out of stock"


def suggested_quantity(product: Product) -> float:
    """Reorder amount for a product that needs restocking.

    Low products top up to capacity (at least 1); out products reorder
    a full ``quantity_total``.
    """
    if product.status == StockStatus.LOW:
        missing = max(0.0, product.quantity_total - product.quantity_current)
        return float(max(1, math.ceil(missing)))
    return product.quantity_total if product.quantity_total > 0 else 1.0


class ShoppingListSync:
    """Reacts to product status changes and reconciles the shopping list."""

    def __init__(
        self,
        store: RecordStore | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store or MemoryRecordStore()
        self.clock = clock

    def open_items_for(self, product_id: str, household_id: str) -> list[ShoppingListItem]:
        """Unchecked items linked to a product, oldest first."""
        items = []
        for record in self.store.query(Collection.SHOPPING_LIST, {"product_id": product_id}):
            try:
                item = ShoppingListItem.from_record(record)
            except PydanticValidationError:
                logger.warning("Skipping malformed shopping item %s", record.get("id"))
                continue
            if item.household_id == household_id and not item.checked:
                items.append(item)
        items.sort(key=lambda i: i.added_at)
        return items

    def handle(self, transition: StatusTransition) -> SyncOutcome:
        """Listener entry point for ProductManager status events."""
        return self.on_status_transition(
            transition.product, transition.previous_status, transition.new_status
        )

    def on_status_transition(
        self,
        product: Product,
        previous_status: StockStatus | None,
        new_status: StockStatus,
    ) -> SyncOutcome:
        """Apply a status change to the shopping list.

        Creates an item when a product first needs restocking, escalates an
        existing item when the product runs out, and otherwise leaves the
        list alone. Items are never demoted or removed here.

        Args:
            product: Product after the change
            previous_status: Status before the change
            new_status: Status after the change

        Returns:
            SyncOutcome describing what was done
        """
        product_id = product.id or ""
        items = self.open_items_for(product_id, product.household_id)

        if not items:
            if new_status not in NEEDS_RESTOCK:
                return SyncOutcome(product_id=product_id, action=SyncAction.SKIPPED)
            item = self._create_item(product, new_status)
            self._mark_auto_added(product)
            return SyncOutcome(product_id=product_id, action=SyncAction.CREATED, item=item)

        item = items[0]
        if new_status in NEEDS_RESTOCK:
            self._mark_auto_added(product)
        if new_status == StockStatus.OUT and item.reason != ShoppingReason.OUT:
            logger.info(
                "Escalating shopping item %s for %s (%s -> %s)",
                item.id, product.name, getattr(previous_status, "value", None), new_status.value,
            )
            item = self._escalate(item)
            return SyncOutcome(product_id=product_id, action=SyncAction.ESCALATED, item=item)

        return SyncOutcome(product_id=product_id, action=SyncAction.UNCHANGED, item=item)

    def sync_product_with_shopping_list(self, product_id: str) -> SyncOutcome:
        """Reconcile one product's shopping items with its live status.

        Removes duplicate open items (keeping the oldest), escalates an item
        whose product is now out, and re-inserts a missing item for a product
        that needs restocking and was never auto-added. Safe to repeat.

        Raises:
            NotFoundError: If the product does not exist
        """
        record = self.store.get_by_id(Collection.PRODUCTS, product_id)
        if record is None:
            raise NotFoundError("Product", product_id)
        product = Product.from_record(record)

        items = self.open_items_for(product_id, product.household_id)
        duplicates = items[1:]
        for duplicate in duplicates:
            logger.info("Removing duplicate shopping item %s for %s", duplicate.id, product.name)
            self.store.delete(Collection.SHOPPING_LIST, duplicate.id or "")

        if items:
            item = items[0]
            if product.status == StockStatus.OUT and item.reason != ShoppingReason.OUT:
                item = self._escalate(item)
                action = SyncAction.ESCALATED
            else:
                action = SyncAction.UNCHANGED
            return SyncOutcome(
                product_id=product_id,
                action=action,
                item=item,
                duplicates_removed=len(duplicates),
            )

        if product.status in NEEDS_RESTOCK and not product.auto_added_to_shopping:
            item = self._create_item(product, product.status)
            self._mark_auto_added(product)
            return SyncOutcome(product_id=product_id, action=SyncAction.CREATED, item=item)

        return SyncOutcome(product_id=product_id, action=SyncAction.SKIPPED)

    def sync_all_products_with_shopping_list(self, household_id: str) -> SweepResult:
        """Reconciliation sweep over a household.

        Syncs every product, then deletes open items whose linked product no
        longer exists. A failure on one product is recorded and the sweep
        continues.
        """
        result = SweepResult(household_id=household_id)
        product_ids = set()

        for record in self.store.query(Collection.PRODUCTS, {"household_id": household_id}):
            product_id = record.get("id")
            if not product_id:
                continue
            product_ids.add(product_id)
            try:
                outcome = self.sync_product_with_shopping_list(product_id)
            except PantryError as e:
                logger.warning("Sync failed for product %s: %s", product_id, e)
                result.failures.append(f"{product_id}: {e}")
                continue
            result.products_processed += 1
            result.items_removed += outcome.duplicates_removed
            if outcome.action == SyncAction.CREATED:
                result.items_created += 1
            elif outcome.action == SyncAction.ESCALATED:
                result.items_updated += 1

        for record in self.store.query(Collection.SHOPPING_LIST, {"household_id": household_id}):
            linked = record.get("product_id")
            if not linked or record.get("checked") or linked in product_ids:
                continue
            if self.store.get_by_id(Collection.PRODUCTS, linked) is None:
                logger.info("Removing orphaned shopping item %s", record.get("id"))
                self.store.delete(Collection.SHOPPING_LIST, record["id"])
                result.items_removed += 1

        return result

    def remove_open_items(self, product: Product) -> int:
        """Delete every unchecked item linked to ``product``."""
        items = self.open_items_for(product.id or "", product.household_id)
        for item in items:
            self.store.delete(Collection.SHOPPING_LIST, item.id or "")
        return len(items)

    def _create_item(self, product: Product, status: StockStatus) -> ShoppingListItem:
        reason = ShoppingReason.OUT if status == StockStatus.OUT else ShoppingReason.LOW
        item = ShoppingListItem(
            household_id=product.household_id,
            product_id=product.id,
            product_name=product.name,
            quantity=suggested_quantity(product),
            unit=product.unit,
            category=product.category,
            reason=reason,
            original_status=status,
            notes=NOTE_ADDED_OUT if reason == ShoppingReason.OUT else NOTE_ADDED_LOW,
            auto_added=True,
            has_expiration_date=product.expiration_date is not None,
            original_expiration_date=product.expiration_date,
            added_at=self.clock(),
        )
        item.id = self.store.insert(Collection.SHOPPING_LIST, item.to_record())
        logger.info("Added %s to shopping list (%s)", product.name, reason.value)
        return item

    def _escalate(self, item: ShoppingListItem) -> ShoppingListItem:
        escalated = item.with_changes(
            reason=ShoppingReason.OUT,
            original_status=StockStatus.OUT,
            notes=NOTE_ESCALATED,
            updated_at=self.clock(),
        )
        self.store.update(
            Collection.SHOPPING_LIST,
            item.id or "",
            {
                "reason": escalated.reason,
                "priority": escalated.priority,
                "is_out_of_stock": escalated.is_out_of_stock,
                "original_status": escalated.original_status,
                "notes": escalated.notes,
                "updated_at": escalated.updated_at,
            },
        )
        return escalated

    def _mark_auto_added(self, product: Product) -> None:
        if product.auto_added_to_shopping:
            return
        self.store.update(
            Collection.PRODUCTS,
            product.id or "",
            {"auto_added_to_shopping": True},
        )
