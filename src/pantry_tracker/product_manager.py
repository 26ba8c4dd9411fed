"""Product lifecycle operations.

Every mutation follows the same shape: the product write is the primary
effect and either succeeds or is reported as a failed ``OperationResult``.
History logging, shopping-list sync and other follow-up writes run after the
primary write, each inside ``secondary_effect`` so their failure is logged
and never undoes the product change.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Any

from .errors import InvalidStateError, NotFoundError, PantryError, secondary_effect
from .history import ConsumptionHistory
from .models import ActionType, ConsumptionLogEntry, OperationResult, Product, StatusTransition
from .record_store import Collection, MemoryRecordStore, RecordStore
from .shopping_sync import ShoppingListSync
from .status import StockStatus, clamp_threshold, is_escalation
from .validation import (
    validate_consume_amount,
    validate_expiration_date,
    validate_new_product,
    validate_product_update,
)

logger = logging.getLogger(__name__)

StatusListener = Callable[[StatusTransition], Any]

STATUS_FIELDS = {"quantity_total", "quantity_current", "low_stock_threshold"}


class ProductManager:
    """Manages product inventory operations."""

    def __init__(
        self,
        store: RecordStore | None = None,
        history: ConsumptionHistory | None = None,
        shopping_sync: ShoppingListSync | None = None,
        clock: Callable[[], datetime] = datetime.now,
        restore_expiration_days: int = 30,
        default_threshold: float = 0.2,
    ):
        """Initialize product manager.

        Args:
            store: Record store. Creates an in-memory one if not provided.
            history: Consumption log. Shares ``store`` if not provided.
            shopping_sync: Shopping list synchronizer. When given it is
                registered as a status listener and used for delete cascades.
            clock: Source of "now"
            restore_expiration_days: Days added to the expiration date when a
                product that tracked one is restored without a new date
            default_threshold: Low-stock ratio for products created without one
        """
        self.store = store or MemoryRecordStore()
        self.history = history or ConsumptionHistory(self.store, clock=clock)
        self.shopping_sync = shopping_sync
        self.clock = clock
        self.restore_expiration_days = restore_expiration_days
        self.default_threshold = default_threshold
        self._listeners: list[StatusListener] = []
        if shopping_sync is not None:
            self.add_listener(shopping_sync.handle)

    def add_listener(self, listener: StatusListener) -> None:
        """Register a callback for status escalations."""
        self._listeners.append(listener)

    def _emit(self, transition: StatusTransition) -> None:
        for listener in self._listeners:
            with secondary_effect(
                f"status listener for {transition.product.name} "
                f"({transition.previous_status.value} -> {transition.new_status.value})"
            ):
                listener(transition)

    def _reload(self, product: Product) -> Product:
        """Re-read a product after secondary writes, falling back to ``product``."""
        with secondary_effect(f"reload product {product.id}"):
            record = self.store.get_by_id(Collection.PRODUCTS, product.id or "")
            if record is not None:
                return Product.from_record(record)
        return product

    def get_product(self, product_id: str) -> Product:
        """Get a product by id.

        Raises:
            NotFoundError: If the product does not exist
        """
        record = self.store.get_by_id(Collection.PRODUCTS, product_id)
        if record is None:
            raise NotFoundError("Product", product_id)
        return Product.from_record(record)

    def list_products(
        self, household_id: str, status: StockStatus | str | None = None
    ) -> list[Product]:
        """Products in a household, sorted by name.

        Args:
            household_id: Household to list
            status: Optional filter on the freshly computed status
        """
        products = [
            Product.from_record(r)
            for r in self.store.query(Collection.PRODUCTS, {"household_id": household_id})
        ]
        if status is not None:
            wanted = StockStatus(status)
            products = [p for p in products if p.status == wanted]
        return sorted(products, key=lambda p: p.name.lower())

    def get_low_stock(self, household_id: str) -> list[Product]:
        """Products that need restocking (low or out), out first."""
        products = [
            p for p in self.list_products(household_id) if p.status != StockStatus.AVAILABLE
        ]
        return sorted(products, key=lambda p: (p.status != StockStatus.OUT, p.name.lower()))

    def get_expiring_soon(self, household_id: str, days: int = 3) -> list[Product]:
        """Products whose expiration date is within ``days`` (expired included)."""
        expiring = [
            p
            for p in self.list_products(household_id)
            if p.days_until_expiration is not None and p.days_until_expiration <= days
        ]
        return sorted(expiring, key=lambda p: p.expiration_date or date.max)

    def create(self, data: dict[str, Any], household_id: str) -> OperationResult:
        """Create a product.

        The product starts full (``quantity_current = quantity_total``) with
        its threshold clamped and status derived.

        Args:
            data: Product fields (name, category, unit, quantity_total and
                optionally quantity_current, low_stock_threshold,
                expiration_date, notes)
            household_id: Owning household

        Returns:
            OperationResult with the created product
        """
        try:
            validate_new_product(data)
            now = self.clock()
            product = Product(
                household_id=household_id,
                name=data["name"],
                category=data["category"],
                unit=data["unit"],
                quantity_total=data["quantity_total"],
                quantity_current=data["quantity_total"],
                low_stock_threshold=clamp_threshold(
                    data.get("low_stock_threshold", self.default_threshold)
                ),
                expiration_date=data.get("expiration_date"),
                notes=data.get("notes"),
                auto_added_to_shopping=False,
                last_opened_at=None,
                created_at=now,
                updated_at=now,
            )
            product.id = self.store.insert(Collection.PRODUCTS, product.to_record())
        except PantryError as e:
            logger.error("Failed to create product: %s", e)
            return OperationResult.from_error(e)

        logger.info("Created product %s (%s)", product.name, product.id)
        return OperationResult(
            success=True,
            message=f"Added {product.name} to inventory",
            product=product,
            new_status=product.status,
        )

    def update(self, product_id: str, updates: dict[str, Any]) -> OperationResult:
        """Update product fields.

        Quantity fields are validated against the merged record, so a lone
        ``quantity_current`` is checked against the stored total. Status is
        recomputed and stored on every update. Last writer wins.
        """
        try:
            product = self.get_product(product_id)
            previous = product.status
            merged = {**product.model_dump(mode="json"), **updates}
            validate_product_update(merged, updates)

            updated = product.with_changes(**updates, updated_at=self.clock())
            changed = set(updates) | {"status", "updated_at"}
            if STATUS_FIELDS & set(updates):
                changed.add("low_stock_threshold")
            if updated.status == StockStatus.LOW and previous != StockStatus.LOW:
                updated.auto_added_to_shopping = False
                changed.add("auto_added_to_shopping")

            record = updated.to_record()
            self.store.update(
                Collection.PRODUCTS, product_id, {key: record[key] for key in changed}
            )
        except PantryError as e:
            logger.error("Failed to update product %s: %s", product_id, e)
            return OperationResult.from_error(e)

        if is_escalation(previous, updated.status):
            self._emit(
                StatusTransition(
                    product=updated, previous_status=previous, new_status=updated.status
                )
            )
            updated = self._reload(updated)

        return OperationResult(
            success=True,
            message=f"Updated {updated.name}",
            product=updated,
            previous_status=previous,
            new_status=updated.status,
        )

    def consume(self, product_id: str, amount: float = 1) -> OperationResult:
        """Consume some of a product.

        Over-consumption floors the quantity at 0 rather than failing.
        Escalations notify listeners; the consume log entry is best effort.
        """
        try:
            amount = validate_consume_amount(amount)
            product = self.get_product(product_id)
            previous = product.status

            updated = product.with_changes(
                quantity_current=max(0.0, product.quantity_current - amount),
                updated_at=self.clock(),
            )
            changes: dict[str, Any] = {
                "quantity_current": updated.quantity_current,
                "status": updated.status,
                "updated_at": updated.updated_at,
            }
            if updated.status == StockStatus.LOW and previous != StockStatus.LOW:
                updated.auto_added_to_shopping = False
                changes["auto_added_to_shopping"] = False

            self.store.update(Collection.PRODUCTS, product_id, changes)
        except PantryError as e:
            logger.error("Failed to consume product %s: %s", product_id, e)
            return OperationResult.from_error(e)

        if is_escalation(previous, updated.status):
            self._emit(
                StatusTransition(
                    product=updated, previous_status=previous, new_status=updated.status
                )
            )
        self.history.log_action(updated, ActionType.CONSUME, quantity=amount)
        if self._listeners:
            updated = self._reload(updated)

        return OperationResult(
            success=True,
            message=f"Consumed {amount:g} of {updated.name}",
            product=updated,
            previous_status=previous,
            new_status=updated.status,
        )

    def open(self, product_id: str) -> OperationResult:
        """Mark a product as opened.

        Fails with INVALID_STATE when the product is out of stock or has
        already been opened since its last restore.
        """
        try:
            product = self.get_product(product_id)
            if product.status == StockStatus.OUT:
                raise InvalidStateError(f"{product.name} is out of stock and cannot be opened")
            if product.is_opened:
                raise InvalidStateError(f"{product.name} is already opened")

            now = self.clock()
            updated = product.with_changes(last_opened_at=now, updated_at=now)
            self.store.update(
                Collection.PRODUCTS,
                product_id,
                {"last_opened_at": updated.last_opened_at, "updated_at": updated.updated_at},
            )
        except PantryError as e:
            logger.error("Failed to open product %s: %s", product_id, e)
            return OperationResult.from_error(e)

        self.history.log_action(updated, ActionType.OPEN, quantity=1, opened_at=now)
        return OperationResult(
            success=True,
            message=f"Opened {updated.name}",
            product=updated,
            previous_status=product.status,
            new_status=updated.status,
        )

    def restore(
        self, product_id: str, new_expiration_date: date | str | None = None
    ) -> OperationResult:
        """Restock a product as freshly purchased.

        Refills to ``quantity_total``, clears ``last_opened_at`` and the
        auto-added flag, and rolls the expiration date forward: the supplied
        date wins, otherwise a product that tracked an expiration date gets
        one ``restore_expiration_days`` from today.
        """
        try:
            expiration = validate_expiration_date(new_expiration_date)
            product = self.get_product(product_id)
            previous = product.status
            now = self.clock()

            if expiration is None and product.expiration_date is not None:
                expiration = now.date() + timedelta(days=self.restore_expiration_days)
            total = product.quantity_total if product.quantity_total > 0 else 1.0

            updated = product.with_changes(
                quantity_total=total,
                quantity_current=total,
                last_opened_at=None,
                auto_added_to_shopping=False,
                expiration_date=expiration,
                purchased_at=now,
                updated_at=now,
            )
            record = updated.to_record()
            self.store.update(
                Collection.PRODUCTS,
                product_id,
                {
                    key: record[key]
                    for key in (
                        "quantity_total",
                        "quantity_current",
                        "status",
                        "last_opened_at",
                        "auto_added_to_shopping",
                        "expiration_date",
                        "purchased_at",
                        "updated_at",
                    )
                },
            )
        except PantryError as e:
            logger.error("Failed to restore product %s: %s", product_id, e)
            return OperationResult.from_error(e)

        self.history.log_action(
            updated,
            ActionType.PURCHASE,
            quantity=total,
            opened_at=product.last_opened_at,
            finished_at=now if product.last_opened_at is not None else None,
        )
        return OperationResult(
            success=True,
            message=f"Restored {updated.name}",
            product=updated,
            previous_status=previous,
            new_status=updated.status,
        )

    def delete(self, product_id: str) -> OperationResult:
        """Delete a product and, best effort, its open shopping items."""
        try:
            product = self.get_product(product_id)
            self.store.delete(Collection.PRODUCTS, product_id)
        except PantryError as e:
            logger.error("Failed to delete product %s: %s", product_id, e)
            return OperationResult.from_error(e)

        removed = 0
        if self.shopping_sync is not None:
            with secondary_effect(f"remove shopping items for deleted product {product_id}"):
                removed = self.shopping_sync.remove_open_items(product)

        return OperationResult(
            success=True,
            message=f"Deleted {product.name}",
            product=product,
            data={"shopping_items_removed": removed},
        )

    def complete_cycle(self, product_id: str, notes: str = "") -> OperationResult:
        """Record that an opened product has been used up.

        Appends a ``cycle_complete`` entry spanning ``last_opened_at`` to now.
        The entry is the primary effect here, so a failed write is reported.
        """
        try:
            product = self.get_product(product_id)
            if product.last_opened_at is None:
                raise InvalidStateError(f"{product.name} was not opened")

            now = self.clock()
            entry = ConsumptionLogEntry(
                product_id=product_id,
                household_id=product.household_id,
                product_name=product.name,
                quantity=product.quantity_total or 1,
                action_type=ActionType.CYCLE_COMPLETE,
                opened_at=product.last_opened_at,
                finished_at=now,
                notes=notes,
                created_at=now,
            )
            entry.id = self.store.insert(Collection.CONSUMPTION_LOGS, entry.to_record())
        except PantryError as e:
            logger.error("Failed to complete cycle for %s: %s", product_id, e)
            return OperationResult.from_error(e)

        return OperationResult(
            success=True,
            message=f"Completed cycle for {product.name}: {entry.duration_days} days",
            product=product,
            data={"log": entry.model_dump(mode="json"), "duration_days": entry.duration_days},
        )

    def recalculate_all_statuses(self, household_id: str) -> OperationResult:
        """Rewrite stored statuses and thresholds that drifted from their derived values."""
        updated = 0
        try:
            for record in self.store.query(Collection.PRODUCTS, {"household_id": household_id}):
                product = Product.from_record(record)
                if (
                    record.get("status") == product.status.value
                    and record.get("low_stock_threshold") == product.low_stock_threshold
                ):
                    continue
                self.store.update(
                    Collection.PRODUCTS,
                    product.id or record["id"],
                    {
                        "status": product.status,
                        "low_stock_threshold": product.low_stock_threshold,
                        "updated_at": self.clock(),
                    },
                )
                updated += 1
        except PantryError as e:
            logger.error("Failed to recalculate statuses: %s", e)
            return OperationResult.from_error(e)

        return OperationResult(
            success=True,
            message=f"Recalculated statuses: {updated} products updated",
            data={"updated": updated},
        )
