"""CLI entry point for Pantry Tracker."""

from pathlib import Path
from typing import Annotated, Any, NoReturn

import typer

from .completion import ChatCompletionClient
from .config import ConfigManager
from .errors import PantryError
from .history import ConsumptionHistory
from .list_manager import ITEM_TYPES, ShoppingListManager
from .logging_config import configure_logging
from .models import Category, OperationResult, Unit
from .output_formatter import OutputFormatter
from .predictions import PredictionEngine
from .product_manager import ProductManager
from .record_store import BackendType, RecordStore, create_record_store
from .shopping_sync import ShoppingListSync
from .status import StockStatus
from .text_parser import ProductTextParser

app = typer.Typer(
    name="pantry",
    help="Household pantry stock tracking with an automatic shopping list",
    no_args_is_help=True,
)

# Global state for formatter and services (set by callback)
formatter: OutputFormatter = OutputFormatter()
config: ConfigManager | None = None
household: str = "home"
record_store: RecordStore | None = None
product_manager: ProductManager | None = None
shopping_manager: ShoppingListManager | None = None
shopping_sync: ShoppingListSync | None = None
history: ConsumptionHistory | None = None
engine: PredictionEngine | None = None
completion_client: ChatCompletionClient | None = None


def get_config() -> ConfigManager:
    """Get or create ConfigManager instance."""
    global config
    if config is None:
        config = ConfigManager()
    return config


def _require(service: Any) -> Any:
    if service is None:
        raise RuntimeError("CLI services were not initialized")
    return service


def _report(result: OperationResult) -> None:
    """Print an operation result, exiting with status 1 on failure."""
    if not result.success:
        formatter.error(
            result.error or "Operation failed",
            error_code=result.error_code,
            validation_errors=result.validation_errors,
        )
        raise typer.Exit(code=1)
    formatter.output(result.to_output(), result.message)


def _fail(e: Exception) -> NoReturn:
    formatter.error(str(e), error_code=getattr(e, "error_code", None))
    raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON for programmatic use")
    ] = False,
    data_dir: Annotated[Path | None, typer.Option("--data-dir", help="Data directory path")] = None,
    household_id: Annotated[
        str | None, typer.Option("--household", help="Household to operate on")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Pantry Tracker CLI - Know what is running out before it does."""
    global formatter, config, household, record_store, product_manager
    global shopping_manager, shopping_sync, history, engine, completion_client

    formatter = OutputFormatter(json_mode=json_output)
    config = ConfigManager()
    configure_logging("DEBUG" if verbose else config.logging.level)

    # CLI --data-dir overrides config, which overrides default
    effective_data_dir = data_dir if data_dir else config.data.storage_dir
    household = household_id or config.defaults.household

    record_store = create_record_store(
        backend=BackendType(config.data.backend), data_dir=effective_data_dir
    )
    history = ConsumptionHistory(record_store, window_months=config.predictions.history_months)
    shopping_sync = ShoppingListSync(record_store)
    product_manager = ProductManager(
        record_store,
        history=history,
        shopping_sync=shopping_sync,
        restore_expiration_days=config.inventory.restore_expiration_days,
        default_threshold=config.inventory.low_stock_threshold,
    )
    shopping_manager = ShoppingListManager(record_store, product_manager=product_manager)
    completion_client = ChatCompletionClient.from_config(config.completion)
    if completion_client is not None:
        ctx.call_on_close(completion_client.close)
    engine = PredictionEngine(
        history=history,
        client=completion_client,
        config=config.predictions,
        completion_config=config.completion,
    )


@app.command()
def add(
    name: Annotated[str, typer.Argument(help="Product name")],
    quantity: Annotated[float, typer.Option("--quantity", "-q", help="Full quantity")] = 1,
    category: Annotated[
        Category | None, typer.Option("--category", "-c", help="Product category")
    ] = None,
    unit: Annotated[Unit | None, typer.Option("--unit", "-u", help="Unit of measurement")] = None,
    threshold: Annotated[
        float | None, typer.Option("--threshold", "-t", help="Low-stock ratio (0.1-1)")
    ] = None,
    expires: Annotated[
        str | None, typer.Option("--expires", "-e", help="Expiration date (YYYY-MM-DD)")
    ] = None,
    notes: Annotated[str | None, typer.Option("--notes", "-n", help="Additional notes")] = None,
) -> None:
    """Add a product to the pantry."""
    cfg = get_config()
    data: dict[str, Any] = {
        "name": name,
        "quantity_total": quantity,
        "category": category.value if category else cfg.defaults.category,
        "unit": unit.value if unit else cfg.defaults.unit,
        "expiration_date": expires,
        "notes": notes,
    }
    if threshold is not None:
        data["low_stock_threshold"] = threshold
    _report(_require(product_manager).create(data, household))


@app.command()
def update(
    product_id: Annotated[str, typer.Argument(help="Product ID")],
    name: Annotated[str | None, typer.Option("--name", help="New name")] = None,
    total: Annotated[float | None, typer.Option("--total", help="Full quantity")] = None,
    current: Annotated[float | None, typer.Option("--current", help="Quantity left")] = None,
    category: Annotated[Category | None, typer.Option("--category", "-c")] = None,
    unit: Annotated[Unit | None, typer.Option("--unit", "-u")] = None,
    threshold: Annotated[float | None, typer.Option("--threshold", "-t")] = None,
    expires: Annotated[str | None, typer.Option("--expires", "-e")] = None,
    notes: Annotated[str | None, typer.Option("--notes", "-n")] = None,
) -> None:
    """Update product fields."""
    updates: dict[str, Any] = {}
    if name is not None:
        updates["name"] = name
    if total is not None:
        updates["quantity_total"] = total
    if current is not None:
        updates["quantity_current"] = current
    if category is not None:
        updates["category"] = category.value
    if unit is not None:
        updates["unit"] = unit.value
    if threshold is not None:
        updates["low_stock_threshold"] = threshold
    if expires is not None:
        updates["expiration_date"] = expires
    if notes is not None:
        updates["notes"] = notes

    if not updates:
        formatter.error("No updates specified", error_code="VALIDATION_ERROR")
        raise typer.Exit(code=1)
    _report(_require(product_manager).update(product_id, updates))


@app.command()
def consume(
    product_id: Annotated[str, typer.Argument(help="Product ID")],
    amount: Annotated[float, typer.Option("--amount", "-a", help="Amount used")] = 1,
) -> None:
    """Record that some of a product was used."""
    _report(_require(product_manager).consume(product_id, amount))


@app.command(name="open")
def open_product(
    product_id: Annotated[str, typer.Argument(help="Product ID")],
) -> None:
    """Mark a product as opened."""
    _report(_require(product_manager).open(product_id))


@app.command()
def restore(
    product_id: Annotated[str, typer.Argument(help="Product ID")],
    expires: Annotated[
        str | None, typer.Option("--expires", "-e", help="New expiration date (YYYY-MM-DD)")
    ] = None,
) -> None:
    """Restock a product as freshly purchased."""
    _report(_require(product_manager).restore(product_id, expires))


@app.command()
def delete(
    product_id: Annotated[str, typer.Argument(help="Product ID")],
) -> None:
    """Delete a product and its open shopping items."""
    _report(_require(product_manager).delete(product_id))


@app.command()
def cycle(
    product_id: Annotated[str, typer.Argument(help="Product ID")],
    notes: Annotated[str, typer.Option("--notes", "-n", help="Cycle notes")] = "",
) -> None:
    """Record that an opened product has been used up."""
    _report(_require(product_manager).complete_cycle(product_id, notes))


@app.command()
def products(
    status: Annotated[
        StockStatus | None, typer.Option("--status", "-s", help="Filter by status")
    ] = None,
    low_stock: Annotated[
        bool, typer.Option("--low-stock", help="Only products that need restocking")
    ] = False,
    expiring: Annotated[
        bool, typer.Option("--expiring", help="Only products expiring soon")
    ] = False,
) -> None:
    """List pantry products."""
    manager = _require(product_manager)
    try:
        if low_stock:
            found = manager.get_low_stock(household)
            title = "Low Stock"
        elif expiring:
            days = get_config().inventory.expiring_soon_days
            found = manager.get_expiring_soon(household, days)
            title = f"Expiring within {days} days"
        else:
            found = manager.list_products(household, status)
            title = "Pantry"
    except PantryError as e:
        _fail(e)

    formatter.output(
        {
            "success": True,
            "data": {
                "products": [p.model_dump(mode="json") for p in found],
                "title": title,
                "total": len(found),
            },
        }
    )


@app.command()
def show(
    product_id: Annotated[str, typer.Argument(help="Product ID")],
) -> None:
    """Show one product."""
    try:
        product = _require(product_manager).get_product(product_id)
    except PantryError as e:
        _fail(e)

    formatter.output({"success": True, "data": {"product": product.model_dump(mode="json")}})


@app.command()
def recalculate() -> None:
    """Rewrite stored statuses that drifted from their quantities."""
    _report(_require(product_manager).recalculate_all_statuses(household))


@app.command(name="history")
def history_command(
    product_id: Annotated[str, typer.Argument(help="Product ID")],
    months: Annotated[
        int | None, typer.Option("--months", "-m", help="History window in months")
    ] = None,
) -> None:
    """Show a product's consumption history."""
    try:
        product = _require(product_manager).get_product(product_id)
        summary = _require(history).get_history(product.id, product.household_id, months)
    except PantryError as e:
        _fail(e)

    formatter.output(
        {
            "success": True,
            "data": {
                "product": product.model_dump(mode="json"),
                "history": summary.model_dump(mode="json"),
            },
        }
    )


@app.command()
def predict(
    product_id: Annotated[str | None, typer.Argument(help="Product ID")] = None,
    limit: Annotated[
        int | None, typer.Option("--limit", "-l", help="Products to analyze in batch mode")
    ] = None,
) -> None:
    """Forecast when products will run out.

    With a product ID, forecast that product; without one, analyze the
    household's most relevant products.
    """
    forecaster = _require(engine)
    try:
        if product_id:
            product = _require(product_manager).get_product(product_id)
            prediction = forecaster.analyze_product(product, product.household_id)
            formatter.output(
                {"success": True, "data": {"prediction": prediction.model_dump(mode="json")}}
            )
            return

        found = _require(product_manager).list_products(household)
        predictions = forecaster.analyze_household_products(found, household, limit=limit)
        soon = forecaster.get_soon_to_expire(found, predictions)
        stats = forecaster.get_prediction_stats(predictions, found)
    except PantryError as e:
        _fail(e)

    formatter.output(
        {
            "success": True,
            "data": {
                "predictions": [p.model_dump(mode="json") for p in predictions],
                "stats": stats.model_dump(mode="json"),
                "soon_to_expire": [
                    {
                        "product_id": entry.product.id,
                        "name": entry.product.name,
                        "reason": entry.reason,
                        "days_left": entry.days_left,
                    }
                    for entry in soon
                ],
            },
        }
    )


@app.command()
def parse(
    text: Annotated[str, typer.Argument(help='Free text such as "2 liters of milk"')],
    save: Annotated[bool, typer.Option("--save", help="Add the parsed product")] = False,
) -> None:
    """Turn free text into a product."""
    parser = ProductTextParser(completion_client, get_config().completion)
    parsed = parser.parse(text)
    if parsed is None:
        formatter.error("Nothing to parse", error_code="VALIDATION_ERROR")
        raise typer.Exit(code=1)

    if not save:
        formatter.output({"success": True, "data": {"parsed": parsed.model_dump(mode="json")}})
        return

    data = {
        "name": parsed.name,
        "quantity_total": parsed.quantity,
        "category": parsed.category.value,
        "unit": parsed.unit.value,
        "expiration_date": parsed.expiration_date,
    }
    _report(_require(product_manager).create(data, household))


# Shopping list commands
shopping_app = typer.Typer(help="Shopping list")
app.add_typer(shopping_app, name="shopping")


@shopping_app.command("list")
def shopping_list(
    item_type: Annotated[
        str, typer.Option("--type", help=f"Item type: {', '.join(ITEM_TYPES)}")
    ] = "all",
    show_all: Annotated[
        bool, typer.Option("--all", "-a", help="Include purchased items")
    ] = False,
) -> None:
    """Show the shopping list."""
    manager = _require(shopping_manager)
    try:
        if show_all:
            items = manager.get_shopping_list(household, only_unchecked=False)
        else:
            items = manager.get_items_by_type(household, item_type)
    except (ValueError, PantryError) as e:
        _fail(e)

    formatter.output(
        {
            "success": True,
            "data": {
                "shopping_list": [i.model_dump(mode="json") for i in items],
                "total": len(items),
            },
        }
    )


@shopping_app.command("add")
def shopping_add(
    name: Annotated[str, typer.Argument(help="Item name")],
    quantity: Annotated[float, typer.Option("--quantity", "-q", help="Amount to buy")] = 1,
    unit: Annotated[Unit, typer.Option("--unit", "-u")] = Unit.COUNT,
    category: Annotated[Category, typer.Option("--category", "-c")] = Category.OTHER,
    notes: Annotated[str | None, typer.Option("--notes", "-n")] = None,
) -> None:
    """Add an item that is not tracked in the pantry."""
    _report(
        _require(shopping_manager).add_manual_item(
            household, name, quantity=quantity, unit=unit, category=category, notes=notes
        )
    )


@shopping_app.command("bought")
def shopping_bought(
    item_id: Annotated[str, typer.Argument(help="Shopping item ID")],
    expires: Annotated[
        str | None, typer.Option("--expires", "-e", help="New expiration date (YYYY-MM-DD)")
    ] = None,
) -> None:
    """Check off an item and restock its product."""
    _report(_require(shopping_manager).mark_as_purchased(item_id, expires))


@shopping_app.command("remove")
def shopping_remove(
    item_id: Annotated[str, typer.Argument(help="Shopping item ID")],
) -> None:
    """Remove an item from the shopping list."""
    _report(_require(shopping_manager).remove_item(item_id))


@shopping_app.command("stats")
def shopping_stats() -> None:
    """Show shopping list counters."""
    try:
        stats = _require(shopping_manager).get_shopping_stats(household)
    except PantryError as e:
        _fail(e)

    formatter.output({"success": True, "data": {"shopping_stats": stats.model_dump(mode="json")}})


@shopping_app.command("search")
def shopping_search(
    term: Annotated[str, typer.Argument(help="Part of a product name")],
) -> None:
    """Find pantry products to put on the list."""
    try:
        found = _require(shopping_manager).search_products_for_shopping(household, term)
    except PantryError as e:
        _fail(e)

    formatter.output(
        {
            "success": True,
            "data": {
                "products": [p.model_dump(mode="json") for p in found],
                "title": f"Matching '{term}'",
                "total": len(found),
            },
        }
    )


@shopping_app.command("history")
def shopping_history(
    limit: Annotated[int, typer.Option("--limit", "-l", help="Items to show")] = 20,
) -> None:
    """Show recently purchased items."""
    try:
        items = _require(shopping_manager).get_purchase_history(household, limit)
    except PantryError as e:
        _fail(e)

    formatter.output(
        {
            "success": True,
            "data": {
                "shopping_list": [i.model_dump(mode="json") for i in items],
                "total": len(items),
            },
        }
    )


@shopping_app.command("sync")
def shopping_sync_command(
    product_id: Annotated[
        str | None, typer.Argument(help="Product ID (omit to sync the whole household)")
    ] = None,
) -> None:
    """Reconcile the shopping list with product stock."""
    sync = _require(shopping_sync)
    try:
        if product_id:
            outcome = sync.sync_product_with_shopping_list(product_id)
            formatter.output(
                {
                    "success": True,
                    "data": {
                        "sync": outcome.model_dump(mode="json"),
                        "shopping_item": (
                            outcome.item.model_dump(mode="json") if outcome.item else None
                        ),
                    },
                },
                f"Sync {outcome.action.value}",
            )
            return
        sweep = sync.sync_all_products_with_shopping_list(household)
    except PantryError as e:
        _fail(e)

    formatter.output({"success": True, "data": {"sweep": sweep.model_dump(mode="json")}})


if __name__ == "__main__":
    app()
