"""Output formatting for CLI and programmatic use."""

import json
from datetime import date, datetime, time
from enum import Enum
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

STATUS_STYLE = {"available": "green", "low": "yellow", "out": "red"}
PRIORITY_STYLE = {"high": "red", "medium": "yellow", "low": "dim"}


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for output."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, time):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def _status(value: str | None) -> str:
    if not value:
        return "-"
    style = STATUS_STYLE.get(value, "white")
    return f"[{style}]{value}[/{style}]"


def _qty(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class OutputFormatter:
    """Formats output for both Rich terminal and JSON modes."""

    def __init__(self, json_mode: bool = False):
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode
        self.console = Console()

    def output(self, data: dict[str, Any], message: str = "") -> None:
        """Output data in appropriate format.

        Args:
            data: Data to output
            message: Optional message for Rich mode
        """
        if self.json_mode:
            self._output_json(data)
        else:
            self._output_rich(data, message)

    def _output_json(self, data: dict[str, Any]) -> None:
        """Output as JSON to stdout."""
        print(json.dumps(data, cls=JSONEncoder, indent=2))

    def _output_rich(self, data: dict[str, Any], message: str) -> None:
        """Output with Rich formatting."""
        if message:
            self.console.print(f"[green]✓[/green] {message}")

        payload = data.get("data", {})
        if "shopping_list" in payload:
            self._render_shopping_list(data)
        elif "products" in payload:
            self._render_products(data)
        elif "history" in payload:
            self._render_history(data)
        elif "predictions" in payload:
            self._render_predictions(data)
        elif "prediction" in payload:
            self._render_prediction(data)
        elif "parsed" in payload:
            self._render_parsed(data)
        elif "shopping_stats" in payload:
            self._render_shopping_stats(data)
        elif "sweep" in payload:
            self._render_sweep(data)
        elif "product" in payload:
            self._render_product(data)
        elif payload.get("shopping_item"):
            self._render_shopping_item(data)

    def _render_products(self, data: dict) -> None:
        """Render product inventory table."""
        products = data["data"]["products"]
        title = data["data"].get("title", "Pantry")

        if not products:
            self.console.print("[dim]No products[/dim]")
            return

        table = Table(title=title, show_header=True, header_style="bold cyan")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Product", style="cyan")
        table.add_column("Qty", justify="right")
        table.add_column("Unit")
        table.add_column("Category", style="yellow")
        table.add_column("Status")
        table.add_column("Expires", style="red")

        for product in products:
            table.add_row(
                product["id"][:8],
                product["name"],
                f"{_qty(product['quantity_current'])}/{_qty(product['quantity_total'])}",
                product.get("unit", "count"),
                product.get("category", "other"),
                _status(product.get("status")),
                product.get("expiration_date") or "-",
            )

        self.console.print(table)
        self.console.print(f"\nTotal products: {len(products)}")

    def _render_product(self, data: dict) -> None:
        """Render a single product."""
        product = data["data"]["product"]

        content = f"""[bold]{product["name"]}[/bold]

ID: {product["id"]}
Quantity: {_qty(product["quantity_current"])} / {_qty(product["quantity_total"])} {product.get("unit", "")}
Category: {product.get("category", "other")}
Status: {_status(product.get("status"))}
Low stock below: {product.get("low_stock_threshold", 0.2):.0%}"""

        if product.get("last_opened_at"):
            content += f"\nOpened: {product['last_opened_at']}"
        if product.get("expiration_date"):
            content += f"\nExpires: {product['expiration_date']}"
        if product.get("notes"):
            content += f"\nNotes: {product['notes']}"

        self.console.print(Panel(content, title="Product", border_style="green"))

        if data["data"].get("shopping_item"):
            self._render_shopping_item(data)

    def _render_shopping_item(self, data: dict) -> None:
        """Render a single shopping list item."""
        item = data["data"]["shopping_item"]
        priority = item.get("priority", "low")
        style = PRIORITY_STYLE.get(priority, "white")
        self.console.print(
            f"  [{style}]●[/{style}] {item['product_name']}: "
            f"{_qty(item.get('quantity', 1))} {item.get('unit', '')} ({item.get('reason', 'manual')})"
        )

    def _render_shopping_list(self, data: dict) -> None:
        """Render shopping list with Rich."""
        items = data["data"]["shopping_list"]

        if not items:
            self.console.print("[dim]Shopping list is empty[/dim]")
            return

        table = Table(title="Shopping List", show_header=True, header_style="bold cyan")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Item", style="cyan")
        table.add_column("Qty", justify="right", style="magenta")
        table.add_column("Reason")
        table.add_column("Priority")
        table.add_column("Done")

        for item in items:
            priority = item.get("priority", "low")
            style = PRIORITY_STYLE.get(priority, "white")
            table.add_row(
                item["id"][:8],
                item["product_name"],
                f"{_qty(item.get('quantity', 1))} {item.get('unit', '')}",
                item.get("reason", "manual"),
                f"[{style}]{priority}[/{style}]",
                "[green]✓[/green]" if item.get("checked") else "○",
            )

        self.console.print(table)
        self.console.print(f"\nTotal items: {len(items)}")

    def _render_shopping_stats(self, data: dict) -> None:
        """Render shopping list counters."""
        stats = data["data"]["shopping_stats"]

        self.console.print("\n[bold]Shopping List Stats[/bold]")
        self.console.print(
            f"Pending: {stats['pending']}  Purchased: {stats['purchased']}  Total: {stats['total']}"
        )
        self.console.print(
            f"[red]High: {stats['high_priority']}[/red]  "
            f"[yellow]Medium: {stats['medium_priority']}[/yellow]  "
            f"[dim]Low: {stats['low_priority']}[/dim]"
        )
        self.console.print(
            f"Out of stock: {stats['out_of_stock_items']}  "
            f"Low stock: {stats['low_stock_items']}  Manual: {stats['manual_items']}"
        )

    def _render_sweep(self, data: dict) -> None:
        """Render reconciliation sweep results."""
        sweep = data["data"]["sweep"]

        self.console.print("\n[bold]Shopping List Sync[/bold]")
        self.console.print(f"Products processed: {sweep['products_processed']}")
        self.console.print(f"Items created: {sweep['items_created']}")
        self.console.print(f"Items escalated: {sweep['items_updated']}")
        self.console.print(f"Items removed: {sweep['items_removed']}")
        for failure in sweep.get("failures", []):
            self.console.print(f"  [red]✗[/red] {failure}")

    def _render_history(self, data: dict) -> None:
        """Render a product's consumption summary."""
        history = data["data"]["history"]

        self.console.print(
            f"\n[bold]Consumption History[/bold] (last {history['window_months']} months)"
        )
        self.console.print(
            f"Logs: {history['total_logs']}  Cycles: {history['total_cycles']}  "
            f"Consumed: {_qty(history['total_consumed'])}"
        )
        self.console.print(
            f"Daily rate: {history['daily_rate']}  "
            f"Avg cycle: {history['average_cycle_duration']} days"
        )

        if not history["logs"]:
            self.console.print("[dim]No log entries[/dim]")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("When")
        table.add_column("Action")
        table.add_column("Qty", justify="right")
        table.add_column("Days", justify="right")

        for log in history["logs"]:
            table.add_row(
                log["created_at"][:16].replace("T", " "),
                log["action_type"],
                _qty(log["quantity"]),
                str(log["duration_days"]) if log.get("duration_days") is not None else "-",
            )

        self.console.print(table)

    def _render_prediction(self, data: dict) -> None:
        """Render a single forecast."""
        p = data["data"]["prediction"]

        content = f"""[bold]{p["product_name"]}[/bold]

Status: {_status(p.get("status"))}
Days left: {p["estimated_days_left"]}
Finish date: {p.get("estimated_finish_date") or "-"}
Daily rate: {p["daily_consumption_rate"]}
Buy next: {p["recommended_purchase_quantity"]} {p.get("unit", "")}
Confidence: {p["confidence"]}
Data quality: {p["data_quality"]}"""

        for insight in p.get("insights", []):
            content += f"\n  - {insight}"
        if p.get("notes"):
            content += f"\n[dim]{p['notes']}[/dim]"

        title = "Forecast (enhanced)" if p.get("ai_enhanced") else "Forecast"
        self.console.print(Panel(content, title=title, border_style="blue"))

    def _render_predictions(self, data: dict) -> None:
        """Render a batch of forecasts."""
        predictions = data["data"]["predictions"]

        if not predictions:
            self.console.print("[dim]No products to analyze[/dim]")
            return

        table = Table(title="Forecasts", show_header=True, header_style="bold cyan")
        table.add_column("Product", style="cyan")
        table.add_column("Status")
        table.add_column("Days left", justify="right")
        table.add_column("Rate/day", justify="right")
        table.add_column("Buy", justify="right")
        table.add_column("Confidence")

        for p in predictions:
            days = p["estimated_days_left"]
            style = "red" if days <= 3 else "yellow" if days <= 7 else "green"
            table.add_row(
                p["product_name"],
                _status(p.get("status")),
                f"[{style}]{days}[/{style}]",
                str(p["daily_consumption_rate"]),
                str(p["recommended_purchase_quantity"]),
                p["confidence"],
            )

        self.console.print(table)

        stats = data["data"].get("stats")
        if stats:
            self.console.print(
                f"\nUrgent: {stats['urgent']}  Warning: {stats['warning']}  "
                f"Coverage: {stats['coverage']}%"
            )

    def _render_parsed(self, data: dict) -> None:
        """Render a parsed product guess."""
        parsed = data["data"]["parsed"]
        source = "local parser" if parsed.get("from_fallback") else "completion service"
        self.console.print(
            f"  {parsed['name']}: {_qty(parsed['quantity'])} {parsed['unit']}, "
            f"{parsed['category']} [dim]({source})[/dim]"
        )
        if parsed.get("expiration_date"):
            self.console.print(f"  Expires: {parsed['expiration_date']}")

    def error(
        self,
        message: str,
        error_code: str | None = None,
        validation_errors: list[str] | None = None,
    ) -> None:
        """Output error message.

        Args:
            message: Error message
            error_code: Optional error code
            validation_errors: Optional per-field messages
        """
        if self.json_mode:
            output: dict[str, Any] = {"success": False, "error": message}
            if error_code:
                output["error_code"] = error_code
            if validation_errors:
                output["validation_errors"] = validation_errors
            print(json.dumps(output))
        else:
            self.console.print(f"[red]✗ Error:[/red] {message}")
            for problem in validation_errors or []:
                self.console.print(f"  [red]-[/red] {problem}")

    def success(self, message: str, data: dict | None = None) -> None:
        """Output success message.

        Args:
            message: Success message
            data: Optional data to include
        """
        if self.json_mode:
            output: dict[str, Any] = {"success": True, "message": message}
            if data:
                output["data"] = data
            print(json.dumps(output, cls=JSONEncoder))
        else:
            self.console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        """Output warning message.

        Args:
            message: Warning message
        """
        if self.json_mode:
            print(json.dumps({"warning": message}))
        else:
            self.console.print(f"[yellow]⚠[/yellow] {message}")
