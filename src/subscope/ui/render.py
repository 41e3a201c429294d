"""Terminal rendering of the subscriptions view."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
import os

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from subscope.core.state import DisplayState, ItemsView, Loading, Message, NeedsLink
from subscope.models.recurring import RecurringItem

DEFAULT_DESCRIPTION = "Subscription"
MISSING_VALUE = "—"


def format_amount(amount: float | None) -> str:
    """Format as positive USD; outflows are stored signed."""
    return f"${abs(amount or 0.0):,.2f}"


def humanize_category(code: str | None) -> str:
    """``FOOD_AND_DRINK_RESTAURANT`` -> ``Food and Drink Restaurant``."""
    if not code:
        return MISSING_VALUE
    words = [word[:1].upper() + word[1:].lower() for word in code.split("_") if word]
    return " ".join("and" if word == "And" else word for word in words)


def frequency_text(frequency: str | None) -> str:
    if not frequency:
        return "Unknown"
    return humanize_category(frequency)


def short_date(value: str | None) -> str:
    """``2025-09-14`` -> ``Sep 14``; unparseable dates are shown as given."""
    if not value:
        return MISSING_VALUE
    try:
        parsed = date.fromisoformat(value[:10])
    except ValueError:
        return value
    return f"{parsed:%b} {parsed.day}"


def display_description(item: RecurringItem) -> str:
    return item.description.strip() or DEFAULT_DESCRIPTION


def build_items_table(items: Sequence[RecurringItem]) -> Table:
    table = Table(title="Recurring charges", show_lines=False)
    table.add_column("Merchant", style="bold")
    table.add_column("Amount", justify="right")
    table.add_column("Frequency")
    table.add_column("Next charge")
    table.add_column("Last charge")
    table.add_column("Category")

    for item in items:
        table.add_row(
            escape(display_description(item)),
            format_amount(item.amount),
            frequency_text(item.frequency),
            short_date(item.predicted_next_date),
            short_date(item.last_date),
            humanize_category(item.category),
        )
    return table


class SubscriptionsRenderer:
    """Prints the resolved view of a DisplayState to the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(no_color=bool(os.getenv("NO_COLOR")))

    def render(self, state: DisplayState) -> None:
        view = state.view()
        if isinstance(view, Loading):
            self._console.print("[dim]Loading...[/dim]")
        elif isinstance(view, ItemsView):
            self._console.print(build_items_table(view.items))
            # A failed refresh still leaves the previous list on screen.
            if isinstance(state.status, Message):
                self._console.print(f"[yellow]{escape(state.status.text)}[/yellow]")
        elif isinstance(view, NeedsLink):
            self._console.print(
                "Connect your bank to scan recent transactions for recurring "
                "charges and subscriptions."
            )
        else:
            self._console.print(f"[bold]{escape(view.text)}[/bold]")
