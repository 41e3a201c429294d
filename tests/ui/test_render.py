"""Tests for terminal rendering of the subscriptions view."""

from __future__ import annotations

import pytest
from rich.console import Console

from subscope.core.state import (
    EXCHANGE_ERROR_MESSAGE,
    MISSING_IDENTITY_MESSAGE,
    DisplayState,
    Message,
    NeedsLink,
)
from subscope.models.recurring import RecurringItem
from subscope.ui.render import (
    SubscriptionsRenderer,
    display_description,
    format_amount,
    frequency_text,
    humanize_category,
    short_date,
)


def _render(state: DisplayState) -> str:
    console = Console(record=True, width=120, color_system=None)
    SubscriptionsRenderer(console).render(state)
    return console.export_text()


class TestFormatting:
    @pytest.mark.parametrize(
        ("amount", "expected"),
        [(9.99, "$9.99"), (-15.5, "$15.50"), (1234.5, "$1,234.50"), (None, "$0.00")],
    )
    def test_format_amount(self, amount: float | None, expected: str) -> None:
        assert format_amount(amount) == expected

    def test_humanize_category(self) -> None:
        assert (
            humanize_category("ENTERTAINMENT_TV_AND_MOVIES")
            == "Entertainment Tv and Movies"
        )
        assert humanize_category(None) == "—"

    def test_frequency_text(self) -> None:
        assert frequency_text("SEMI_MONTHLY") == "Semi Monthly"
        assert frequency_text(None) == "Unknown"

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("2025-09-14", "Sep 14"), ("2025-01-05", "Jan 5"), ("soon", "soon"), (None, "—")],
    )
    def test_short_date(self, value: str | None, expected: str) -> None:
        assert short_date(value) == expected

    def test_blank_description_uses_default(self) -> None:
        assert display_description(RecurringItem(description="  ")) == "Subscription"


class TestSubscriptionsRenderer:
    def test_loading(self) -> None:
        assert "Loading..." in _render(DisplayState())

    def test_items_table(self, spotify_item: RecurringItem) -> None:
        output = _render(DisplayState().with_items([spotify_item]))

        assert "Spotify" in output
        assert "$9.99" in output
        assert "Sep 14" in output
        assert "Monthly" in output

    def test_items_with_failed_refresh_show_both(
        self, spotify_item: RecurringItem
    ) -> None:
        state = (
            DisplayState()
            .with_items([spotify_item])
            .with_status(Message(EXCHANGE_ERROR_MESSAGE))
        )

        output = _render(state)

        assert "Spotify" in output
        assert EXCHANGE_ERROR_MESSAGE in output

    def test_needs_link_prompt(self) -> None:
        output = _render(DisplayState().with_status(NeedsLink("tok1")))

        assert "Connect your bank" in output
        assert "tok1" not in output

    def test_message(self) -> None:
        output = _render(DisplayState().with_status(Message(MISSING_IDENTITY_MESSAGE)))

        assert MISSING_IDENTITY_MESSAGE in output

    def test_markup_in_description_is_printed_literally(self) -> None:
        item = RecurringItem(description="[bold]Gym[/bold]")

        output = _render(DisplayState().with_items([item]))

        assert "[bold]Gym[/bold]" in output
