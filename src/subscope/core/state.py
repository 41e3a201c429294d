"""Display state owned by the page controller."""

from __future__ import annotations

from dataclasses import dataclass, replace

from subscope.models.recurring import RecurringItem

MISSING_IDENTITY_MESSAGE = "Missing user_id."
NO_ITEMS_MESSAGE = "No recurring transactions found."
NO_DATA_MESSAGE = "No data returned."
RETRIEVE_ERROR_MESSAGE = "Error retrieving data. Please try again."
EXCHANGE_ERROR_MESSAGE = "There was an error retrieving recurring transactions."
TOKEN_REUSED_MESSAGE = "This bank connection was already used. Please connect again."
LINK_UNAVAILABLE_MESSAGE = "Couldn't complete the bank connection. Please try again."
IDLE_MESSAGE = "Ready."


@dataclass(frozen=True, slots=True)
class Loading:
    pass


@dataclass(frozen=True, slots=True)
class Ready:
    pass


@dataclass(frozen=True, slots=True)
class NeedsLink:
    link_token: str


@dataclass(frozen=True, slots=True)
class Message:
    text: str


Status = Loading | Ready | NeedsLink | Message


@dataclass(frozen=True, slots=True)
class ItemsView:
    items: tuple[RecurringItem, ...]


View = Loading | ItemsView | NeedsLink | Message


@dataclass(frozen=True, slots=True)
class DisplayState:
    """What the user currently sees.

    ``status`` is exactly one variant. ``items`` survives status changes so a
    previously shown list stays visible while a link token or an error
    arrives.
    """

    status: Status = Loading()
    items: tuple[RecurringItem, ...] = ()

    def with_status(self, status: Status) -> DisplayState:
        return replace(self, status=status)

    def with_items(
        self, items: list[RecurringItem] | tuple[RecurringItem, ...]
    ) -> DisplayState:
        items = tuple(items)
        status: Status = Ready() if items else Message(NO_ITEMS_MESSAGE)
        return DisplayState(status=status, items=items)

    @property
    def link_token(self) -> str | None:
        if isinstance(self.status, NeedsLink):
            return self.status.link_token
        return None

    def view(self) -> View:
        """Resolve what to render: items, then link token, then message."""
        if isinstance(self.status, Loading):
            return self.status
        if self.items:
            return ItemsView(items=self.items)
        if isinstance(self.status, NeedsLink):
            return self.status
        if isinstance(self.status, Message):
            return self.status
        return Message(IDLE_MESSAGE)
