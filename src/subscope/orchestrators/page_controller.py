"""Cache-then-fetch decision engine behind the subscriptions page."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Protocol

from subscope.adapters.clients.gateway import (
    GatewayError,
    GatewayResponseError,
    LinkTokenResponse,
    RetrieveResult,
)
from subscope.core.normalizer import StreamSelection, to_recurring_items
from subscope.core.state import (
    MISSING_IDENTITY_MESSAGE,
    NO_DATA_MESSAGE,
    RETRIEVE_ERROR_MESSAGE,
    DisplayState,
    Loading,
    Message,
    NeedsLink,
    Ready,
)
from subscope.models.recurring import RecurringItem
from subscope.orchestrators.logger import PageControllerLogger


class RetrieveGateway(Protocol):
    def retrieve(self, user_id: str) -> RetrieveResult: ...


class ItemCache(Protocol):
    def read(self, user_id: str) -> list[RecurringItem] | None: ...

    def write(self, user_id: str, items: Sequence[RecurringItem]) -> None: ...


class PageController:
    """Owns the display state for one user's subscriptions page.

    On activation a fresh cache entry short-circuits the network; otherwise
    the gateway is asked once for either a link token or recurring data.
    Also acts as the link-flow listener, so linked items land in the same
    state and cache.
    """

    def __init__(
        self,
        *,
        user_id: str | None,
        cache: ItemCache,
        gateway: RetrieveGateway,
        streams: StreamSelection = "both",
        log: PageControllerLogger | None = None,
    ) -> None:
        self._user_id = user_id
        self._cache = cache
        self._gateway = gateway
        self._streams = streams
        self._log = log or PageControllerLogger()
        self._state = DisplayState()
        self._activating = False
        self._disposed = False

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def state(self) -> DisplayState:
        return self._state

    async def activate(self) -> DisplayState:
        """Load items from cache, or from the gateway when the cache is stale."""
        if not self._user_id:
            self._log.identity_missing()
            self._state = DisplayState(status=Message(MISSING_IDENTITY_MESSAGE))
            return self._state
        if self._activating:
            self._log.activation_in_progress()
            return self._state

        cached = self._cache.read(self._user_id)
        if cached:
            self._log.cache_hit(len(cached))
            self._state = DisplayState(status=Ready(), items=tuple(cached))
            return self._state

        self._log.cache_miss()
        self._activating = True
        self._state = self._state.with_status(Loading())
        try:
            result = await self._retrieve(self._user_id)
        finally:
            self._activating = False

        if self._disposed:
            self._log.response_discarded()
            return self._state

        if isinstance(result, Message):
            self._state = self._state.with_status(result)
        elif isinstance(result, LinkTokenResponse):
            self._log.retrieve_link_token(result.link_token)
            # Keep whatever items are already shown.
            self._state = self._state.with_status(NeedsLink(result.link_token))
        else:
            items = to_recurring_items(result.data, streams=self._streams)
            self._log.retrieve_items(len(items))
            self._cache.write(self._user_id, items)
            self._state = self._state.with_items(items)
        return self._state

    def on_link_items(self, items: list[RecurringItem]) -> None:
        """Adopt items delivered by a successful bank link."""
        if self._disposed:
            self._log.response_discarded()
            return
        if not self._user_id:
            return
        self._log.link_items(len(items))
        self._cache.write(self._user_id, items)
        self._state = self._state.with_items(items)

    def on_link_error(self, message: str) -> None:
        """Surface a failed bank link without dropping displayed items."""
        if self._disposed:
            self._log.response_discarded()
            return
        self._log.link_error(message)
        self._state = self._state.with_status(Message(message))

    def dispose(self) -> None:
        """Detach the controller; responses arriving later are ignored."""
        self._disposed = True

    async def _retrieve(self, user_id: str) -> RetrieveResult | Message:
        try:
            return await asyncio.to_thread(self._gateway.retrieve, user_id)
        except GatewayResponseError as e:
            self._log.retrieve_unexpected(e)
            return Message(NO_DATA_MESSAGE)
        except GatewayError as e:
            self._log.retrieve_failed(e)
            return Message(RETRIEVE_ERROR_MESSAGE)
