"""Drive the bank-linking flow and exchange its one-time credential."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from subscope.adapters.clients.gateway import (
    GatewayError,
    PublicTokenReusedError,
    RecurringDataResponse,
)
from subscope.adapters.clients.plaid_link import LinkFlowError
from subscope.core.normalizer import StreamSelection, to_recurring_items
from subscope.core.state import (
    EXCHANGE_ERROR_MESSAGE,
    LINK_UNAVAILABLE_MESSAGE,
    TOKEN_REUSED_MESSAGE,
)
from subscope.models.recurring import RecurringItem
from subscope.orchestrators.logger import LinkFlowLogger

# Given a link token, runs the external widget and returns a public token.
PublicTokenSource = Callable[[str], str]


class ExchangeGateway(Protocol):
    def exchange(self, user_id: str, public_token: str) -> RecurringDataResponse: ...


class LinkListener(Protocol):
    """Receives the result of a completed link flow."""

    def on_link_items(self, items: list[RecurringItem]) -> None: ...

    def on_link_error(self, message: str) -> None: ...


@dataclass(frozen=True, slots=True)
class LinkSucceeded:
    items: tuple[RecurringItem, ...]


@dataclass(frozen=True, slots=True)
class LinkFailed:
    message: str


@dataclass(frozen=True, slots=True)
class LinkSkipped:
    reason: str


LinkOutcome = LinkSucceeded | LinkFailed | LinkSkipped


class LinkFlowOrchestrator:
    """Runs Plaid Link for a user and exchanges the resulting public token.

    Each public token is submitted at most once, and no second exchange starts
    while one is in flight.
    """

    def __init__(
        self,
        *,
        gateway: ExchangeGateway,
        public_token_source: PublicTokenSource,
        listener: LinkListener | None = None,
        streams: StreamSelection = "both",
        log: LinkFlowLogger | None = None,
    ) -> None:
        self._gateway = gateway
        self._public_token_source = public_token_source
        self._listener = listener
        self._streams = streams
        self._log = log or LinkFlowLogger()
        self._submitted: set[str] = set()
        self._in_flight = False

    async def run(self, *, user_id: str, link_token: str) -> LinkOutcome:
        """Open the linking widget with ``link_token`` and exchange its result."""
        self._log.waiting_for_public_token(link_token)
        try:
            public_token = await asyncio.to_thread(
                self._public_token_source, link_token
            )
        except LinkFlowError as e:
            self._log.public_token_unavailable(e)
            return self._fail(LINK_UNAVAILABLE_MESSAGE)
        return await self.submit_public_token(
            user_id=user_id, public_token=public_token
        )

    async def submit_public_token(
        self, *, user_id: str, public_token: str
    ) -> LinkOutcome:
        """Exchange ``public_token`` for recurring items, at most once."""
        # Checked and recorded before the first await, so concurrent callers
        # on the same loop cannot both pass.
        if self._in_flight:
            return self._skip("an exchange is already in flight")
        if public_token in self._submitted:
            return self._skip("public token was already submitted")
        self._submitted.add(public_token)
        self._in_flight = True

        self._log.exchange_started(public_token)
        try:
            response = await asyncio.to_thread(
                self._gateway.exchange, user_id, public_token
            )
        except PublicTokenReusedError as e:
            self._log.token_reused(e)
            return self._fail(TOKEN_REUSED_MESSAGE)
        except GatewayError as e:
            self._log.exchange_failed(e)
            return self._fail(EXCHANGE_ERROR_MESSAGE)
        finally:
            self._in_flight = False

        items = to_recurring_items(response.data, streams=self._streams)
        self._log.exchange_succeeded(len(items))
        if self._listener is not None:
            self._listener.on_link_items(items)
        return LinkSucceeded(items=tuple(items))

    def _fail(self, message: str) -> LinkFailed:
        if self._listener is not None:
            self._listener.on_link_error(message)
        return LinkFailed(message=message)

    def _skip(self, reason: str) -> LinkSkipped:
        self._log.exchange_skipped(reason)
        return LinkSkipped(reason=reason)
