"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
import threading
from typing import Any

from pydantic import ValidationError
import pytest

from subscope.adapters.cache.recurring_cache import RecurringCache
from subscope.adapters.clients.gateway import (
    GatewayEnvelope,
    GatewayResponseError,
    RecurringDataResponse,
    RetrieveResult,
)
from subscope.adapters.storage.slot_store import JsonSlotStore
from subscope.models.recurring import RecurringItem

TTL_SECONDS = 12 * 60 * 60


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, now: float = 1_750_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """In-memory stand-in for RecurringGatewayClient.

    ``retrieve_response`` / ``exchange_response`` take the raw JSON envelope
    the remote side would send; exceptions are raised as-is. ``release`` lets
    a test hold a call open until it decides to finish it.
    """

    def __init__(self) -> None:
        self.retrieve_response: dict[str, Any] | Exception | None = None
        self.exchange_response: dict[str, Any] | Exception | None = None
        self.retrieve_calls: list[str] = []
        self.exchange_calls: list[tuple[str, str]] = []
        self.release: threading.Event | None = None

    def retrieve(self, user_id: str) -> RetrieveResult:
        self.retrieve_calls.append(user_id)
        return self._respond(self.retrieve_response).response_object

    def exchange(self, user_id: str, public_token: str) -> RecurringDataResponse:
        self.exchange_calls.append((user_id, public_token))
        result = self._respond(self.exchange_response).response_object
        assert isinstance(result, RecurringDataResponse)
        return result

    def _respond(
        self, response: dict[str, Any] | Exception | None
    ) -> GatewayEnvelope:
        if self.release is not None:
            self.release.wait(timeout=5)
        if isinstance(response, Exception):
            raise response
        try:
            return GatewayEnvelope.parse(response)
        except ValidationError as e:
            raise GatewayResponseError("Unexpected gateway response shape") from e


class MemoryCache:
    """Dict-backed cache honoring the RecurringCache read/write contract."""

    def __init__(self) -> None:
        self.entries: dict[str, list[RecurringItem]] = {}
        self.writes: list[tuple[str, list[RecurringItem]]] = []

    def read(self, user_id: str) -> list[RecurringItem] | None:
        return self.entries.get(user_id)

    def write(self, user_id: str, items: Sequence[RecurringItem]) -> None:
        self.entries[user_id] = list(items)
        self.writes.append((user_id, list(items)))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def slot_store(tmp_path: Path) -> JsonSlotStore:
    return JsonSlotStore(tmp_path / "cache")


@pytest.fixture
def recurring_cache(slot_store: JsonSlotStore, clock: FakeClock) -> RecurringCache:
    return RecurringCache(slot_store, ttl_seconds=TTL_SECONDS, clock=clock)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def spotify_stream() -> dict[str, Any]:
    return {
        "account_id": "a1",
        "is_active": True,
        "merchant_name": "Spotify",
        "description": "SPOTIFY USA",
        "average_amount": {"amount": 9.99},
        "frequency": "MONTHLY",
        "predicted_next_date": "2025-09-14",
        "last_date": "2025-08-14",
        "personal_finance_category": {
            "detailed": "ENTERTAINMENT_TV_AND_MOVIES",
        },
    }


@pytest.fixture
def spotify_item() -> RecurringItem:
    return RecurringItem.parse(
        {
            "account_id": "a1",
            "description": "Spotify",
            "average_amount": {"amount": 9.99},
            "frequency": "MONTHLY",
            "personal_finance_category": {
                "detailed": "ENTERTAINMENT_TV_AND_MOVIES",
            },
            "predicted_next_date": "2025-09-14",
            "last_date": "2025-08-14",
        }
    )
