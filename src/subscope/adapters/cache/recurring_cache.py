"""Per-user cache of normalized recurring items with a fixed TTL."""

from __future__ import annotations

from collections.abc import Callable, Sequence
import time
from typing import Any

from loguru import logger
from pydantic import ValidationError

from subscope.adapters.storage.slot_store import JsonSlotStore, slot_name
from subscope.models.recurring import RecurringItem, items_from_json, items_to_json

CACHE_NAMESPACE = "recurring_cache_v1"


def cache_key(user_id: str) -> str:
    """Logical slot key for a user: a fixed prefix followed by the identity."""
    return f"{CACHE_NAMESPACE}:{user_id}"


class RecurringCache:
    """Single timestamped slot per user, stored as ``{"ts": ms, "items": [...]}``.

    Reads and writes never raise: any storage or shape problem is a miss on
    read and a no-op on write.
    """

    def __init__(
        self,
        store: JsonSlotStore,
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._ttl_ms = ttl_seconds * 1000
        self._clock = clock

    def read(self, user_id: str) -> list[RecurringItem] | None:
        """Return fresh cached items for ``user_id``, or None on a miss."""
        try:
            raw = self._store.load(CACHE_NAMESPACE, self._slot(user_id))
        except (OSError, ValueError) as exc:
            logger.debug("Recurring cache read failed: {}", exc)
            return None
        if raw is None:
            return None

        entry = self._validated_entry(raw)
        if entry is None:
            logger.debug("Recurring cache entry has an invalid shape; ignoring")
            return None

        ts, items = entry
        if self._now_ms() - ts > self._ttl_ms:
            logger.debug("Recurring cache entry expired")
            return None
        return items

    def write(self, user_id: str, items: Sequence[RecurringItem]) -> None:
        """Overwrite the user's slot with ``items`` stamped with the current time."""
        value = {"ts": self._now_ms(), "items": items_to_json(items)}
        try:
            self._store.save(CACHE_NAMESPACE, self._slot(user_id), value)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Recurring cache write failed: {}", exc)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @staticmethod
    def _slot(user_id: str) -> str:
        # Hashing keeps distinct identities on distinct, path-safe file names.
        return slot_name(cache_key(user_id))

    @staticmethod
    def _validated_entry(raw: Any) -> tuple[float, list[RecurringItem]] | None:
        if not isinstance(raw, dict):
            return None
        ts = raw.get("ts")
        items = raw.get("items")
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            return None
        if not isinstance(items, list):
            return None
        try:
            return float(ts), items_from_json(items)
        except ValidationError:
            return None
