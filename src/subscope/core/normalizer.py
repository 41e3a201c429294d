"""Normalize raw recurring-stream payloads into display-ready items.

The aggregator returns two loosely-typed lists, ``inflow_streams`` and
``outflow_streams``. Only active streams are kept, each is projected onto
``RecurringItem``, and the result is ordered by the next predicted charge.
"""

from __future__ import annotations

from collections.abc import Mapping
import math
from typing import Any, Literal

from subscope.models.recurring import (
    AverageAmount,
    PersonalFinanceCategory,
    RecurringItem,
)

StreamSelection = Literal["both", "outflow"]

INFLOW_KEY = "inflow_streams"
OUTFLOW_KEY = "outflow_streams"


def to_recurring_items(
    payload: Any,
    *,
    streams: StreamSelection = "both",
) -> list[RecurringItem]:
    """Project the active streams of ``payload`` onto sorted recurring items.

    Never raises on malformed input: anything that is not a mapping of stream
    lists yields an empty list.

    Args:
        payload: Raw ``recurring_data`` payload from the gateway.
        streams: ``"both"`` merges inflow then outflow streams; ``"outflow"``
            considers outflow streams only.

    Returns:
        Items sorted ascending by ``predicted_next_date`` with undated items
        last, in input order among equal keys.
    """
    if not isinstance(payload, Mapping):
        return []

    keys = (INFLOW_KEY, OUTFLOW_KEY) if streams == "both" else (OUTFLOW_KEY,)
    items = [
        _pick_fields(stream)
        for key in keys
        for stream in _stream_list(payload.get(key))
        if stream.get("is_active")
    ]
    return sort_by_next_date(items)


def sort_by_next_date(items: list[RecurringItem]) -> list[RecurringItem]:
    """Stable sort by ISO next date; items without one go last."""
    return sorted(
        items,
        key=lambda item: (
            item.predicted_next_date is None,
            item.predicted_next_date or "",
        ),
    )


def _stream_list(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [stream for stream in value if isinstance(stream, Mapping)]


def _pick_fields(stream: Mapping[str, Any]) -> RecurringItem:
    account_id = stream.get("account_id")
    return RecurringItem(
        account_id=str(account_id) if account_id is not None else None,
        description=_description(stream),
        average_amount=AverageAmount(amount=_amount(stream)),
        frequency=_optional_str(stream.get("frequency")),
        personal_finance_category=PersonalFinanceCategory(
            detailed=_optional_str(
                _nested(stream.get("personal_finance_category"), "detailed")
            )
        ),
        predicted_next_date=_optional_str(stream.get("predicted_next_date")),
        last_date=_optional_str(stream.get("last_date")),
    )


def _amount(stream: Mapping[str, Any]) -> float:
    # average_amount wins even when it is zero; last_amount only fills a gap
    raw = _nested(stream.get("average_amount"), "amount")
    if raw is None:
        raw = _nested(stream.get("last_amount"), "amount")
    return _to_number(raw)


def _to_number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _description(stream: Mapping[str, Any]) -> str:
    merchant_name = stream.get("merchant_name")
    if isinstance(merchant_name, str) and merchant_name.strip():
        return merchant_name
    description = stream.get("description")
    return description if isinstance(description, str) else ""


def _nested(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(key)
    return None


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
