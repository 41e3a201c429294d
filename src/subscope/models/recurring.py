"""Display-ready recurring items derived from aggregator streams."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Self

from pydantic import BaseModel, Field


class RecurringBaseModel(BaseModel):
    """Shared base for recurring models with a short parse alias."""

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)


class AverageAmount(RecurringBaseModel):
    amount: float = 0.0


class PersonalFinanceCategory(RecurringBaseModel):
    detailed: str | None = None


class RecurringItem(RecurringBaseModel):
    """Normalized projection of one active recurring stream.

    The JSON dump of this model is the item shape persisted in the local cache,
    so field names follow the aggregator's naming.
    """

    account_id: str | None = None
    description: str = ""
    average_amount: AverageAmount = Field(default_factory=AverageAmount)
    frequency: str | None = None
    personal_finance_category: PersonalFinanceCategory = Field(
        default_factory=PersonalFinanceCategory
    )
    predicted_next_date: str | None = None
    last_date: str | None = None

    @property
    def amount(self) -> float:
        return self.average_amount.amount

    @property
    def category(self) -> str | None:
        return self.personal_finance_category.detailed

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def items_to_json(items: Sequence[RecurringItem]) -> list[dict[str, Any]]:
    """Serialize items into plain JSON-compatible dicts."""
    return [item.to_json() for item in items]


def items_from_json(raw: list[Any]) -> list[RecurringItem]:
    """Parse stored item dicts back into models.

    Raises:
        pydantic.ValidationError: If any entry has the wrong shape.
    """
    return [RecurringItem.parse(entry) for entry in raw]
