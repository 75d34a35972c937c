"""
Rate sets and rate-input validation.

A ``RateSet`` holds the five contract terms a node can carry.  Every field is
optional: ``None`` means "not set here, inherit from the parent", which is a
different thing from an explicit ``0``.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Optional

from backend.models import CamelModel, InvalidRateInput


class RateField(str, Enum):
    """The five contract terms, named after their ``RateSet`` attribute."""

    DISCOUNT_PCT = "discount_pct"
    REBATE_PCT = "rebate_pct"
    CONDITIONAL_REBATE_PCT = "conditional_rebate_pct"
    GROWTH_REBATE_PCT = "growth_rebate_pct"
    MONTHLY_QUANTITY_COMMITMENT = "monthly_quantity_commitment"

    @property
    def is_percentage(self) -> bool:
        return self is not RateField.MONTHLY_QUANTITY_COMMITMENT


# Order matters: it is the waterfall order.
RATE_FIELDS: tuple[RateField, ...] = tuple(RateField)

# RateSet attribute -> ContractLineItem attribute
LINE_ITEM_FIELDS: dict[RateField, str] = {
    RateField.DISCOUNT_PCT: "discount_percentage",
    RateField.REBATE_PCT: "rebate_percentage",
    RateField.CONDITIONAL_REBATE_PCT: "conditional_rebate",
    RateField.GROWTH_REBATE_PCT: "growth_rebate",
    RateField.MONTHLY_QUANTITY_COMMITMENT: "quantity_commitment",
}


class RateSet(CamelModel):
    """Explicit rates of one hierarchy node; ``None`` means unset."""

    discount_pct: Optional[float] = None
    rebate_pct: Optional[float] = None
    conditional_rebate_pct: Optional[float] = None
    growth_rebate_pct: Optional[float] = None
    monthly_quantity_commitment: Optional[float] = None

    def get(self, field: RateField) -> Optional[float]:
        return getattr(self, field.value)

    def is_empty(self) -> bool:
        """True when no field is set."""
        return all(self.get(f) is None for f in RATE_FIELDS)

    @classmethod
    def from_line_item(cls, line_item: Any) -> "RateSet":
        """Build a rate set from a saved contract line item."""
        return cls(
            **{
                f.value: getattr(line_item, LINE_ITEM_FIELDS[f])
                for f in RATE_FIELDS
            }
        )


def validate_rate(
    field: RateField,
    value: Any,
) -> tuple[Optional[float], Optional[InvalidRateInput]]:
    """Normalise one user-entered rate.

    Returns ``(number_or_None, None)`` when the input is acceptable, where
    ``None`` (or an empty string) means "clear the field".  Returns
    ``(None, rejection)`` otherwise; the caller must keep its prior value.
    """
    if value is None:
        return None, None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None, None
        try:
            number = float(text)
        except ValueError:
            return None, InvalidRateInput(
                field=field.value, value=value, reason="not a number"
            )
    elif isinstance(value, bool) or not isinstance(value, (int, float)):
        return None, InvalidRateInput(
            field=field.value, value=str(value), reason="not a number"
        )
    else:
        number = float(value)

    if not math.isfinite(number):
        return None, InvalidRateInput(
            field=field.value, value=str(value), reason="not a finite number"
        )
    if number < 0:
        return None, InvalidRateInput(
            field=field.value, value=number, reason="must not be negative"
        )
    if field.is_percentage and number > 100:
        return None, InvalidRateInput(
            field=field.value, value=number, reason="must be between 0 and 100"
        )
    return number, None
