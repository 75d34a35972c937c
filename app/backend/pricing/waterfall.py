"""
Waterfall pricing calculator.

Applies the contract rates to an item's list price in a fixed order::

    list price -> discount -> rebate -> conditional rebate -> growth rebate

and derives the margins and monthly revenue figures shown next to every item.
The *contract* margin stops before the growth rebate: growth rebates are a
volume incentive paid after the fact and do not enter margin approval.  The
*growth* margin includes it and is reported as the worst case.

Everything here is a pure function of its inputs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Protocol

from backend.models import PricingResult, PricingRollup
from backend.pricing.rates import RateField
from backend.utils.config import MARGIN_SUCCESS_PCT, MARGIN_WARNING_PCT

if TYPE_CHECKING:
    from backend.pricing.tree import EffectiveRate, HierarchyNode, RateTree

logger = logging.getLogger(__name__)


class PricedItem(Protocol):
    """Anything carrying the catalog attributes the waterfall reads."""

    list_price: float
    cost: float
    eaches_per_unit_of_measure: float


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _fraction(effective: "EffectiveRate", field: RateField) -> float:
    """Return a percentage rate as a fraction, clamped to [0, 1]."""
    value = effective.get(field)
    if value < 0 or value > 100:
        logger.warning("%s=%s outside [0, 100]; clamping", field.value, value)
        value = min(max(value, 0.0), 100.0)
    return value / 100.0


def _margin(price: float, cost: float) -> float:
    """(price - cost) / price, or 0 when the price is not positive."""
    return (price - cost) / price if price > 0 else 0.0


def margin_band(margin: float) -> str:
    """Colour band for a margin fraction: success, warning or error."""
    pct = margin * 100.0
    if pct >= MARGIN_SUCCESS_PCT:
        return "success"
    if pct >= MARGIN_WARNING_PCT:
        return "warning"
    return "error"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def compute(item: PricedItem, effective: "EffectiveRate") -> PricingResult:
    """Compute the full waterfall for one item and its resolved rates."""
    list_price = item.list_price
    cost = item.cost

    discount = _fraction(effective, RateField.DISCOUNT_PCT)
    rebate = _fraction(effective, RateField.REBATE_PCT)
    conditional = _fraction(effective, RateField.CONDITIONAL_REBATE_PCT)
    growth = _fraction(effective, RateField.GROWTH_REBATE_PCT)
    quantity = max(effective.monthly_quantity_commitment, 0.0)

    normal_margin = _margin(list_price, cost)
    after_discount = list_price * (1 - discount)
    after_rebate = after_discount * (1 - rebate)
    after_conditional = after_rebate * (1 - conditional)
    after_growth = after_conditional * (1 - growth)

    contract_margin = _margin(after_conditional, cost)
    growth_margin = _margin(after_growth, cost)

    return PricingResult(
        list_price=list_price,
        cost=cost,
        normal_margin=normal_margin,
        price_after_discount=after_discount,
        price_after_rebate=after_rebate,
        price_after_conditional_rebate=after_conditional,
        price_after_growth_rebate=after_growth,
        contract_margin=contract_margin,
        growth_margin=growth_margin,
        contract_margin_delta=contract_margin - normal_margin,
        growth_margin_delta=growth_margin - normal_margin,
        # Commitment is priced at the discounted rate; rebates settle later.
        commitment_dollars=after_discount * quantity,
        total_eaches=quantity * item.eaches_per_unit_of_measure,
        net_monthly_revenue=after_conditional * quantity,
    )


def rollup(
    tree: "RateTree",
    node: Optional["HierarchyNode"] = None,
) -> PricingRollup:
    """Quantity-weighted totals over the selected items below *node*.

    With *node* omitted the whole tree (the contract) is rolled up.  An item
    with no commitment set anywhere on its path weighs 1.
    """
    selected = 0
    total_revenue = 0.0
    net_revenue = 0.0
    total_cost = 0.0

    for item in tree.items(node):
        if not item.selected:
            continue
        effective = tree.resolve(item)
        result = compute(item, effective)
        if effective.sources.get(RateField.MONTHLY_QUANTITY_COMMITMENT) is None:
            quantity = 1.0
        else:
            quantity = max(effective.monthly_quantity_commitment, 0.0)

        selected += 1
        total_revenue += result.price_after_discount * quantity
        net_revenue += result.price_after_conditional_rebate * quantity
        total_cost += item.cost * quantity

    margin = (net_revenue - total_cost) / net_revenue if net_revenue else 0.0
    return PricingRollup(
        selected_items=selected,
        monthly_total_revenue=total_revenue,
        monthly_net_revenue=net_revenue,
        total_cost=total_cost,
        margin=margin,
        margin_band=margin_band(margin),
    )
