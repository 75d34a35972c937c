"""
Flatten the rate tree into contract line items.

Saving a contract writes one record per selected item carrying the *resolved*
rates and the prices computed from them.  The explicit segment and category
terms are saved alongside, so reopening the contract still lets later
ancestor edits reach the items that inherited from them.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

from backend.models import ContractItemChanges, ContractLineItem, PricingLevel
from backend.pricing.rates import LINE_ITEM_FIELDS, RATE_FIELDS
from backend.pricing.tree import RateTree
from backend.pricing.waterfall import compute

logger = logging.getLogger(__name__)

_PRICE_COLUMNS = ("flat_discount_price", "net_rebate_price", "commitment_dollars")


def flatten(tree: RateTree) -> list[ContractLineItem]:
    """Return one item-level line item per selected item, in tree order."""
    line_items: list[ContractLineItem] = []
    for item in tree.items():
        if not item.selected:
            continue
        effective = tree.resolve(item)
        result = compute(item, effective)
        line_items.append(
            ContractLineItem(
                id=item.line_item_id,
                pricing_level=PricingLevel.ITEM,
                target_id=item.id,
                **{LINE_ITEM_FIELDS[f]: effective.get(f) for f in RATE_FIELDS},
                flat_discount_price=result.price_after_discount,
                net_rebate_price=result.price_after_rebate,
                commitment_dollars=result.commitment_dollars,
            )
        )
    logger.debug("Flattened %d selected items", len(line_items))
    return line_items


def ancestor_pricing(tree: RateTree) -> list[ContractLineItem]:
    """Explicit terms of every segment and category that sets any."""
    records: list[ContractLineItem] = []
    for segment in tree.segments():
        for node in [segment, *tree.children(segment)]:
            if node.rates.is_empty():
                continue
            records.append(
                ContractLineItem(
                    id=node.line_item_id,
                    pricing_level=node.level,
                    target_id=node.id,
                    **{LINE_ITEM_FIELDS[f]: node.rates.get(f) for f in RATE_FIELDS},
                )
            )
    return records


def _columns(line_item: ContractLineItem) -> list[Optional[float]]:
    return [getattr(line_item, LINE_ITEM_FIELDS[f]) for f in RATE_FIELDS] + [
        getattr(line_item, column) for column in _PRICE_COLUMNS
    ]


def _differs(previous: ContractLineItem, current: ContractLineItem) -> bool:
    """True when any saved term or computed price no longer matches."""
    for old, new in zip(_columns(previous), _columns(current)):
        if (old is None) != (new is None):
            return True
        if old is not None and not math.isclose(old, new, abs_tol=1e-6):
            return True
    return False


def diff_line_items(
    existing: Iterable[ContractLineItem],
    flattened: Iterable[ContractLineItem],
    ancestors: Iterable[ContractLineItem] = (),
) -> ContractItemChanges:
    """Split a flattened set into creates, updates and deletes.

    Saved item rows that are not carried forward are deleted, and so are
    saved segment and category rows missing from *ancestors*.
    """
    saved = {li.id: li for li in existing if li.id is not None}
    changes = ContractItemChanges()
    kept: set[int] = set()

    for line_item in flattened:
        previous = saved.get(line_item.id) if line_item.id is not None else None
        if previous is None:
            changes.to_create.append(line_item.model_copy(update={"id": None}))
            continue
        kept.add(previous.id)
        if _differs(previous, line_item):
            changes.to_update.append(line_item)

    for record in ancestors:
        if record.id in saved:
            kept.add(record.id)
        else:
            record = record.model_copy(update={"id": None})
        if record.pricing_level is PricingLevel.SEGMENT:
            changes.segment_pricing.append(record)
        else:
            changes.category_pricing.append(record)

    changes.to_delete = [record_id for record_id in saved if record_id not in kept]
    logger.info(
        "Line item changes: %d create, %d update, %d delete, "
        "%d segment and %d category terms",
        len(changes.to_create),
        len(changes.to_update),
        len(changes.to_delete),
        len(changes.segment_pricing),
        len(changes.category_pricing),
    )
    return changes
