"""
Unity Catalog seed loader.

Reads the product hierarchy of a vendor (segments, categories, items) and the
saved line items of a contract from Unity Catalog.  Results are cached through
the ``execute_sql`` helper in the Databricks client module.  The SQL Statement
Execution API returns every value as a string, so rows are cast here.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from backend.models import (
    CategoryRecord,
    ContractLineItem,
    ContractSeed,
    ItemRecord,
    PricingLevel,
    SegmentRecord,
)
from backend.utils.config import (
    TABLE_CONTRACT_ITEMS,
    TABLE_ITEM_CATEGORIES,
    TABLE_ITEMS,
    TABLE_VENDOR_SEGMENTS,
)
from backend.utils.databricks_client import execute_sql

logger = logging.getLogger(__name__)


def _opt_float(value: Any) -> Optional[float]:
    """Cast a nullable SQL value to float, keeping NULL as ``None``."""
    if value is None or value == "":
        return None
    return float(value)


# ---------------------------------------------------------------------------
# Product hierarchy
# ---------------------------------------------------------------------------
def get_segments(vendor_id: int) -> list[SegmentRecord]:
    """Return the vendor's segments ordered by name."""
    query = f"""
        SELECT id, name
        FROM {TABLE_VENDOR_SEGMENTS}
        WHERE vendor_id = :vendor_id
        ORDER BY name
    """
    rows = execute_sql(
        query, params={"vendor_id": vendor_id}, cache_key=f"segments:{vendor_id}"
    )
    return [SegmentRecord(id=int(r["id"]), name=str(r["name"])) for r in rows]


def get_categories(vendor_id: int) -> list[CategoryRecord]:
    """Return every category under the vendor's segments."""
    query = f"""
        SELECT c.id, c.name, c.vendor_segment_id
        FROM {TABLE_ITEM_CATEGORIES} c
        JOIN {TABLE_VENDOR_SEGMENTS} s ON s.id = c.vendor_segment_id
        WHERE s.vendor_id = :vendor_id
        ORDER BY c.name
    """
    rows = execute_sql(
        query, params={"vendor_id": vendor_id}, cache_key=f"categories:{vendor_id}"
    )
    return [
        CategoryRecord(
            id=int(r["id"]),
            name=str(r["name"]),
            segment_id=int(r["vendor_segment_id"]),
        )
        for r in rows
    ]


def get_items(vendor_id: int) -> list[ItemRecord]:
    """Return every item under the vendor's categories."""
    query = f"""
        SELECT i.id, i.name, i.description, i.item_category_id,
               i.list_price, i.cost, i.eaches_per_unit_of_measure
        FROM {TABLE_ITEMS} i
        JOIN {TABLE_ITEM_CATEGORIES} c ON c.id = i.item_category_id
        JOIN {TABLE_VENDOR_SEGMENTS} s ON s.id = c.vendor_segment_id
        WHERE s.vendor_id = :vendor_id
        ORDER BY i.name
    """
    rows = execute_sql(
        query, params={"vendor_id": vendor_id}, cache_key=f"items:{vendor_id}"
    )
    return [
        ItemRecord(
            id=int(r["id"]),
            name=str(r["name"]),
            description=r.get("description"),
            category_id=int(r["item_category_id"]),
            list_price=float(r.get("list_price") or 0),
            cost=float(r.get("cost") or 0),
            eaches_per_unit_of_measure=float(r.get("eaches_per_unit_of_measure") or 0),
        )
        for r in rows
    ]


# ---------------------------------------------------------------------------
# Contract line items
# ---------------------------------------------------------------------------
_TARGET_COLUMNS: dict[PricingLevel, str] = {
    PricingLevel.SEGMENT: "vendor_segment_id",
    PricingLevel.CATEGORY: "item_category_id",
    PricingLevel.ITEM: "item_id",
}


def get_contract_line_items(contract_id: int) -> list[ContractLineItem]:
    """Return the saved line items of a contract.

    Not cached: the console re-reads them right after every save.  Rows with
    an unknown pricing level or no target id are skipped.
    """
    query = f"""
        SELECT id, pricing_level, item_id, item_category_id, vendor_segment_id,
               discount_percentage, rebate_percentage, conditional_rebate,
               growth_rebate, quantity_commitment,
               flat_discount_price, net_rebate_price, commitment_dollars
        FROM {TABLE_CONTRACT_ITEMS}
        WHERE contract_id = :contract_id
        ORDER BY id
    """
    rows = execute_sql(query, params={"contract_id": contract_id})

    line_items: list[ContractLineItem] = []
    for r in rows:
        try:
            level = PricingLevel(str(r["pricing_level"]))
        except ValueError:
            logger.warning(
                "Contract item %s has unknown pricing level %r",
                r.get("id"),
                r.get("pricing_level"),
            )
            continue
        target = r.get(_TARGET_COLUMNS[level])
        if target is None:
            logger.warning("Contract item %s has no %s target", r.get("id"), level.value)
            continue
        line_items.append(
            ContractLineItem(
                id=int(r["id"]),
                pricing_level=level,
                target_id=int(target),
                discount_percentage=_opt_float(r.get("discount_percentage")),
                rebate_percentage=_opt_float(r.get("rebate_percentage")),
                conditional_rebate=_opt_float(r.get("conditional_rebate")),
                growth_rebate=_opt_float(r.get("growth_rebate")),
                quantity_commitment=_opt_float(r.get("quantity_commitment")),
                flat_discount_price=_opt_float(r.get("flat_discount_price")),
                net_rebate_price=_opt_float(r.get("net_rebate_price")),
                commitment_dollars=_opt_float(r.get("commitment_dollars")),
            )
        )
    return line_items


def load_contract_seed(contract_id: int, vendor_id: int) -> ContractSeed:
    """Fetch everything needed to open a pricing session for a contract."""
    seed = ContractSeed(
        segments=get_segments(vendor_id),
        categories=get_categories(vendor_id),
        items=get_items(vendor_id),
        line_items=get_contract_line_items(contract_id),
    )
    logger.info(
        "Loaded seed for contract %s: %d segments, %d categories, %d items, "
        "%d line items",
        contract_id,
        len(seed.segments),
        len(seed.categories),
        len(seed.items),
        len(seed.line_items),
    )
    return seed
