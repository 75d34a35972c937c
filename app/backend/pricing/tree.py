"""
Rate override tree.

Segments, categories and items form a fixed three-level tree.  Every node can
carry explicit contract rates; an item's *effective* rates are found by
walking item -> category -> segment and taking, per field, the first value
that is set.  Nodes are stored in a flat arena and refer to each other by
index, so the upward walk is a short loop and cycles cannot be built.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Optional

from pydantic import Field

from backend.models import (
    CamelModel,
    CategoryRecord,
    ContractLineItem,
    InvalidRateInput,
    ItemRecord,
    PricingLevel,
    ResolutionWarning,
    SegmentRecord,
)
from backend.pricing.rates import RATE_FIELDS, RateField, RateSet, validate_rate
from backend.pricing.selection import mark_dirty

logger = logging.getLogger(__name__)

_DEPTH: dict[PricingLevel, int] = {
    PricingLevel.SEGMENT: 0,
    PricingLevel.CATEGORY: 1,
    PricingLevel.ITEM: 2,
}


# ---------------------------------------------------------------------------
# Node and derived value types
# ---------------------------------------------------------------------------
class HierarchyNode(CamelModel):
    """One segment, category or item in the arena."""

    index: int
    level: PricingLevel
    id: int
    name: str = ""
    description: Optional[str] = None
    parent: Optional[int] = None
    children: list[int] = Field(default_factory=list)
    rates: RateSet = Field(default_factory=RateSet)
    selected: bool = False
    selection_is_explicit: bool = False
    # Item attributes
    list_price: float = 0.0
    cost: float = 0.0
    eaches_per_unit_of_measure: float = 0.0
    dirty: dict[RateField, bool] = Field(default_factory=dict)
    line_item_id: Optional[int] = None

    @property
    def depth(self) -> int:
        return _DEPTH[self.level]

    @property
    def is_item(self) -> bool:
        return self.level is PricingLevel.ITEM

    def is_dirty(self, field: RateField) -> bool:
        return self.dirty.get(field, False)


class EffectiveRate(CamelModel):
    """Resolved rates for a node with per-field provenance.

    ``is_inherited[field]`` is true when the node itself does not set the
    field.  ``sources[field]`` names the level the value came from, or is
    ``None`` when nothing on the path sets it and the value defaulted to 0.
    """

    discount_pct: float = 0.0
    rebate_pct: float = 0.0
    conditional_rebate_pct: float = 0.0
    growth_rebate_pct: float = 0.0
    monthly_quantity_commitment: float = 0.0
    is_inherited: dict[RateField, bool] = Field(default_factory=dict)
    sources: dict[RateField, Optional[PricingLevel]] = Field(default_factory=dict)

    def get(self, field: RateField) -> float:
        return getattr(self, field.value)


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------
class RateTree:
    """Arena-backed segment -> category -> item tree."""

    def __init__(self) -> None:
        self.nodes: list[HierarchyNode] = []
        self.roots: list[int] = []
        self._lookup: dict[tuple[PricingLevel, int], int] = {}

    # -- construction -------------------------------------------------------
    def _add(
        self,
        level: PricingLevel,
        record_id: int,
        parent: Optional[int],
        **attrs: Any,
    ) -> Optional[HierarchyNode]:
        key = (level, record_id)
        if key in self._lookup:
            logger.warning("Duplicate %s id %s ignored", level.value, record_id)
            return None
        node = HierarchyNode(
            index=len(self.nodes), level=level, id=record_id, parent=parent, **attrs
        )
        self.nodes.append(node)
        self._lookup[key] = node.index
        if parent is None:
            self.roots.append(node.index)
        else:
            self.nodes[parent].children.append(node.index)
        return node

    @classmethod
    def build(
        cls,
        segments: Iterable[SegmentRecord],
        categories: Iterable[CategoryRecord],
        items: Iterable[ItemRecord],
        line_items: Iterable[ContractLineItem] = (),
    ) -> tuple["RateTree", list[ResolutionWarning]]:
        """Build the tree from flat, foreign-keyed catalog lists.

        Saved line items seed explicit rates and selection at the node of
        their pricing level.  Entries whose target is gone are skipped and
        returned as warnings; the rest of the tree is unaffected.
        """
        tree = cls()

        for seg in segments:
            tree._add(PricingLevel.SEGMENT, seg.id, None, name=seg.name)

        for cat in categories:
            parent = tree._lookup.get((PricingLevel.SEGMENT, cat.segment_id))
            if parent is None:
                logger.warning(
                    "Category %s references unknown segment %s; not attached",
                    cat.id,
                    cat.segment_id,
                )
                continue
            tree._add(PricingLevel.CATEGORY, cat.id, parent, name=cat.name)

        for item in items:
            parent = tree._lookup.get((PricingLevel.CATEGORY, item.category_id))
            if parent is None:
                logger.warning(
                    "Item %s references unknown category %s; not attached",
                    item.id,
                    item.category_id,
                )
                continue
            tree._add(
                PricingLevel.ITEM,
                item.id,
                parent,
                name=item.name,
                description=item.description,
                list_price=item.list_price,
                cost=item.cost,
                eaches_per_unit_of_measure=item.eaches_per_unit_of_measure,
            )

        warnings: list[ResolutionWarning] = []
        seeded_parents: list[HierarchyNode] = []
        seeded_items: set[int] = set()
        # Segment and category rows are applied before item rows.
        for line_item in sorted(line_items, key=lambda li: _DEPTH[li.pricing_level]):
            index = tree._lookup.get((line_item.pricing_level, line_item.target_id))
            if index is None:
                warning = ResolutionWarning(
                    pricing_level=line_item.pricing_level,
                    target_id=line_item.target_id,
                    line_item_id=line_item.id,
                    message=(
                        f"{line_item.pricing_level.value} {line_item.target_id} "
                        "no longer exists in the catalog"
                    ),
                )
                logger.warning("Skipping saved line item: %s", warning.message)
                warnings.append(warning)
                continue
            node = tree.nodes[index]
            tree._seed(node, line_item)
            if node.is_item:
                seeded_items.add(node.index)
            else:
                seeded_parents.append(node)

        # A segment or category row selects its subtree only when no item
        # below it has a row of its own.
        for parent in seeded_parents:
            below = tree.items(parent)
            if not any(item.index in seeded_items for item in below):
                for child in tree.descendants(parent):
                    child.selected = True

        logger.info(
            "Built rate tree: %d nodes, %d items, %d warnings",
            len(tree.nodes),
            sum(1 for n in tree.nodes if n.is_item),
            len(warnings),
        )
        return tree, warnings

    def _seed(self, node: HierarchyNode, line_item: ContractLineItem) -> None:
        """Apply one saved row to its node.

        Item rows hold resolved values, so a value equal to what the item
        would inherit is read back as unset and keeps following its ancestors.
        """
        if not node.rates.is_empty():
            logger.warning(
                "%s %s seeded twice; later line item wins", node.level.value, node.id
            )
        rates = RateSet.from_line_item(line_item)
        if node.is_item:
            node.rates = RateSet()
            inherited = self.resolve(node)
            for field in RATE_FIELDS:
                if rates.get(field) == inherited.get(field):
                    setattr(rates, field.value, None)
        node.rates = rates
        node.selected = True
        node.line_item_id = line_item.id

    # -- navigation ---------------------------------------------------------
    def node(self, index: int) -> HierarchyNode:
        return self.nodes[index]

    def find(self, level: PricingLevel, record_id: int) -> HierarchyNode:
        """Return the node for a record id; ``ValueError`` if absent."""
        index = self._lookup.get((level, record_id))
        if index is None:
            raise ValueError(f"{level.value} {record_id} not found in pricing tree")
        return self.nodes[index]

    def get(self, level: PricingLevel, record_id: int) -> Optional[HierarchyNode]:
        index = self._lookup.get((level, record_id))
        return None if index is None else self.nodes[index]

    def segments(self) -> list[HierarchyNode]:
        return [self.nodes[i] for i in self.roots]

    def children(self, node: HierarchyNode) -> list[HierarchyNode]:
        return [self.nodes[i] for i in node.children]

    def parent(self, node: HierarchyNode) -> Optional[HierarchyNode]:
        return None if node.parent is None else self.nodes[node.parent]

    def path(self, node: HierarchyNode) -> Iterator[HierarchyNode]:
        """Yield *node* and then its ancestors up to the segment."""
        current: Optional[HierarchyNode] = node
        while current is not None:
            yield current
            current = self.parent(current)

    def descendants(self, node: HierarchyNode) -> Iterator[HierarchyNode]:
        """Yield every node below *node*, depth first, in child order."""
        for child in self.children(node):
            yield child
            yield from self.descendants(child)

    def items(self, node: Optional[HierarchyNode] = None) -> list[HierarchyNode]:
        """Items below *node* (or in the whole tree), in tree order."""
        if node is None:
            return [
                n for root in self.segments() for n in self.descendants(root) if n.is_item
            ]
        if node.is_item:
            return [node]
        return [n for n in self.descendants(node) if n.is_item]

    # -- rates --------------------------------------------------------------
    def resolve(self, node: HierarchyNode) -> EffectiveRate:
        """Effective rates of *node*: nearest explicit value wins, else 0."""
        values: dict[str, float] = {}
        inherited: dict[RateField, bool] = {}
        sources: dict[RateField, Optional[PricingLevel]] = {}
        for field in RATE_FIELDS:
            values[field.value] = 0.0
            inherited[field] = True
            sources[field] = None
            for ancestor in self.path(node):
                value = ancestor.rates.get(field)
                if value is not None:
                    values[field.value] = value
                    inherited[field] = ancestor is not node
                    sources[field] = ancestor.level
                    break
        return EffectiveRate(**values, is_inherited=inherited, sources=sources)

    def set_explicit_rate(
        self,
        node: HierarchyNode,
        field: RateField | str,
        value: Any,
    ) -> Optional[InvalidRateInput]:
        """Set (or clear, for ``None``/``""``) one explicit rate of *node*.

        Bad input is rejected without touching the node and the rejection is
        returned.  Edits made directly on an item mark that field dirty.
        """
        try:
            rate_field = RateField(field)
        except ValueError:
            return InvalidRateInput(
                field=str(field),
                value=value if value is None else str(value),
                reason="unknown rate field",
            )

        number, rejection = validate_rate(rate_field, value)
        if rejection is not None:
            logger.info(
                "Rejected %s=%r on %s %s: %s",
                rate_field.value,
                value,
                node.level.value,
                node.id,
                rejection.reason,
            )
            return rejection

        setattr(node.rates, rate_field.value, number)
        if node.is_item:
            mark_dirty(node, rate_field, dirty=number is not None)
        return None
