"""
Contract pricing editing session.

One session wraps the rate tree of a single contract while a user edits its
terms: it is built from the catalog seed, mutated by rate edits and selection
toggles, and either discarded or flattened into line items on save.  Nothing
is persisted from here; ``save_payload`` hands the result back to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from pydantic import Field

from backend.models import (
    CamelModel,
    CheckState,
    ContractItemChanges,
    ContractLineItem,
    ContractSeed,
    InvalidRateInput,
    PricingLevel,
    PricingResult,
    PricingRollup,
    RateValues,
    ResolutionWarning,
    SetRateEdit,
    ToggleEdit,
)
from backend.pricing.flatten import ancestor_pricing, diff_line_items, flatten
from backend.pricing.rates import RATE_FIELDS, RateField, RateSet
from backend.pricing.selection import aggregate_check_state, toggle_selection
from backend.pricing.tree import EffectiveRate, HierarchyNode, RateTree
from backend.pricing.waterfall import compute, margin_band, rollup

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Snapshot schemas
# ---------------------------------------------------------------------------
class NodeView(CamelModel):
    """Serialisable view of one node and everything displayed for it."""

    level: PricingLevel
    id: int
    name: str
    check_state: CheckState
    rates: RateSet
    effective: Optional[EffectiveRate] = None
    pricing: Optional[PricingResult] = None
    contract_margin_band: Optional[str] = None
    dirty: list[RateField] = Field(default_factory=list)
    rollup: Optional[PricingRollup] = None
    children: list["NodeView"] = Field(default_factory=list)


NodeView.model_rebuild()


class TreeSnapshot(CamelModel):
    """The whole editing state of a contract."""

    contract_id: int
    has_changes: bool
    segments: list[NodeView]
    totals: PricingRollup
    warnings: list[ResolutionWarning] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------
class ContractPricingSession:
    """Editing state for the pricing terms of one contract."""

    def __init__(self, contract_id: int, seed: ContractSeed) -> None:
        self.contract_id = contract_id
        self.seed = seed
        self._open()

    def _open(self) -> None:
        self.tree, self.warnings = RateTree.build(
            self.seed.segments,
            self.seed.categories,
            self.seed.items,
            self.seed.line_items,
        )
        self.has_changes = False
        self._item_search: dict[int, str] = {}
        logger.info(
            "Opened pricing session for contract %s (%d warnings)",
            self.contract_id,
            len(self.warnings),
        )

    def discard(self) -> None:
        """Throw away all edits and rebuild from the original seed."""
        logger.info("Discarding edits for contract %s", self.contract_id)
        self._open()

    # -- lookups ------------------------------------------------------------
    def node(self, level: Union[PricingLevel, str], node_id: int) -> HierarchyNode:
        return self.tree.find(PricingLevel(level), node_id)

    def _item(self, item_id: int) -> HierarchyNode:
        return self.node(PricingLevel.ITEM, item_id)

    # -- edits --------------------------------------------------------------
    def set_rate(
        self,
        level: Union[PricingLevel, str],
        node_id: int,
        field: Union[RateField, str],
        value: Any,
    ) -> Optional[InvalidRateInput]:
        """Set or clear one explicit rate; returns the rejection, if any."""
        rejection = self.tree.set_explicit_rate(self.node(level, node_id), field, value)
        if rejection is None:
            self.has_changes = True
        return rejection

    def set_rates(
        self,
        level: Union[PricingLevel, str],
        node_id: int,
        values: RateValues,
    ) -> list[InvalidRateInput]:
        """Apply every field the caller supplied; returns all rejections."""
        rejections: list[InvalidRateInput] = []
        for field in RATE_FIELDS:
            if field.value not in values.model_fields_set:
                continue
            value = getattr(values, field.value)
            rejection = self.set_rate(level, node_id, field, value)
            if rejection is not None:
                rejections.append(rejection)
        return rejections

    def toggle(self, level: Union[PricingLevel, str], node_id: int) -> bool:
        """Toggle selection of a node; returns its new value."""
        value = toggle_selection(self.tree, self.node(level, node_id))
        self.has_changes = True
        return value

    def apply(self, edit: Union[SetRateEdit, ToggleEdit]) -> Optional[InvalidRateInput]:
        """Replay one recorded edit."""
        if isinstance(edit, ToggleEdit):
            self.toggle(edit.level, edit.node_id)
            return None
        return self.set_rate(edit.level, edit.node_id, edit.field, edit.value)

    # -- item search --------------------------------------------------------
    def set_item_search(self, category_id: int, search: str) -> None:
        """Filter the items shown under a category; not an edit."""
        self.node(PricingLevel.CATEGORY, category_id)
        self._item_search[category_id] = search

    def visible_items(self, category_id: int) -> list[HierarchyNode]:
        category = self.node(PricingLevel.CATEGORY, category_id)
        items = self.tree.children(category)
        search = self._item_search.get(category_id, "").strip().lower()
        if not search:
            return items
        return [
            item
            for item in items
            if search in item.name.lower()
            or (item.description is not None and search in item.description.lower())
        ]

    # -- derived values -----------------------------------------------------
    def check_state(self, level: Union[PricingLevel, str], node_id: int) -> CheckState:
        return aggregate_check_state(self.tree, self.node(level, node_id))

    def effective_rate(
        self, level: Union[PricingLevel, str], node_id: int
    ) -> EffectiveRate:
        return self.tree.resolve(self.node(level, node_id))

    def pricing(self, item_id: int) -> PricingResult:
        item = self._item(item_id)
        return compute(item, self.tree.resolve(item))

    def rollup(
        self,
        level: Union[PricingLevel, str, None] = None,
        node_id: Optional[int] = None,
    ) -> PricingRollup:
        """Totals for one node, or for the whole contract when omitted."""
        node = None if level is None else self.node(level, node_id)
        return rollup(self.tree, node)

    # -- output -------------------------------------------------------------
    def _view(self, node: HierarchyNode) -> NodeView:
        view = NodeView(
            level=node.level,
            id=node.id,
            name=node.name,
            check_state=aggregate_check_state(self.tree, node),
            rates=node.rates.model_copy(),
        )
        if node.is_item:
            view.effective = self.tree.resolve(node)
            view.pricing = compute(node, view.effective)
            view.contract_margin_band = margin_band(view.pricing.contract_margin)
            view.dirty = [f for f in RATE_FIELDS if node.is_dirty(f)]
        else:
            view.rollup = rollup(self.tree, node)
            children = (
                self.visible_items(node.id)
                if node.level is PricingLevel.CATEGORY
                else self.tree.children(node)
            )
            view.children = [self._view(child) for child in children]
        return view

    def snapshot(self) -> TreeSnapshot:
        return TreeSnapshot(
            contract_id=self.contract_id,
            has_changes=self.has_changes,
            segments=[self._view(seg) for seg in self.tree.segments()],
            totals=rollup(self.tree),
            warnings=list(self.warnings),
        )

    def save_payload(self) -> tuple[list[ContractLineItem], ContractItemChanges]:
        """Flatten the tree and diff it, with ancestor terms, against the seed."""
        line_items = flatten(self.tree)
        changes = diff_line_items(
            self.seed.line_items, line_items, ancestor_pricing(self.tree)
        )
        return line_items, changes
