"""
Selection and dirty-state tracking for the rate tree.

Selection lives on the items.  The checkbox state of a segment or category is
derived from the items below it on every call and never stored; the flag on a
parent only matters while it has no items.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from backend.models import CheckState
from backend.pricing.rates import RateField

if TYPE_CHECKING:
    from backend.pricing.tree import HierarchyNode, RateTree

logger = logging.getLogger(__name__)


def mark_dirty(item: "HierarchyNode", field: RateField, dirty: bool = True) -> None:
    """Flag an item field as explicitly edited (display only)."""
    if not item.is_item:
        raise ValueError(f"{item.level.value} {item.id} is not an item")
    item.dirty[field] = dirty


def aggregate_check_state(tree: "RateTree", node: "HierarchyNode") -> CheckState:
    """Checked / unchecked / indeterminate from the items below *node*."""
    items = tree.items(node)
    if not items or node.is_item:
        return CheckState.CHECKED if node.selected else CheckState.UNCHECKED

    selected = sum(1 for item in items if item.selected)
    if selected == len(items):
        return CheckState.CHECKED
    if selected == 0:
        return CheckState.UNCHECKED
    return CheckState.INDETERMINATE


def _is_selected(tree: "RateTree", node: "HierarchyNode") -> bool:
    return aggregate_check_state(tree, node) is CheckState.CHECKED


def _cascade(
    tree: "RateTree", node: "HierarchyNode", value: bool, protect: bool
) -> bool:
    """Push *value* below *node*; returns True if any item changed."""
    changed = False
    for child in tree.children(node):
        if child.selection_is_explicit and _is_selected(tree, child) != value:
            if protect:
                logger.debug(
                    "Keeping explicit selection of %s %s", child.level.value, child.id
                )
                continue
            child.selection_is_explicit = False
        if child.is_item and child.selected != value:
            changed = True
        child.selected = value
        changed = _cascade(tree, child, value, protect) or changed
    return changed


def toggle_selection(tree: "RateTree", node: "HierarchyNode") -> bool:
    """Toggle *node* and return the value it pushed down.

    An item flips its own flag.  A segment or category with items selects
    everything below it unless it is fully checked, in which case it clears
    everything.  Descendants the user toggled themselves into the opposite
    state are left alone, unless that would leave every item unchanged; the
    click then overrides them and drops their explicit mark.
    """
    if node.is_item or not tree.items(node):
        value = not node.selected
    else:
        value = aggregate_check_state(tree, node) is not CheckState.CHECKED
    node.selected = value
    node.selection_is_explicit = True
    if not node.is_item and not _cascade(tree, node, value, protect=True):
        _cascade(tree, node, value, protect=False)
    return value
