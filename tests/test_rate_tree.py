"""
Tests for the rate override tree: building from the catalog, seeding saved
line items, rate resolution with provenance, and explicit-rate editing.
"""

from __future__ import annotations

import pytest

from backend.models import (
    CategoryRecord,
    ContractLineItem,
    ItemRecord,
    PricingLevel,
    SegmentRecord,
)
from backend.pricing.rates import RATE_FIELDS, RateField
from backend.pricing.tree import RateTree

SEG = PricingLevel.SEGMENT
CAT = PricingLevel.CATEGORY
ITEM = PricingLevel.ITEM


# ===========================================================================
# 1. Build
# ===========================================================================
class TestBuild:
    """Tests for RateTree.build."""

    def test_hierarchy_shape(self, tree):
        """Segments, categories and items are linked parent to child."""
        assert [s.name for s in tree.segments()] == ["Orthopaedics", "Endoscopy"]

        implants = tree.find(CAT, 10)
        assert [c.id for c in tree.children(implants)] == [100, 101]
        assert tree.parent(implants).id == 1
        assert tree.find(ITEM, 200).depth == 2

    def test_items_in_tree_order(self, tree):
        """items() walks segments, categories and items in catalog order."""
        assert [i.id for i in tree.items()] == [100, 101, 110, 200]
        assert [i.id for i in tree.items(tree.find(SEG, 1))] == [100, 101, 110]

    def test_item_attributes_copied(self, tree):
        item = tree.find(ITEM, 100)
        assert item.list_price == 100.0
        assert item.cost == 60.0
        assert item.eaches_per_unit_of_measure == 12
        assert item.description == "Cementless femoral stem"

    def test_nothing_selected_without_line_items(self, tree):
        assert not any(n.selected for n in tree.nodes)
        assert all(n.rates.is_empty() for n in tree.nodes)

    def test_orphan_records_not_attached(self, catalog):
        """Records pointing at a missing parent are left out of the tree."""
        categories = catalog.categories + [
            CategoryRecord(id=30, name="Orphan", segment_id=999)
        ]
        items = catalog.items + [ItemRecord(id=300, name="Stray", category_id=999)]

        built, warnings = RateTree.build(catalog.segments, categories, items)

        assert warnings == []
        assert built.get(CAT, 30) is None
        assert built.get(ITEM, 300) is None
        assert len(built.items()) == 4

    def test_duplicate_ids_ignored(self, catalog):
        segments = catalog.segments + [SegmentRecord(id=1, name="Copy")]
        built, _ = RateTree.build(segments, catalog.categories, catalog.items)
        assert len(built.segments()) == 2
        assert built.find(SEG, 1).name == "Orthopaedics"

    def test_find_unknown_node_raises(self, tree):
        with pytest.raises(ValueError, match="Item 999"):
            tree.find(ITEM, 999)


# ===========================================================================
# 2. Seeding from saved line items
# ===========================================================================
class TestSeeding:
    """Saved contract line items become explicit rates and selections."""

    def test_deleted_category_reported_and_skipped(self, catalog):
        """A line item for a deleted category yields exactly one warning."""
        line_items = [
            ContractLineItem(
                id=7, pricing_level=CAT, target_id=99, discount_percentage=5.0
            ),
            ContractLineItem(
                id=8, pricing_level=ITEM, target_id=100, discount_percentage=12.0
            ),
        ]

        built, warnings = RateTree.build(
            catalog.segments, catalog.categories, catalog.items, line_items
        )

        assert len(warnings) == 1
        assert warnings[0].pricing_level is CAT
        assert warnings[0].target_id == 99
        assert warnings[0].line_item_id == 7
        assert "99" in warnings[0].message

        hip = built.find(ITEM, 100)
        assert hip.rates.discount_pct == 12.0
        assert hip.selected
        assert hip.line_item_id == 8

        knee = built.find(ITEM, 101)
        assert knee.rates.is_empty()
        assert not knee.selected

    def test_category_line_item_selects_its_items(self, catalog):
        line_items = [
            ContractLineItem(
                id=5, pricing_level=CAT, target_id=10, rebate_percentage=5.0
            )
        ]

        built, _ = RateTree.build(
            catalog.segments, catalog.categories, catalog.items, line_items
        )

        implants = built.find(CAT, 10)
        assert implants.rates.rebate_pct == 5.0
        assert implants.line_item_id == 5
        assert built.find(ITEM, 100).selected
        assert built.find(ITEM, 101).selected
        assert built.find(ITEM, 100).line_item_id is None
        assert not built.find(ITEM, 110).selected

    def test_seeded_values_are_not_dirty(self, catalog):
        line_items = [
            ContractLineItem(
                id=1, pricing_level=ITEM, target_id=100, discount_percentage=10.0
            )
        ]
        built, _ = RateTree.build(
            catalog.segments, catalog.categories, catalog.items, line_items
        )
        assert not built.find(ITEM, 100).is_dirty(RateField.DISCOUNT_PCT)

    def test_item_rows_limit_ancestor_selection(self, catalog):
        """With item rows below it, a category row selects only those items."""
        line_items = [
            ContractLineItem(
                id=2, pricing_level=ITEM, target_id=101, discount_percentage=8.0
            ),
            ContractLineItem(
                id=1, pricing_level=CAT, target_id=10, discount_percentage=8.0
            ),
        ]

        built, _ = RateTree.build(
            catalog.segments, catalog.categories, catalog.items, line_items
        )

        assert built.find(ITEM, 101).selected
        assert not built.find(ITEM, 100).selected
        assert not built.find(ITEM, 110).selected

    def test_item_value_matching_ancestor_read_back_as_inherited(self, catalog):
        line_items = [
            ContractLineItem(
                id=1, pricing_level=SEG, target_id=1, discount_percentage=10.0
            ),
            ContractLineItem(
                id=2,
                pricing_level=ITEM,
                target_id=100,
                discount_percentage=10.0,
                rebate_percentage=3.0,
                conditional_rebate=0.0,
            ),
        ]

        built, _ = RateTree.build(
            catalog.segments, catalog.categories, catalog.items, line_items
        )

        hip = built.find(ITEM, 100)
        assert hip.rates.discount_pct is None
        assert hip.rates.conditional_rebate_pct is None
        assert hip.rates.rebate_pct == 3.0

        built.set_explicit_rate(built.find(SEG, 1), "discount_pct", 20)
        effective = built.resolve(hip)
        assert effective.discount_pct == 20.0
        assert effective.sources[RateField.DISCOUNT_PCT] is SEG


# ===========================================================================
# 3. Resolve
# ===========================================================================
class TestResolve:
    """Tests for RateTree.resolve."""

    def test_inherits_from_category_and_segment(self, tree):
        """Item with no rates takes the category discount and segment rebate."""
        tree.set_explicit_rate(tree.find(CAT, 10), RateField.DISCOUNT_PCT, 15)
        tree.set_explicit_rate(tree.find(SEG, 1), RateField.REBATE_PCT, 8)

        effective = tree.resolve(tree.find(ITEM, 101))

        assert effective.discount_pct == 15
        assert effective.rebate_pct == 8
        assert effective.sources[RateField.DISCOUNT_PCT] is CAT
        assert effective.sources[RateField.REBATE_PCT] is SEG
        for field in (
            RateField.CONDITIONAL_REBATE_PCT,
            RateField.GROWTH_REBATE_PCT,
            RateField.MONTHLY_QUANTITY_COMMITMENT,
        ):
            assert effective.get(field) == 0
            assert effective.sources[field] is None
        assert all(effective.is_inherited[f] for f in RATE_FIELDS)

    def test_nearest_value_wins(self, tree):
        tree.set_explicit_rate(tree.find(SEG, 1), RateField.DISCOUNT_PCT, 5)
        tree.set_explicit_rate(tree.find(CAT, 10), RateField.DISCOUNT_PCT, 15)
        tree.set_explicit_rate(tree.find(ITEM, 100), RateField.DISCOUNT_PCT, 20)

        assert tree.resolve(tree.find(ITEM, 100)).discount_pct == 20
        assert tree.resolve(tree.find(ITEM, 101)).discount_pct == 15
        assert tree.resolve(tree.find(ITEM, 110)).discount_pct == 5

    def test_explicit_zero_overrides_inherited_value(self, tree):
        """0 set on the item is a value, not an absence."""
        tree.set_explicit_rate(tree.find(CAT, 10), RateField.DISCOUNT_PCT, 15)
        tree.set_explicit_rate(tree.find(ITEM, 100), RateField.DISCOUNT_PCT, 0)

        effective = tree.resolve(tree.find(ITEM, 100))

        assert effective.discount_pct == 0
        assert effective.is_inherited[RateField.DISCOUNT_PCT] is False
        assert effective.sources[RateField.DISCOUNT_PCT] is ITEM

    def test_clearing_restores_inheritance(self, tree):
        tree.set_explicit_rate(tree.find(CAT, 10), RateField.DISCOUNT_PCT, 15)
        hip = tree.find(ITEM, 100)
        tree.set_explicit_rate(hip, RateField.DISCOUNT_PCT, 20)
        tree.set_explicit_rate(hip, RateField.DISCOUNT_PCT, None)

        effective = tree.resolve(hip)
        assert effective.discount_pct == 15
        assert effective.is_inherited[RateField.DISCOUNT_PCT] is True

    def test_resolve_is_idempotent(self, tree):
        tree.set_explicit_rate(tree.find(SEG, 1), RateField.REBATE_PCT, 8)
        hip = tree.find(ITEM, 100)
        assert tree.resolve(hip) == tree.resolve(hip)

    def test_item_edit_does_not_leak_to_siblings(self, tree):
        before = tree.resolve(tree.find(ITEM, 101))
        tree.set_explicit_rate(tree.find(ITEM, 100), RateField.DISCOUNT_PCT, 30)
        assert tree.resolve(tree.find(ITEM, 101)) == before

    def test_segment_edit_stays_within_segment(self, tree):
        tree.set_explicit_rate(tree.find(SEG, 1), RateField.DISCOUNT_PCT, 10)
        assert tree.resolve(tree.find(ITEM, 200)).discount_pct == 0


# ===========================================================================
# 4. SetExplicitRate
# ===========================================================================
class TestSetExplicitRate:
    """Tests for RateTree.set_explicit_rate input handling."""

    def test_accepts_numeric_strings(self, tree):
        hip = tree.find(ITEM, 100)
        assert tree.set_explicit_rate(hip, "discount_pct", " 12.5 ") is None
        assert hip.rates.discount_pct == 12.5

    def test_empty_string_clears(self, tree):
        hip = tree.find(ITEM, 100)
        tree.set_explicit_rate(hip, RateField.REBATE_PCT, 4)
        assert tree.set_explicit_rate(hip, RateField.REBATE_PCT, "") is None
        assert hip.rates.rebate_pct is None

    @pytest.mark.parametrize(
        "value, reason",
        [
            ("abc", "not a number"),
            ("nan", "not a finite number"),
            (-1, "must not be negative"),
            (150, "must be between 0 and 100"),
            (True, "not a number"),
        ],
    )
    def test_rejection_keeps_prior_value(self, tree, value, reason):
        hip = tree.find(ITEM, 100)
        tree.set_explicit_rate(hip, RateField.DISCOUNT_PCT, 10)

        rejection = tree.set_explicit_rate(hip, RateField.DISCOUNT_PCT, value)

        assert rejection is not None
        assert rejection.field == "discount_pct"
        assert rejection.reason == reason
        assert hip.rates.discount_pct == 10

    def test_quantity_is_not_capped_at_100(self, tree):
        hip = tree.find(ITEM, 100)
        assert (
            tree.set_explicit_rate(hip, RateField.MONTHLY_QUANTITY_COMMITMENT, 5000)
            is None
        )
        assert hip.rates.monthly_quantity_commitment == 5000

    def test_unknown_field_rejected(self, tree):
        hip = tree.find(ITEM, 100)
        rejection = tree.set_explicit_rate(hip, "markup_pct", 5)
        assert rejection.reason == "unknown rate field"
        assert rejection.field == "markup_pct"
        assert hip.rates.is_empty()
