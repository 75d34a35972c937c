"""
Shared fixtures: a small two-segment catalog used across the test modules.

Orthopaedics (1)
    Implants (10)       -- Hip Stem (100), Knee Tray (101)
    Instruments (11)    -- Bone Saw (110)
Endoscopy (2)
    Visualization (20)  -- Camera Head (200)
"""

from __future__ import annotations

import os
import sys

import pytest

# Ensure the app package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "app"))

from backend.models import (  # noqa: E402
    CategoryRecord,
    ContractSeed,
    ItemRecord,
    SegmentRecord,
)
from backend.pricing.tree import RateTree  # noqa: E402


def _segments() -> list[SegmentRecord]:
    return [
        SegmentRecord(id=1, name="Orthopaedics"),
        SegmentRecord(id=2, name="Endoscopy"),
    ]


def _categories() -> list[CategoryRecord]:
    return [
        CategoryRecord(id=10, name="Implants", segment_id=1),
        CategoryRecord(id=11, name="Instruments", segment_id=1),
        CategoryRecord(id=20, name="Visualization", segment_id=2),
    ]


def _items() -> list[ItemRecord]:
    return [
        ItemRecord(
            id=100,
            name="Hip Stem",
            description="Cementless femoral stem",
            category_id=10,
            list_price=100.0,
            cost=60.0,
            eaches_per_unit_of_measure=12,
        ),
        ItemRecord(
            id=101,
            name="Knee Tray",
            description="Tibial baseplate",
            category_id=10,
            list_price=200.0,
            cost=90.0,
        ),
        ItemRecord(id=110, name="Bone Saw", category_id=11, list_price=50.0, cost=20.0),
        ItemRecord(
            id=200, name="Camera Head", category_id=20, list_price=1000.0, cost=400.0
        ),
    ]


@pytest.fixture()
def catalog() -> ContractSeed:
    """The catalog with no saved line items."""
    return ContractSeed(segments=_segments(), categories=_categories(), items=_items())


@pytest.fixture()
def tree(catalog) -> RateTree:
    """A freshly built tree with nothing selected and no rates."""
    built, warnings = RateTree.build(
        catalog.segments, catalog.categories, catalog.items
    )
    assert warnings == []
    return built
