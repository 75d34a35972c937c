"""
Pydantic data models for the Contract Pricing Terms API.

Boundary records exchanged with the catalog / contract-item store and the
request / response schemas of the HTTP layer live here so they can be shared
across the pricing core, services, and tests.  JSON uses camelCase aliases to
match the admin console; Python code uses the snake_case field names.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PricingLevel(str, Enum):
    """Hierarchy depth at which a rate override is anchored."""

    SEGMENT = "Segment"
    CATEGORY = "Category"
    ITEM = "Item"


class CheckState(str, Enum):
    """Displayed checkbox state of a hierarchy node."""

    CHECKED = "checked"
    UNCHECKED = "unchecked"
    INDETERMINATE = "indeterminate"


# ---------------------------------------------------------------------------
# Catalog seed records
# ---------------------------------------------------------------------------
class SegmentRecord(CamelModel):
    """A vendor segment from the catalog."""

    id: int
    name: str = ""


class CategoryRecord(CamelModel):
    """An item category, keyed to its segment."""

    id: int
    name: str = ""
    segment_id: int


class ItemRecord(CamelModel):
    """A catalog item with the attributes the waterfall needs."""

    id: int
    name: str = ""
    description: Optional[str] = None
    category_id: int
    list_price: float = Field(0.0, ge=0)
    cost: float = Field(0.0, ge=0)
    eaches_per_unit_of_measure: float = Field(1.0, ge=0)


# ---------------------------------------------------------------------------
# Contract line items
# ---------------------------------------------------------------------------
class ContractLineItem(CamelModel):
    """One saved (or to-be-saved) pricing term of a contract.

    ``target_id`` refers to a segment, category or item depending on
    ``pricing_level``.  The computed price columns are only filled in by the
    flattener; seed records may leave them empty.
    """

    id: Optional[int] = None
    pricing_level: PricingLevel
    target_id: int
    discount_percentage: Optional[float] = None
    rebate_percentage: Optional[float] = None
    conditional_rebate: Optional[float] = None
    growth_rebate: Optional[float] = None
    quantity_commitment: Optional[float] = None
    flat_discount_price: Optional[float] = None
    net_rebate_price: Optional[float] = None
    commitment_dollars: Optional[float] = None


class ContractSeed(CamelModel):
    """Everything needed to open an editing session for one contract."""

    segments: list[SegmentRecord] = Field(default_factory=list)
    categories: list[CategoryRecord] = Field(default_factory=list)
    items: list[ItemRecord] = Field(default_factory=list)
    line_items: list[ContractLineItem] = Field(default_factory=list)


class ContractItemChanges(CamelModel):
    """Difference between saved line items and a freshly flattened set.

    ``segment_pricing`` and ``category_pricing`` are the complete sets of
    explicit ancestor terms to keep; ids of saved rows among them are not
    listed in ``to_delete``.
    """

    to_create: list[ContractLineItem] = Field(default_factory=list)
    to_update: list[ContractLineItem] = Field(default_factory=list)
    to_delete: list[int] = Field(default_factory=list)
    segment_pricing: list[ContractLineItem] = Field(default_factory=list)
    category_pricing: list[ContractLineItem] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Non-fatal diagnostics
# ---------------------------------------------------------------------------
class ResolutionWarning(CamelModel):
    """A saved line item whose target no longer exists in the catalog."""

    pricing_level: PricingLevel
    target_id: int
    line_item_id: Optional[int] = None
    message: str = ""


class InvalidRateInput(CamelModel):
    """A rejected rate edit; the node kept its prior value."""

    field: str
    value: Union[float, str, None] = None
    reason: str = ""


# ---------------------------------------------------------------------------
# Pricing results
# ---------------------------------------------------------------------------
class PricingResult(CamelModel):
    """The full price waterfall for one item.

    Margins are fractions (0.4 means 40 %).
    """

    list_price: float
    cost: float
    normal_margin: float
    price_after_discount: float
    price_after_rebate: float
    price_after_conditional_rebate: float
    price_after_growth_rebate: float
    contract_margin: float
    growth_margin: float
    contract_margin_delta: float
    growth_margin_delta: float
    commitment_dollars: float
    total_eaches: float
    net_monthly_revenue: float


class PricingRollup(CamelModel):
    """Quantity-weighted totals over the selected items below a node."""

    selected_items: int = 0
    monthly_total_revenue: float = 0.0
    monthly_net_revenue: float = 0.0
    total_cost: float = 0.0
    margin: float = 0.0
    margin_band: str = "error"


# ---------------------------------------------------------------------------
# HTTP request / response schemas
# ---------------------------------------------------------------------------
class RateValues(CamelModel):
    """Explicit rate values supplied by a caller; ``None`` means unset."""

    discount_pct: Optional[float] = None
    rebate_pct: Optional[float] = None
    conditional_rebate_pct: Optional[float] = None
    growth_rebate_pct: Optional[float] = None
    monthly_quantity_commitment: Optional[float] = None


class WaterfallRequest(CamelModel):
    """Ad-hoc waterfall preview for one item and a set of rates."""

    list_price: float = Field(..., ge=0)
    cost: float = Field(0.0, ge=0)
    eaches_per_unit_of_measure: float = Field(1.0, ge=0)
    discount_pct: float = Field(0.0, ge=0, le=100)
    rebate_pct: float = Field(0.0, ge=0, le=100)
    conditional_rebate_pct: float = Field(0.0, ge=0, le=100)
    growth_rebate_pct: float = Field(0.0, ge=0, le=100)
    monthly_quantity_commitment: float = Field(0.0, ge=0)


class WaterfallResponse(CamelModel):
    """Waterfall preview plus the margin colour bands."""

    result: PricingResult
    contract_margin_band: str
    growth_margin_band: str


class SetRateEdit(CamelModel):
    """Set or clear one rate field of a node."""

    op: Literal["set_rate"] = "set_rate"
    level: PricingLevel
    node_id: int
    field: str
    value: Union[float, str, None] = None


class ToggleEdit(CamelModel):
    """Toggle selection of a node."""

    op: Literal["toggle"] = "toggle"
    level: PricingLevel
    node_id: int


PricingEdit = Annotated[Union[SetRateEdit, ToggleEdit], Field(discriminator="op")]


class SavePayloadRequest(CamelModel):
    """Edits to replay on a freshly built tree before flattening."""

    vendor_id: int
    edits: list[PricingEdit] = Field(
        default_factory=list, description="Edits in the order they were made"
    )


class SavePayloadResponse(CamelModel):
    """The flattened line items and everything the console needs to show."""

    contract_id: int
    line_items: list[ContractLineItem]
    changes: ContractItemChanges
    rejections: list[InvalidRateInput] = Field(default_factory=list)
    warnings: list[ResolutionWarning] = Field(default_factory=list)
