"""
Contract Pricing Terms -- FastAPI application.

Provides REST endpoints around the contract pricing-term core: a snapshot of
a contract's rate tree (effective rates, price waterfalls, checkbox states and
roll-ups), an ad-hoc waterfall preview, and the flattened line-item payload a
client submits when saving.  The core never persists anything itself.

The application is designed to run inside a Databricks App with SDK
auto-authentication.  For local development, set DATABRICKS_HOST and
DATABRICKS_TOKEN environment variables.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from backend.models import (
    InvalidRateInput,
    SavePayloadRequest,
    SavePayloadResponse,
    WaterfallRequest,
    WaterfallResponse,
)
from backend.pricing.session import ContractPricingSession, TreeSnapshot
from backend.pricing.tree import EffectiveRate
from backend.pricing.waterfall import compute, margin_band
from backend.services.catalog import load_contract_seed
from backend.utils.config import APP_TITLE, APP_VERSION, LOG_LEVEL, STATIC_FILES_DIR

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan (startup / shutdown)
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup and shutdown hooks."""
    logger.info("Starting %s v%s", APP_TITLE, APP_VERSION)
    yield
    logger.info("Shutting down %s", APP_TITLE)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
app = FastAPI(
    title=APP_TITLE,
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS -- allow all origins for Databricks App iframe embedding
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _open_session(contract_id: int, vendor_id: int) -> ContractPricingSession:
    """Load the seed for a contract and build a fresh editing session."""
    try:
        seed = load_contract_seed(contract_id, vendor_id)
    except Exception as exc:
        logger.exception("Failed to load pricing seed for contract %s", contract_id)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return ContractPricingSession(contract_id, seed)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------
@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Return a simple health-check response."""
    return {"status": "healthy", "version": APP_VERSION}


# ---------------------------------------------------------------------------
# Pricing tree
# ---------------------------------------------------------------------------
@app.get(
    "/api/v1/contracts/{contract_id}/pricing-tree",
    response_model=TreeSnapshot,
    tags=["pricing"],
    summary="Rate tree of a contract with resolved pricing",
)
async def api_get_pricing_tree(
    contract_id: int,
    vendor_id: int = Query(..., description="Vendor whose catalog the contract prices"),
) -> TreeSnapshot:
    """Return the vendor's segment -> category -> item tree for a contract.

    Every item carries its explicit and effective rates, its waterfall and its
    margin band; segments and categories carry their checkbox state and
    roll-up totals.  Saved line items whose target no longer exists are
    reported as warnings.
    """
    session = _open_session(contract_id, vendor_id)
    return session.snapshot()


@app.post(
    "/api/v1/contracts/{contract_id}/pricing-tree/save-payload",
    response_model=SavePayloadResponse,
    tags=["pricing"],
    summary="Replay edits and return the line items to save",
)
async def api_save_payload(
    contract_id: int,
    request: SavePayloadRequest,
) -> SavePayloadResponse:
    """Apply the client's edits to a fresh tree and flatten it.

    Rejected rate edits do not abort the replay; they are returned alongside
    the payload so the console can show them.  An edit addressing a node that
    does not exist returns 404.
    """
    session = _open_session(contract_id, request.vendor_id)

    rejections: list[InvalidRateInput] = []
    try:
        for edit in request.edits:
            rejection = session.apply(edit)
            if rejection is not None:
                rejections.append(rejection)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    line_items, changes = session.save_payload()
    return SavePayloadResponse(
        contract_id=contract_id,
        line_items=line_items,
        changes=changes,
        rejections=rejections,
        warnings=session.warnings,
    )


# ---------------------------------------------------------------------------
# Waterfall preview
# ---------------------------------------------------------------------------
@app.post(
    "/api/v1/pricing/waterfall",
    response_model=WaterfallResponse,
    tags=["pricing"],
    summary="Price waterfall for one item and a set of rates",
)
async def api_waterfall(request: WaterfallRequest) -> WaterfallResponse:
    """Compute the discount -> rebate -> conditional -> growth waterfall."""
    effective = EffectiveRate(
        discount_pct=request.discount_pct,
        rebate_pct=request.rebate_pct,
        conditional_rebate_pct=request.conditional_rebate_pct,
        growth_rebate_pct=request.growth_rebate_pct,
        monthly_quantity_commitment=request.monthly_quantity_commitment,
    )
    result = compute(request, effective)
    return WaterfallResponse(
        result=result,
        contract_margin_band=margin_band(result.contract_margin),
        growth_margin_band=margin_band(result.growth_margin),
    )


# ---------------------------------------------------------------------------
# Static files (frontend) -- must be last so it doesn't shadow API routes
# ---------------------------------------------------------------------------
_static_dir = os.path.join(os.path.dirname(__file__), "..", STATIC_FILES_DIR)
if os.path.isdir(_static_dir):
    app.mount("/", StaticFiles(directory=_static_dir, html=True), name="static")
    logger.info("Mounted static files from %s", _static_dir)
else:
    logger.warning(
        "Static directory %s not found; frontend will not be served", _static_dir
    )
