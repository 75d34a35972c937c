"""
Configuration module for the Contract Pricing Terms backend.

All settings are configurable via environment variables with sensible defaults
for Databricks Apps deployment.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Unity Catalog
# ---------------------------------------------------------------------------
CATALOG_NAME: str = os.getenv("CATALOG_NAME", "contracts_catalog")
SCHEMA_CATALOG: str = os.getenv("SCHEMA_CATALOG", "catalog")
SCHEMA_CONTRACTS: str = os.getenv("SCHEMA_CONTRACTS", "contracts")


# Fully-qualified table helpers
def _fqn(schema: str, table: str) -> str:
    """Return a fully-qualified three-level Unity Catalog table name."""
    return f"{CATALOG_NAME}.{schema}.{table}"


# Product hierarchy tables
TABLE_VENDOR_SEGMENTS: str = _fqn(SCHEMA_CATALOG, "vendor_segments")
TABLE_ITEM_CATEGORIES: str = _fqn(SCHEMA_CATALOG, "item_categories")
TABLE_ITEMS: str = _fqn(SCHEMA_CATALOG, "items")

# Contract tables
TABLE_CONTRACT_ITEMS: str = _fqn(SCHEMA_CONTRACTS, "contract_items")

# ---------------------------------------------------------------------------
# SQL Warehouse
# ---------------------------------------------------------------------------
WAREHOUSE_ID: str = os.getenv("DATABRICKS_WAREHOUSE_ID", "your-warehouse-id")

# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------
CACHE_TTL: int = int(os.getenv("CACHE_TTL", "300"))  # seconds

# ---------------------------------------------------------------------------
# Databricks connection (local dev fallback)
# ---------------------------------------------------------------------------
DATABRICKS_HOST: str = os.getenv("DATABRICKS_HOST", "")
DATABRICKS_TOKEN: str = os.getenv("DATABRICKS_TOKEN", "")

# ---------------------------------------------------------------------------
# Margin bands (percent) used to colour margins in the console
# ---------------------------------------------------------------------------
MARGIN_SUCCESS_PCT: float = float(os.getenv("MARGIN_SUCCESS_PCT", "80"))
MARGIN_WARNING_PCT: float = float(os.getenv("MARGIN_WARNING_PCT", "70"))

# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------
APP_TITLE: str = "Contract Pricing Terms"
APP_VERSION: str = "1.0.0"
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
STATIC_FILES_DIR: str = os.getenv("STATIC_FILES_DIR", "static")
