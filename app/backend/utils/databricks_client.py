"""
Databricks client singleton and SQL helper.

The catalog and contract tables are read through the SQL Statement Execution
API of a single WorkspaceClient.  In Databricks Apps the SDK authenticates as
the app's service principal; locally, DATABRICKS_HOST and DATABRICKS_TOKEN are
used.  Catalog reads are cached in memory for ``CACHE_TTL`` seconds.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from databricks.sdk import WorkspaceClient
from databricks.sdk.config import Config
from databricks.sdk.service.sql import (
    StatementParameterListItem,
    StatementResponse,
    StatementState,
)

from backend.utils.config import (
    CACHE_TTL,
    CATALOG_NAME,
    DATABRICKS_HOST,
    DATABRICKS_TOKEN,
    SCHEMA_CATALOG,
    WAREHOUSE_ID,
)

logger = logging.getLogger(__name__)

Row = dict[str, Any]

# ---------------------------------------------------------------------------
# In-memory result cache: key -> (stored_at, rows)
# ---------------------------------------------------------------------------
_cache: dict[str, tuple[float, list[Row]]] = {}


def _cached(key: str) -> list[Row] | None:
    entry = _cache.get(key)
    if entry is None:
        return None
    stored_at, rows = entry
    if time.time() - stored_at >= CACHE_TTL:
        del _cache[key]
        return None
    return rows


def _store(key: str, rows: list[Row]) -> None:
    """Cache *rows* under *key*, dropping every entry that has expired."""
    now = time.time()
    expired = [k for k, (stored_at, _) in _cache.items() if now - stored_at >= CACHE_TTL]
    for stale in expired:
        del _cache[stale]
    _cache[key] = (now, rows)


# ---------------------------------------------------------------------------
# Singleton client
# ---------------------------------------------------------------------------
_client: WorkspaceClient | None = None


def get_workspace_client() -> WorkspaceClient:
    """Return the shared WorkspaceClient, creating it on first use."""
    global _client
    if _client is None:
        config = Config(http_timeout_seconds=120)
        if DATABRICKS_TOKEN:
            logger.info("Initializing WorkspaceClient with token (local dev mode)")
            _client = WorkspaceClient(
                host=DATABRICKS_HOST, token=DATABRICKS_TOKEN, config=config
            )
        else:
            logger.info("Initializing WorkspaceClient with SDK auto-auth")
            _client = WorkspaceClient(config=config)
    return _client


# ---------------------------------------------------------------------------
# SQL helper
# ---------------------------------------------------------------------------
def _bind(params: dict[str, Any] | None) -> list[StatementParameterListItem] | None:
    """Named parameter markers; the API takes every value as a string."""
    if not params:
        return None
    return [
        StatementParameterListItem(
            name=name, value=None if value is None else str(value)
        )
        for name, value in params.items()
    ]


def _rows(response: StatementResponse) -> list[Row]:
    columns = [col.name for col in response.manifest.schema.columns]
    if not response.result or not response.result.data_array:
        return []
    return [dict(zip(columns, values)) for values in response.result.data_array]


def execute_sql(
    query: str,
    *,
    params: dict[str, Any] | None = None,
    cache_key: str | None = None,
    catalog: str | None = None,
    schema: str | None = None,
) -> list[Row]:
    """Run one statement on the configured SQL warehouse.

    Parameters
    ----------
    query:
        SQL text.  Named markers such as ``:vendor_id`` are bound from
        *params*; ``None`` is bound as SQL ``NULL``.
    cache_key:
        When given, rows are cached under this key for ``CACHE_TTL`` seconds.
        The key must identify the parameters as well as the query.
    catalog / schema:
        Override the default catalog / schema for this statement.

    Returns
    -------
    list[dict]
        One dict per row mapping column name -> string value (or ``None``).

    Raises
    ------
    RuntimeError
        If the statement does not finish in the ``SUCCEEDED`` state.
    """
    if cache_key:
        rows = _cached(cache_key)
        if rows is not None:
            logger.debug("Cache hit for %s", cache_key)
            return rows

    started = time.time()
    response = get_workspace_client().statement_execution.execute_statement(
        warehouse_id=WAREHOUSE_ID,
        statement=query,
        parameters=_bind(params),
        wait_timeout="30s",
        catalog=catalog or CATALOG_NAME,
        schema=schema or SCHEMA_CATALOG,
    )

    state = response.status.state if response.status else None
    if state != StatementState.SUCCEEDED:
        error = getattr(response.status, "error", None)
        raise RuntimeError(f"SQL execution failed ({state}): {error}")

    rows = _rows(response)
    logger.debug(
        "Statement returned %d rows in %.2fs", len(rows), time.time() - started
    )
    if cache_key:
        _store(cache_key, rows)
    return rows
