"""
Read-only executor for compiled dashboard queries.

`execute_compiled`:
  1. Opens a READ ONLY transaction (Postgres-enforced)
  2. Rewrites ``$n`` placeholders to SQLAlchemy named binds (``:p<n>``)
  3. Enforces a per-statement timeout (statement_timeout)
  4. Converts Decimal/date/datetime to JSON-safe Python types

Any database failure, including a timeout, becomes ``DownstreamError`` for
this request only.
"""
from __future__ import annotations

import decimal
import datetime
import time
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from dw_dashboard.core.config import get_settings
from dw_dashboard.core.errors import DownstreamError
from dw_dashboard.db.connection import readonly_connection
from dw_dashboard.governance.sql_safety import PLACEHOLDER_RE
from dw_dashboard.query.spec import CompiledQuery
from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    return val


def to_named_binds(compiled: CompiledQuery) -> tuple[str, dict[str, Any]]:
    """``... BETWEEN $1 AND $2`` → ``... BETWEEN :p1 AND :p2`` plus ``{"p1": .., "p2": ..}``."""
    sql = PLACEHOLDER_RE.sub(lambda m: f":p{m.group(1)}", compiled.sql)
    params = {f"p{i}": value for i, value in enumerate(compiled.params, start=1)}
    return sql, params


def execute_compiled(
    compiled: CompiledQuery,
    timeout_ms: int | None = None,
) -> list[dict[str, Any]]:
    """Execute a compiled query read-only and return rows as serialisable dicts.

    Raises
    ------
    DownstreamError
        If the data store is unreachable or the statement fails.
    """
    if timeout_ms is None:
        timeout_ms = get_settings().query_timeout_ms

    sql, params = to_named_binds(compiled)
    logger.info("Executing dashboard SQL (%d chars, %d params)", len(sql), len(params))
    start = time.perf_counter()

    try:
        with readonly_connection() as conn:
            conn.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))

            result = conn.execute(text(sql), params)
            columns = list(result.keys())
            rows = [
                {col: _serialise_value(val) for col, val in zip(columns, row)}
                for row in result.fetchall()
            ]
    except SQLAlchemyError as exc:
        logger.exception("Dashboard query failed")
        detail = getattr(exc, "orig", None) or exc
        raise DownstreamError(
            "Internal server error while fetching dashboard data.",
            details=str(detail).strip(),
        ) from exc

    elapsed_ms = int((time.perf_counter() - start) * 1000)
    logger.info("Returned %d rows in %d ms", len(rows), elapsed_ms)
    return rows
