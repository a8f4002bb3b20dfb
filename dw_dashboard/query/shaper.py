"""
Result shaping for the dashboard front-end.

Rows come back from the executor keyed by column name: grouping columns are
named after the column part of their field reference (``dp.categoria_producto``
→ ``categoria_producto``) and the aggregate is under the metric alias.
"""
from __future__ import annotations

import decimal
import re
from dataclasses import dataclass, field
from typing import Any

from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)

_NON_NUMERIC_RE = re.compile(r"[^\d.\-]")


def to_number(val: Any) -> float:
    """Coerce an aggregate value to float; unusable values become 0.0."""
    if val is None:
        return 0.0
    if isinstance(val, bool):
        return float(val)
    if isinstance(val, (int, float, decimal.Decimal)):
        return float(val)
    cleaned = _NON_NUMERIC_RE.sub("", str(val).strip())
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def column_key(field_ref: str) -> str:
    """``dt.region_tienda`` → ``region_tienda``."""
    return field_ref.rsplit(".", 1)[-1]


def shape_rows(rows: list[dict[str, Any]], metric_alias: str) -> list[dict[str, Any]]:
    """Return rows with the metric alias always present as a float."""
    shaped = []
    for row in rows:
        out = dict(row)
        out[metric_alias] = to_number(row.get(metric_alias))
        shaped.append(out)
    return shaped


@dataclass
class ChartSeries:
    group_by: str
    labels: list[str] = field(default_factory=list)
    values: list[float] = field(default_factory=list)


def chart_series(
    rows: list[dict[str, Any]],
    group_field: str | None,
    metric_alias: str,
) -> ChartSeries:
    """Turn shaped rows into parallel label/value lists for pie, bar and line charts.

    Rows without a usable label fall back to ``Item <index>``.  Ungrouped
    queries produce a single ``Total`` slice.
    """
    series = ChartSeries(group_by=group_field or "")
    key = column_key(group_field) if group_field else None

    for i, row in enumerate(rows):
        if key is None:
            label = "Total"
        else:
            raw = row.get(key)
            label = str(raw).strip() if raw is not None else ""
            label = label or f"Item {i}"
        series.labels.append(label)
        series.values.append(to_number(row.get(metric_alias)))

    logger.debug("Chart series built  group_by=%s  points=%d", group_field, len(series.labels))
    return series
