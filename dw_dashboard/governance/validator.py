"""
Allow-list checks for client-supplied identifiers.

Field references, filter operators and metric choices arrive as raw strings
from the query string.  They are matched against the star-schema descriptor
with exact, case-sensitive comparison: no trimming, no case folding, no
patterns.  Anything that passes comes back wrapped in a ``Sql*`` type; that
wrapper is the only thing the statement assembler will interpolate.
"""
from __future__ import annotations

from typing import Any

from dw_dashboard.core.errors import ClientInputError
from dw_dashboard.governance.semantic_loader import (
    StarSchema,
    SqlExpression,
    SqlIdentifier,
    SqlOperator,
)


def is_allowed_field(candidate: Any, schema: StarSchema) -> bool:
    if not isinstance(candidate, str):
        return False
    return any(f.ref == candidate for f in schema.fields)


def is_allowed_operator(candidate: Any, schema: StarSchema) -> bool:
    if not isinstance(candidate, str):
        return False
    return candidate in schema.operators


def require_field(candidate: Any, schema: StarSchema) -> SqlIdentifier:
    if not is_allowed_field(candidate, schema):
        raise ClientInputError(f"Field not allowed: {candidate}")
    return SqlIdentifier(candidate)


def require_operator(candidate: Any, schema: StarSchema) -> SqlOperator:
    if not is_allowed_operator(candidate, schema):
        raise ClientInputError(f"Operator not allowed: {candidate}")
    return SqlOperator(candidate)


def require_metric(candidate: str | None, schema: StarSchema) -> SqlExpression:
    """Resolve the requested metric to an allow-listed aggregate expression.

    ``None`` or an empty string selects the default metric.  A metric may be
    requested by name (``total_ventas``) or by its exact expression text
    (``SUM(fv.total_venta)``).
    """
    if candidate is None or candidate == "":
        return schema.default_metric_expression()

    for m in schema.metrics:
        if candidate == m.name or candidate == m.expression:
            return SqlExpression(m.expression)

    raise ClientInputError(
        f"Metric not allowed: {candidate}. "
        f"Allowed: {', '.join(schema.get_metric_names())}"
    )
