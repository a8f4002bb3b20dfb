"""
Query builder -- turns dashboard request parameters into one parameterized
aggregate statement over the star schema.

Only one statement shape is produced:

    SELECT <group fields>, <metric> AS total_metrica
    FROM <fact> JOIN <4 dimensions>
    WHERE <date range> [AND <filter> ...]
    [GROUP BY <group fields>]
    ORDER BY total_metrica DESC

Identifiers reach the SQL text only as ``SqlIdentifier`` / ``SqlOperator`` /
``SqlExpression`` values minted by the validator.  Every client scalar is
bound through ``ParameterList`` and appears in the text as a ``$n``
placeholder.  The builder is pure: no I/O, no shared mutable state.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Sequence

from pydantic import TypeAdapter, ValidationError

from dw_dashboard.core.errors import ClientInputError
from dw_dashboard.governance.semantic_loader import (
    StarSchema,
    SqlExpression,
    SqlIdentifier,
    SqlOperator,
    load_star_schema,
)
from dw_dashboard.governance.sql_safety import check_compiled_query
from dw_dashboard.governance.validator import (
    require_field,
    require_metric,
    require_operator,
)
from dw_dashboard.query.spec import CompiledQuery, FilterPredicate
from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_FILTER_LIST = TypeAdapter(list[FilterPredicate])


# ── Parameters ───────────────────────────────────────────

@dataclass(frozen=True)
class Placeholder:
    index: int

    def __str__(self) -> str:
        return f"${self.index}"


class ParameterList:
    """Ordered bound values; each ``bind`` returns the matching placeholder."""

    def __init__(self) -> None:
        self._values: list[Any] = []

    def bind(self, value: Any) -> Placeholder:
        self._values.append(value)
        return Placeholder(len(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def values(self) -> tuple:
        return tuple(self._values)


# ── Conditions ───────────────────────────────────────────

@dataclass(frozen=True)
class Between:
    field: SqlIdentifier
    low: Placeholder
    high: Placeholder

    def render(self) -> str:
        return f"{self.field} BETWEEN {self.low} AND {self.high}"


@dataclass(frozen=True)
class Comparison:
    field: SqlIdentifier
    operator: SqlOperator
    value: Placeholder

    def render(self) -> str:
        return f"{self.field} {self.operator} {self.value}"


# ── Date range ───────────────────────────────────────────

def _check_iso_date(value: str, name: str) -> date:
    if not isinstance(value, str) or not _ISO_DATE_RE.match(value):
        raise ClientInputError(f"{name} must be a date in YYYY-MM-DD format.")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ClientInputError(f"{name} is not a valid calendar date: {value}")


def compile_date_range(
    start_date: str | None,
    end_date: str | None,
    schema: StarSchema,
    params: ParameterList,
) -> Between:
    """Build the mandatory date-range condition; binds start then end."""
    if not start_date or not end_date:
        raise ClientInputError("startDate and endDate are required.")

    start = _check_iso_date(start_date, "startDate")
    end = _check_iso_date(end_date, "endDate")
    if start > end:
        raise ClientInputError("startDate must not be after endDate.")

    return Between(
        field=schema.date_identifier(),
        low=params.bind(start_date),
        high=params.bind(end_date),
    )


# ── Grouping ─────────────────────────────────────────────

def split_group_by(group_by: str | Sequence[str] | None) -> list[str]:
    """Split a comma-separated (or list-valued) grouping request into field refs.

    Blank input means "no grouping" and yields an empty list.
    """
    if group_by is None:
        return []

    items = [group_by] if isinstance(group_by, str) else list(group_by)
    if not all(isinstance(item, str) for item in items):
        raise ClientInputError("groupBy must be a string or a list of strings.")
    if all(not item.strip() for item in items):
        return []

    fields: list[str] = []
    for item in items:
        fields.extend(part.strip() for part in item.split(","))
    return fields


def compile_grouping(
    group_by: str | Sequence[str] | None,
    schema: StarSchema,
) -> list[SqlIdentifier]:
    """Validate every requested grouping field; order and duplicates are kept."""
    fields = split_group_by(group_by)
    if not fields:
        return []

    validated: list[SqlIdentifier] = []
    for ref in fields:
        try:
            validated.append(require_field(ref, schema))
        except ClientInputError:
            raise ClientInputError(
                f"Invalid grouping field: '{ref}'. "
                f"Allowed: {', '.join(schema.get_field_refs())}"
            )
    return validated


# ── Filters ──────────────────────────────────────────────

def parse_filters(raw: str | list | None) -> list[FilterPredicate]:
    """Decode the JSON ``filters`` parameter into predicates.

    Malformed JSON or a payload that is not a list of
    ``{field, operator, value}`` objects is a client error.
    """
    if raw is None:
        return []

    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            decoded = json.loads(raw)
        except (json.JSONDecodeError, RecursionError) as exc:
            logger.warning("Could not parse filters JSON: %s", exc)
            raise ClientInputError("Invalid filters format.", details=str(exc))
    else:
        decoded = raw

    if not isinstance(decoded, list):
        raise ClientInputError("Invalid filters format: expected a JSON array.")

    try:
        return _FILTER_LIST.validate_python(decoded)
    except ValidationError as exc:
        raise ClientInputError(
            "Invalid filters format: each filter needs field, operator and a scalar value.",
            details=str(exc),
        )


def _pattern_text(value: str | int | float | bool) -> str:
    """Render a scalar the way it appears in the JSON payload, for LIKE patterns."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def compile_filters(
    predicates: Sequence[FilterPredicate],
    schema: StarSchema,
    params: ParameterList,
) -> list[Comparison]:
    """Validate every predicate and bind its value; any invalid one fails the lot."""
    conditions: list[Comparison] = []
    for p in predicates:
        try:
            field = require_field(p.field, schema)
            operator = require_operator(p.operator, schema)
        except ClientInputError:
            raise ClientInputError(f"Invalid filter or field not allowed: {p.field} {p.operator}")

        if p.operator in schema.wildcard_operators:
            value = f"%{_pattern_text(p.value)}%"
        else:
            value = p.value
        conditions.append(Comparison(field=field, operator=operator, value=params.bind(value)))
    return conditions


# ── Assembly ─────────────────────────────────────────────

def assemble(
    schema: StarSchema,
    group_fields: Sequence[SqlIdentifier],
    metric: SqlExpression,
    conditions: Sequence[Between | Comparison],
    params: ParameterList,
) -> CompiledQuery:
    """Concatenate the clauses in fixed order and pair them with the parameters."""
    for f in group_fields:
        if not isinstance(f, SqlIdentifier):
            raise TypeError(f"Grouping field must be a SqlIdentifier, got {type(f).__name__}")
    if not isinstance(metric, SqlExpression):
        raise TypeError(f"Metric must be a SqlExpression, got {type(metric).__name__}")
    for c in conditions:
        if not isinstance(c, (Between, Comparison)):
            raise TypeError(f"Unsupported condition {type(c).__name__}")

    alias = schema.metric_alias_identifier()
    select_parts = [str(f) for f in group_fields]
    select_parts.append(f"{metric} AS {alias}")

    sql_lines: list[str] = ["SELECT", "  " + ", ".join(select_parts), schema.from_clause()]
    sql_lines.extend(schema.join_clauses())

    if conditions:
        sql_lines.append("WHERE " + "\n  AND ".join(c.render() for c in conditions))

    if group_fields:
        sql_lines.append("GROUP BY " + ", ".join(str(f) for f in group_fields))

    sql_lines.append(f"ORDER BY {alias} DESC")

    return CompiledQuery(sql="\n".join(sql_lines), params=params.values())


def build_query(
    start_date: str | None,
    end_date: str | None,
    group_by: str | Sequence[str] | None = None,
    filters: str | list | None = None,
    metric: str | None = None,
    schema: StarSchema | None = None,
) -> CompiledQuery:
    """Validate the request parameters and compile the dashboard statement.

    The date range is compiled first so it always owns ``$1`` and ``$2``;
    filter values follow in the order the filters were given.

    Raises
    ------
    ClientInputError
        Missing/invalid dates, unknown grouping field, bad filters, or a
        metric outside the allow-list.
    """
    if schema is None:
        schema = load_star_schema()

    params = ParameterList()
    date_range = compile_date_range(start_date, end_date, schema, params)
    group_fields = compile_grouping(group_by, schema)
    filter_conditions = compile_filters(parse_filters(filters), schema, params)
    metric_expr = require_metric(metric, schema)

    compiled = assemble(
        schema,
        group_fields,
        metric_expr,
        [date_range, *filter_conditions],
        params,
    )
    check_compiled_query(compiled.sql, compiled.params, schema)

    logger.info(
        "Compiled dashboard query  group_by=%s  filters=%d  params=%d",
        [str(f) for f in group_fields], len(filter_conditions), len(compiled.params),
    )
    logger.debug("SQL:\n%s\nParams: %s", compiled.sql, compiled.params)
    return compiled
