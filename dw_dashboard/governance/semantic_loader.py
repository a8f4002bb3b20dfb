"""
Loads, parses, and caches the star-schema descriptor YAML into immutable objects.

The descriptor is the single source of truth for:
  - the fact table and its four dimension joins
  - the field allow-list (columns usable in GROUP BY and filters)
  - the operator allow-list for filter predicates
  - the metric allow-list (aggregate expressions) and the output alias
  - the calendar column constrained by the mandatory date range

It is built once per process and shared by every request; nothing here is
ever mutated after load.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

_SCHEMA_PATH = Path(__file__).resolve().parents[2] / "semantic_layer" / "star_schema.yml"

_DIMENSION_COUNT = 4


# ── Identifier wrappers ──────────────────────────────────
# Only the schema and the validator create these.  The statement assembler
# accepts nothing else in identifier slots, so a raw client string can never
# end up in SQL text.

@dataclass(frozen=True)
class SqlIdentifier:
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class SqlOperator:
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class SqlExpression:
    text: str

    def __str__(self) -> str:
        return self.text


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class FactTable:
    table: str
    alias: str


@dataclass(frozen=True)
class JoinEdge:
    table: str
    alias: str
    on: str
    join_type: str  # inner | left


@dataclass(frozen=True)
class FieldDef:
    ref: str          # "<alias>.<column>"
    table_alias: str
    column: str
    label: str


@dataclass(frozen=True)
class MetricDef:
    name: str
    description: str
    expression: str


@dataclass(frozen=True)
class StarSchema:
    """Fully parsed star-schema descriptor."""

    version: int
    fact: FactTable
    joins: tuple[JoinEdge, ...]
    fields: tuple[FieldDef, ...]
    operators: frozenset[str]
    wildcard_operators: frozenset[str]
    date_field: str
    metrics: tuple[MetricDef, ...]
    default_metric: str
    metric_alias: str

    # ── Convenience look-ups ─────────────────────────

    def field(self, ref: str) -> FieldDef | None:
        for f in self.fields:
            if f.ref == ref:
                return f
        return None

    def metric(self, name: str) -> MetricDef | None:
        for m in self.metrics:
            if m.name == name:
                return m
        return None

    def get_field_refs(self) -> list[str]:
        return [f.ref for f in self.fields]

    def get_metric_names(self) -> list[str]:
        return [m.name for m in self.metrics]

    def table_aliases(self) -> dict[str, str]:
        """Return a map of alias → table name for the fact table and every join."""
        mapping = {self.fact.alias: self.fact.table}
        for j in self.joins:
            mapping[j.alias] = j.table
        return mapping

    # ── Trusted SQL fragments ────────────────────────

    def date_identifier(self) -> SqlIdentifier:
        return SqlIdentifier(self.date_field)

    def metric_alias_identifier(self) -> SqlIdentifier:
        return SqlIdentifier(self.metric_alias)

    def default_metric_expression(self) -> SqlExpression:
        return SqlExpression(self.metric(self.default_metric).expression)

    def from_clause(self) -> str:
        return f"FROM {self.fact.table} {self.fact.alias}"

    def join_clauses(self) -> list[str]:
        return [f"{j.join_type.upper()} JOIN {j.table} {j.alias} ON {j.on}" for j in self.joins]


# ── Parsing ──────────────────────────────────────────────

def _parse_field(raw: dict[str, Any]) -> FieldDef:
    ref = raw["ref"]
    alias, _, column = ref.partition(".")
    if not alias or not column:
        raise ValueError(f"Field reference '{ref}' must look like '<alias>.<column>'")
    return FieldDef(
        ref=ref,
        table_alias=alias,
        column=column,
        label=raw.get("label", column),
    )


def _parse_join(raw: dict[str, Any]) -> JoinEdge:
    return JoinEdge(
        table=raw["table"],
        alias=raw["alias"],
        on=raw["condition"],
        join_type=raw.get("type", "inner"),
    )


def _parse_metric(raw: dict[str, Any]) -> MetricDef:
    return MetricDef(
        name=raw["name"],
        description=raw.get("description", ""),
        expression=raw["expression"],
    )


def _parse_schema(raw_yaml: dict[str, Any]) -> StarSchema:
    fact_raw = raw_yaml["fact"]
    schema = StarSchema(
        version=raw_yaml.get("version", 1),
        fact=FactTable(table=fact_raw["table"], alias=fact_raw["alias"]),
        joins=tuple(_parse_join(j) for j in raw_yaml.get("joins", [])),
        fields=tuple(_parse_field(f) for f in raw_yaml.get("fields", [])),
        operators=frozenset(raw_yaml.get("operators", [])),
        wildcard_operators=frozenset(raw_yaml.get("wildcard_operators", [])),
        date_field=raw_yaml["date_field"],
        metrics=tuple(_parse_metric(m) for m in raw_yaml.get("metrics", [])),
        default_metric=raw_yaml["default_metric"],
        metric_alias=raw_yaml.get("metric_alias", "total_metrica"),
    )
    _check_schema(schema)
    return schema


def _check_schema(schema: StarSchema) -> None:
    if len(schema.joins) != _DIMENSION_COUNT:
        raise ValueError(
            f"Star schema must join exactly {_DIMENSION_COUNT} dimensions, "
            f"found {len(schema.joins)}"
        )

    aliases = schema.table_aliases()
    for f in schema.fields:
        if f.table_alias not in aliases:
            raise ValueError(f"Field '{f.ref}' uses unknown table alias '{f.table_alias}'")

    if schema.field(schema.date_field) is None:
        raise ValueError(f"Date field '{schema.date_field}' is not in the field allow-list")

    if not schema.wildcard_operators <= schema.operators:
        raise ValueError("Wildcard operators must also be allowed operators")

    if schema.metric(schema.default_metric) is None:
        raise ValueError(f"Default metric '{schema.default_metric}' is not defined")


# ── Public API ───────────────────────────────────────────

def load_schema_from(path: Path) -> StarSchema:
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return _parse_schema(raw)


@lru_cache
def load_star_schema() -> StarSchema:
    """Load and cache the star-schema descriptor from YAML."""
    return load_schema_from(_SCHEMA_PATH)
