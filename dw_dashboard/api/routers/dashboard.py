"""
GET /dashboard/dynamic-data, /dashboard/chart-data, /dashboard/catalog -- protected data endpoints.

Routes are plain ``def`` so FastAPI runs them in its threadpool; a query
waiting on Postgres never blocks other requests from being compiled.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from dw_dashboard.auth.dependencies import require_claim
from dw_dashboard.auth.tokens import SessionClaim
from dw_dashboard.core.errors import ClientInputError
from dw_dashboard.db.executor import execute_compiled
from dw_dashboard.governance.semantic_loader import load_star_schema
from dw_dashboard.query.builder import build_query, split_group_by
from dw_dashboard.query.shaper import chart_series, shape_rows
from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()



class ChartDataResponse(BaseModel):
    group_by: str
    labels: list[str]
    values: list[float]


class FieldItem(BaseModel):
    ref: str
    label: str


class MetricItem(BaseModel):
    name: str
    description: str
    expression: str


class CatalogResponse(BaseModel):
    fields: list[FieldItem]
    operators: list[str]
    metrics: list[MetricItem]
    default_metric: str
    metric_alias: str



def _fetch_rows(
    start_date: str | None,
    end_date: str | None,
    group_by: str | None,
    filters: str | None,
    metric: str | None,
    claim: SessionClaim,
) -> list[dict[str, Any]]:
    schema = load_star_schema()
    compiled = build_query(
        start_date,
        end_date,
        group_by=group_by,
        filters=filters,
        metric=metric,
        schema=schema,
    )
    logger.info("Dashboard query for user=%s rol=%s", claim.user_id, claim.rol)
    rows = execute_compiled(compiled)
    return shape_rows(rows, schema.metric_alias)


@router.get("/dynamic-data")
def dynamic_data(
    start_date: str | None = Query(None, alias="startDate", description="YYYY-MM-DD"),
    end_date: str | None = Query(None, alias="endDate", description="YYYY-MM-DD"),
    group_by: str | None = Query(None, alias="groupBy", description="Comma-separated field references"),
    filters: str | None = Query(None, description="JSON array of {field, operator, value}"),
    metric: str | None = Query(None, description="Metric name or allow-listed aggregate expression"),
    claim: SessionClaim = Depends(require_claim),
) -> list[dict[str, Any]]:
    """Aggregate sales grouped by the requested fields, ordered by total_metrica desc."""
    return _fetch_rows(start_date, end_date, group_by, filters, metric, claim)


@router.get("/chart-data", response_model=ChartDataResponse)
def chart_data(
    start_date: str | None = Query(None, alias="startDate", description="YYYY-MM-DD"),
    end_date: str | None = Query(None, alias="endDate", description="YYYY-MM-DD"),
    group_by: str | None = Query(None, alias="groupBy", description="A single field reference"),
    filters: str | None = Query(None, description="JSON array of {field, operator, value}"),
    metric: str | None = Query(None, description="Metric name or allow-listed aggregate expression"),
    claim: SessionClaim = Depends(require_claim),
) -> ChartDataResponse:
    """Same query as /dynamic-data, returned as label/value series for charts."""
    fields = split_group_by(group_by)
    if len(fields) > 1:
        raise ClientInputError("chart-data supports a single groupBy field.")

    rows = _fetch_rows(start_date, end_date, group_by, filters, metric, claim)
    series = chart_series(rows, fields[0] if fields else None, load_star_schema().metric_alias)
    return ChartDataResponse(group_by=series.group_by, labels=series.labels, values=series.values)


@router.get("/catalog", response_model=CatalogResponse)
def catalog(claim: SessionClaim = Depends(require_claim)) -> CatalogResponse:
    """Fields, operators and metrics the dashboard may request."""
    schema = load_star_schema()
    return CatalogResponse(
        fields=[FieldItem(ref=f.ref, label=f.label) for f in schema.fields],
        operators=sorted(schema.operators),
        metrics=[
            MetricItem(name=m.name, description=m.description, expression=m.expression)
            for m in schema.metrics
        ],
        default_metric=schema.default_metric,
        metric_alias=schema.metric_alias,
    )
