"""
Unit tests -- field / operator / metric allow-list checks.
"""
import pytest

from dw_dashboard.core.errors import ClientInputError
from dw_dashboard.governance.semantic_loader import (
    load_star_schema,
    StarSchema,
    SqlExpression,
    SqlIdentifier,
    SqlOperator,
)
from dw_dashboard.governance.validator import (
    is_allowed_field,
    is_allowed_operator,
    require_field,
    require_metric,
    require_operator,
)


@pytest.fixture(scope="module")
def schema() -> StarSchema:
    return load_star_schema()


# ── Fields ───────────────────────────────────────────────

@pytest.mark.parametrize("ref", ["dp.categoria_producto", "dc.genero", "dcal.anio", "dt.region_tienda"])
def test_allowed_fields(schema, ref):
    assert is_allowed_field(ref, schema) is True


@pytest.mark.parametrize(
    "ref",
    [
        "dc.edad",                      # not in the allow-list
        "DP.CATEGORIA_PRODUCTO",        # no case folding
        "dp.categoria_producto ",       # no trimming
        "dp.categoria",                 # no prefix match
        "dp.categoria_producto_x",      # no partial match
        "dp.*",
        "dp.categoria_producto; DROP TABLE usuarios",
        "",
    ],
)
def test_rejected_fields(schema, ref):
    assert is_allowed_field(ref, schema) is False


def test_non_string_field_rejected(schema):
    assert is_allowed_field(None, schema) is False
    assert is_allowed_field(["dc.genero"], schema) is False


def test_require_field_returns_identifier(schema):
    assert require_field("dt.nombre_tienda", schema) == SqlIdentifier("dt.nombre_tienda")


def test_require_field_raises(schema):
    with pytest.raises(ClientInputError, match="dc.edad"):
        require_field("dc.edad", schema)


# ── Operators ────────────────────────────────────────────

@pytest.mark.parametrize("op", ["=", ">", "<", ">=", "<=", "LIKE", "ILIKE"])
def test_allowed_operators(schema, op):
    assert is_allowed_operator(op, schema) is True


@pytest.mark.parametrize("op", ["like", "ilike", "<>", "!=", "IN", "= ", "OR", "=1 OR 1"])
def test_rejected_operators(schema, op):
    assert is_allowed_operator(op, schema) is False


def test_require_operator(schema):
    assert require_operator("ILIKE", schema) == SqlOperator("ILIKE")
    with pytest.raises(ClientInputError, match="<>"):
        require_operator("<>", schema)


# ── Metrics ──────────────────────────────────────────────

def test_metric_default_when_missing(schema):
    assert require_metric(None, schema) == SqlExpression("SUM(fv.total_venta)")
    assert require_metric("", schema) == SqlExpression("SUM(fv.total_venta)")


def test_metric_by_name(schema):
    assert require_metric("numero_ventas", schema) == SqlExpression("COUNT(*)")


def test_metric_by_exact_expression(schema):
    assert require_metric("SUM(fv.total_venta)", schema) == SqlExpression("SUM(fv.total_venta)")


@pytest.mark.parametrize(
    "metric",
    ["sum(fv.total_venta)", "SUM(fv.total_venta) ", "MAX(fv.total_venta)", "(SELECT password FROM usuarios)"],
)
def test_metric_outside_allow_list(schema, metric):
    with pytest.raises(ClientInputError, match="Metric not allowed"):
        require_metric(metric, schema)
