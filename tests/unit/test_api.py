"""
API tests -- FastAPI endpoints via TestClient (no live server or database needed).
"""
import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from dw_dashboard.api.main import app
from dw_dashboard.api.routers import dashboard
from dw_dashboard.auth.passwords import hash_password
from dw_dashboard.auth.tokens import issue_token
from dw_dashboard.core.errors import DownstreamError, QueryAssemblyError, UsernameTakenError
from dw_dashboard.db.users import UserRecord, get_user_store

client = TestClient(app)


class MemoryStore:
    def __init__(self):
        self.users = {}

    def get(self, username):
        return self.users.get(username)

    def insert(self, username, password_hash, rol):
        if username in self.users:
            raise UsernameTakenError("Username already exists.")
        self.users[username] = UserRecord(len(self.users) + 1, username, password_hash, rol)


@pytest.fixture
def store():
    s = MemoryStore()
    s.insert("ana", hash_password("s3cret", rounds=4), "admin")
    app.dependency_overrides[get_user_store] = lambda: s
    yield s
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {issue_token(1, 'admin')}"}


@pytest.fixture
def fake_db(monkeypatch):
    """Capture compiled queries and return canned rows instead of hitting Postgres."""
    calls = []
    rows = [
        {"categoria_producto": "Laptops", "total_metrica": 1500.5},
        {"categoria_producto": "Phones", "total_metrica": "320"},
    ]

    def _execute(compiled, timeout_ms=None):
        calls.append(compiled)
        return rows

    monkeypatch.setattr(dashboard, "execute_compiled", _execute)
    return calls


_DATES = {"startDate": "2024-01-01", "endDate": "2024-01-31"}



def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ── /login ───────────────────────────────────────────────

def test_login_ok(store):
    resp = client.post("/login", json={"username": "ana", "password": "s3cret"})
    assert resp.status_code == 200
    assert "token" in resp.json()


def test_login_bad_password(store):
    resp = client.post("/login", json={"username": "ana", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid credentials."


def test_login_unknown_user(store):
    resp = client.post("/login", json={"username": "ghost", "password": "s3cret"})
    assert resp.status_code == 401


def test_login_token_unlocks_dashboard(store, fake_db):
    token = client.post("/login", json={"username": "ana", "password": "s3cret"}).json()["token"]
    resp = client.get(
        "/dashboard/dynamic-data",
        params=_DATES,
        headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 200


# ── /crear-usuario ───────────────────────────────────────

def test_create_user(store):
    resp = client.post("/crear-usuario", json={"username": "luis", "password": "pw", "rol": "analista"})
    assert resp.status_code == 201
    assert store.get("luis").rol == "analista"


def test_create_user_conflict(store):
    resp = client.post("/crear-usuario", json={"username": "ana", "password": "pw", "rol": "admin"})
    assert resp.status_code == 409


def test_create_user_store_failure(store, monkeypatch):
    def _boom(*args):
        raise DownstreamError("Server error while creating user.", details="db down")

    monkeypatch.setattr(store, "insert", _boom)
    resp = client.post("/crear-usuario", json={"username": "x", "password": "pw", "rol": "admin"})
    assert resp.status_code == 500


# ── Token gate ───────────────────────────────────────────

def test_no_token_is_403(fake_db):
    resp = client.get("/dashboard/dynamic-data", params=_DATES)
    assert resp.status_code == 403
    assert fake_db == []


def test_empty_bearer_is_403(fake_db):
    resp = client.get("/dashboard/dynamic-data", params=_DATES, headers={"Authorization": "Bearer "})
    assert resp.status_code == 403


def test_invalid_token_is_401(fake_db):
    resp = client.get("/dashboard/dynamic-data", params=_DATES, headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
    assert fake_db == []


def test_expired_token_is_401(fake_db):
    token = issue_token(1, "admin", now=datetime.now(timezone.utc) - timedelta(days=1))
    resp = client.get("/dashboard/dynamic-data", params=_DATES, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


# ── /dashboard/dynamic-data ──────────────────────────────

def test_dynamic_data_ok(auth_headers, fake_db):
    resp = client.get(
        "/dashboard/dynamic-data",
        params={**_DATES, "groupBy": "dp.categoria_producto"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert resp.json() == [
        {"categoria_producto": "Laptops", "total_metrica": 1500.5},
        {"categoria_producto": "Phones", "total_metrica": 320.0},
    ]
    compiled = fake_db[0]
    assert "GROUP BY dp.categoria_producto" in compiled.sql
    assert compiled.params == ("2024-01-01", "2024-01-31")


def test_dynamic_data_with_filters(auth_headers, fake_db):
    filters = json.dumps([{"field": "dt.region_tienda", "operator": "ILIKE", "value": "norte"}])
    resp = client.get(
        "/dashboard/dynamic-data",
        params={**_DATES, "filters": filters},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert "AND dt.region_tienda ILIKE $3" in fake_db[0].sql
    assert fake_db[0].params[2] == "%norte%"


@pytest.mark.parametrize(
    "params",
    [
        {"startDate": "2024-01-01"},
        {"endDate": "2024-01-31"},
        {**_DATES, "startDate": "01-01-2024"},
        {**_DATES, "groupBy": "dc.edad"},
        {**_DATES, "groupBy": "dp.categoria_producto,dc.edad"},
        {**_DATES, "filters": "[{broken"},
        {**_DATES, "filters": "[" * 100_000 + "]" * 100_000},
        {**_DATES, "filters": '[{"field":"dc.edad","operator":"=","value":1}]'},
        {**_DATES, "filters": '[{"field":"dc.genero","operator":"<>","value":"F"}]'},
        {**_DATES, "metric": "SUM(fv.total_venta); DROP TABLE usuarios"},
    ],
)
def test_dynamic_data_client_errors(auth_headers, fake_db, params):
    resp = client.get("/dashboard/dynamic-data", params=params, headers=auth_headers)
    assert resp.status_code == 400
    assert "message" in resp.json()
    assert fake_db == []


def test_dynamic_data_downstream_failure(auth_headers, monkeypatch):
    def _fail(compiled, timeout_ms=None):
        raise DownstreamError(
            "Internal server error while fetching dashboard data.",
            details='relation "factventas" does not exist',
        )

    monkeypatch.setattr(dashboard, "execute_compiled", _fail)
    resp = client.get("/dashboard/dynamic-data", params=_DATES, headers=auth_headers)
    assert resp.status_code == 500
    body = resp.json()
    assert body["message"] == "Internal server error while fetching dashboard data."
    assert "factventas" in body["details"]


def test_assembly_defect_is_generic_500(auth_headers, monkeypatch):
    def _broken(*args, **kwargs):
        raise QueryAssemblyError("placeholders out of step")

    monkeypatch.setattr(dashboard, "build_query", _broken)
    lenient = TestClient(app, raise_server_exceptions=False)
    resp = lenient.get("/dashboard/dynamic-data", params=_DATES, headers=auth_headers)
    assert resp.status_code == 500
    assert resp.json() == {"message": "Internal server error."}


# ── /dashboard/chart-data ────────────────────────────────

def test_chart_data(auth_headers, fake_db):
    resp = client.get(
        "/dashboard/chart-data",
        params={**_DATES, "groupBy": "dp.categoria_producto"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "group_by": "dp.categoria_producto",
        "labels": ["Laptops", "Phones"],
        "values": [1500.5, 320.0],
    }


def test_chart_data_rejects_multiple_groups(auth_headers, fake_db):
    resp = client.get(
        "/dashboard/chart-data",
        params={**_DATES, "groupBy": "dp.categoria_producto,dc.genero"},
        headers=auth_headers,
    )
    assert resp.status_code == 400
    assert fake_db == []


def test_chart_data_requires_token(fake_db):
    resp = client.get("/dashboard/chart-data", params=_DATES)
    assert resp.status_code == 403


# ── /dashboard/catalog ───────────────────────────────────

def test_catalog(auth_headers):
    resp = client.get("/dashboard/catalog", headers=auth_headers)
    assert resp.status_code == 200
    data = resp.json()
    refs = [f["ref"] for f in data["fields"]]
    assert "dp.categoria_producto" in refs
    assert len(refs) == 14
    assert "ILIKE" in data["operators"]
    assert data["default_metric"] == "total_ventas"
    assert data["metric_alias"] == "total_metrica"


def test_catalog_requires_token():
    assert client.get("/dashboard/catalog").status_code == 403
