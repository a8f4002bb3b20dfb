"""
FastAPI application entry-point.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from dw_dashboard.api.errors import dashboard_error_handler, general_exception_handler
from dw_dashboard.api.routers import auth, dashboard
from dw_dashboard.core.config import get_settings
from dw_dashboard.core.errors import DashboardError
from dw_dashboard.db.users import get_user_store
from dw_dashboard.governance.semantic_loader import load_star_schema
from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Parse the star schema once at startup so a broken descriptor fails fast.
    load_star_schema()
    try:
        get_user_store().ensure_table()
    except SQLAlchemyError:
        logger.warning("Could not ensure user table (DB may not be available)")
    yield


app = FastAPI(
    title="Sales Data Warehouse Dashboard API",
    version="0.1.0",
    description="Authenticated aggregate queries over the sales star schema",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(DashboardError, dashboard_error_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(auth.router, tags=["Auth"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("dw_dashboard.api.main:app", host="0.0.0.0", port=get_settings().api_port)
