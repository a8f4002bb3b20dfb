"""
Error taxonomy shared by the auth gate, the query builder and the data layer.

Every ``DashboardError`` carries the HTTP status it maps to; the API layer
turns them into JSON responses in ``dw_dashboard.api.errors``.
"""
from __future__ import annotations


class DashboardError(Exception):
    """Base class for errors that surface to the client."""

    status_code: int = 500

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ClientInputError(DashboardError):
    """Bad request parameters: dates, grouping, filters, metric."""

    status_code = 400


class AuthError(DashboardError):
    status_code = 401


class MissingTokenError(AuthError):
    """No bearer token was presented."""

    status_code = 403


class InvalidTokenError(AuthError):
    """Token is malformed, expired, or carries a bad signature."""


class InvalidCredentialsError(AuthError):
    pass


class UsernameTakenError(DashboardError):
    status_code = 409


class DownstreamError(DashboardError):
    """The data store was unreachable or the statement failed."""

    status_code = 500


class QueryAssemblyError(RuntimeError):
    """Compiled SQL and its parameter list are out of step.

    Not a client error: it means identifier wiring in the builder is broken.
    """
