"""
Post-assembly checks on a compiled dashboard statement.

The builder only ever interpolates allow-listed identifiers, so none of these
checks can fail on client input.  A failure here means the builder itself is
broken, and it is raised as ``QueryAssemblyError`` rather than a client error.

Checks performed:
  1. SQL is a single SELECT statement
  2. No dangerous keywords (DDL / DML / privilege changes)
  3. No SQL comments
  4. Only the fact table and the joined dimension tables are referenced
  5. Placeholders $1..$N appear once each, in ascending order, and N equals
     the number of bound parameters
"""
from __future__ import annotations

import re
from typing import Sequence

from dw_dashboard.core.errors import QueryAssemblyError
from dw_dashboard.governance.semantic_loader import StarSchema
from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)

# ── Compiled patterns ────────────────────────────────────

_DANGEROUS_KW = re.compile(
    r"\b(DROP|ALTER|TRUNCATE|INSERT|UPDATE|DELETE|MERGE|GRANT|REVOKE|"
    r"CREATE|REPLACE|EXECUTE|EXEC|CALL|COPY|SET\s+ROLE|RESET\s+ROLE)\b",
    re.IGNORECASE,
)

_MULTI_STMT = re.compile(r";\s*\S")

_COMMENT_INLINE = re.compile(r"--")
_COMMENT_BLOCK = re.compile(r"/\*")

_FROM_JOIN_RE = re.compile(r"\b(?:FROM|JOIN)\s+(\w+)", re.IGNORECASE)

PLACEHOLDER_RE = re.compile(r"\$(\d+)")


def find_sql_problems(sql: str, schema: StarSchema) -> list[str]:
    """Return a list of structural problems (empty list = safe)."""
    errors: list[str] = []
    sql_stripped = sql.strip()

    if not sql_stripped.upper().startswith("SELECT"):
        errors.append("SQL must be a SELECT statement.")

    if _MULTI_STMT.search(sql_stripped):
        errors.append("Multi-statement SQL is not allowed.")

    m = _DANGEROUS_KW.search(sql_stripped)
    if m:
        errors.append(f"Dangerous keyword detected: '{m.group(1).upper()}'.")

    if _COMMENT_INLINE.search(sql_stripped):
        errors.append("Inline comments (--) are not allowed.")
    if _COMMENT_BLOCK.search(sql_stripped):
        errors.append("Block comments (/* */) are not allowed.")

    allowed_tables = set(schema.table_aliases().values())
    for ref in _FROM_JOIN_RE.findall(sql_stripped):
        if ref not in allowed_tables:
            errors.append(f"Table '{ref}' is not part of the star schema.")

    return errors


def find_placeholder_problems(sql: str, params: Sequence) -> list[str]:
    errors: list[str] = []
    indexes = [int(n) for n in PLACEHOLDER_RE.findall(sql)]
    expected = list(range(1, len(params) + 1))
    if indexes != expected:
        errors.append(
            f"Placeholders {indexes} do not line up with {len(params)} bound parameters."
        )
    return errors


def check_compiled_query(sql: str, params: Sequence, schema: StarSchema) -> None:
    """Raise ``QueryAssemblyError`` if the compiled statement is malformed."""
    errors = find_sql_problems(sql, schema) + find_placeholder_problems(sql, params)
    if errors:
        logger.error("Compiled query failed safety checks: %s", errors)
        raise QueryAssemblyError("; ".join(errors))
