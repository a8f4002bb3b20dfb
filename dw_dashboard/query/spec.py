"""
Request artifacts handled by the query builder.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr

FilterValue = Union[StrictStr, StrictInt, StrictFloat, StrictBool]


class FilterPredicate(BaseModel):
    """One ad-hoc ``field operator value`` condition sent by the dashboard."""

    field: StrictStr = Field(..., description="Field reference, e.g. 'dt.region_tienda'")
    operator: StrictStr = Field(..., description="One of =, >, <, >=, <=, LIKE, ILIKE")
    value: FilterValue = Field(..., description="Scalar compared against the field")


@dataclass(frozen=True)
class CompiledQuery:
    """SQL text with ``$n`` placeholders and the values bound to them, in order."""

    sql: str
    params: tuple
