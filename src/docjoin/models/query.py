"""Query object models: match expressions, sort map and pagination."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class Operator(StrEnum):
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "lte"
    EQUAL = "eq"
    NOT_EQUAL = "ne"
    GREATER_THAN_OR_EQUAL = "gte"
    GREATER_THAN = "gt"
    CONTAIN = "contain"
    NOT_CONTAIN = "notcontain"
    REGEXP = "regexp"
    BETWEEN = "between"


class Order(StrEnum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


class Operation(BaseModel):
    """A single operation applied to one column path."""

    operator: Operator
    value: Any = None


Match = dict[str, Operation]
"""Column path → operation. A list of matches is their logical OR."""


class Limit(BaseModel):
    """Pagination window."""

    start: int = Field(0, ge=0)
    count: int = Field(ge=0)


class Query(BaseModel):
    """A complete query over one entity.

    ``pre`` runs before any join is resolved, ``post`` after, so only
    ``post`` may reference joined fields.
    """

    pre: Match | list[Match] | None = None
    post: Match | list[Match] | None = None
    sort: dict[str, Order] | None = None
    limit: Limit | None = None
