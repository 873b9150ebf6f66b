"""Coerces match operands into the BSON types their columns store."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from bson import ObjectId
from pydantic import TypeAdapter, ValidationError

from docjoin.models.errors import TypeMismatchError
from docjoin.models.schema import Column, Format, RealColumn

_DATETIME: TypeAdapter[datetime] = TypeAdapter(datetime)
# Lax datetime parsing reads bare numbers as Unix time.
_NUMERIC = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*")


def _has(column: Column, fmt: Format) -> bool:
    if not isinstance(column, RealColumn):
        return False
    return fmt in column.formats or column.items == fmt


class ValueCaster:
    """Casts operand values: identifier strings to ``ObjectId``, date strings to ``datetime``.

    Values that cannot be converted are returned unchanged.
    """

    def cast(self, value: Any, column: Column) -> Any:
        if not isinstance(value, str):
            return value
        if _has(column, Format.ID) and len(value) == 24 and ObjectId.is_valid(value):
            return ObjectId(value)
        if _has(column, Format.DATE) and not _NUMERIC.fullmatch(value):
            try:
                return _DATETIME.validate_python(value)
            except ValidationError:
                return value
        return value

    def cast_many(self, values: Any, column: Column, path: str | None = None) -> list[Any]:
        """Cast every element of a list operand."""
        if not isinstance(values, Sequence) or isinstance(values, (str, bytes)):
            raise TypeMismatchError(
                f"Operand for column '{path or column.name}' must be a list, "
                f"got {type(values).__name__}",
                path=path,
            )
        return [self.cast(value, column) for value in values]
