"""Post-compilation stage validation against the aggregation vocabulary."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

_STAGES = frozenset(
    {"$match", "$lookup", "$unwind", "$group", "$project", "$sort", "$skip", "$limit", "$count"}
)
_LOOKUP_KEYS = frozenset({"from", "let", "pipeline", "as"})


def validate_stages(stages: Sequence[Any], prefix: str = "") -> list[str]:
    """Check stage documents are well formed.

    Returns a list of error messages (empty if valid).
    Validation is non-blocking; callers should treat errors as warnings.
    """
    errors: list[str] = []
    for position, stage in enumerate(stages):
        where = f"{prefix}[{position}]"
        if not isinstance(stage, dict) or len(stage) != 1:
            errors.append(f"Stage {where} must be a single-key document")
            continue
        ((kind, body),) = stage.items()
        if kind not in _STAGES:
            errors.append(f"Stage {where} uses unknown operator '{kind}'")
        elif kind == "$lookup":
            missing = _LOOKUP_KEYS - set(body)
            if missing:
                errors.append(f"Stage {where} $lookup is missing {', '.join(sorted(missing))}")
            errors.extend(validate_stages(body.get("pipeline", []), f"{where}.pipeline"))
        elif kind == "$unwind":
            path = body.get("path", "")
            if not isinstance(path, str) or not path.startswith("$"):
                errors.append(f"Stage {where} $unwind path must be a '$'-prefixed field path")
        elif kind == "$group":
            if "_id" not in body:
                errors.append(f"Stage {where} $group has no _id")
        elif kind in ("$skip", "$limit"):
            if not isinstance(body, int) or body < 0:
                errors.append(f"Stage {where} {kind} must be a non-negative integer")
        elif kind == "$project" and not body:
            errors.append(f"Stage {where} $project is empty")
    return errors
