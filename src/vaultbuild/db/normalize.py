"""Frontmatter normalization and total value-to-storage coercion."""

from __future__ import annotations

import datetime as dt
import json
import math
import re
from typing import Any

from vaultbuild.schema.analyzer import FrontmatterSchema, to_jsonable
from vaultbuild.schema.types import BOOLEAN, STRING, is_array, is_date

STRICT = "strict"
PERMISSIVE = "permissive"
ORIGINAL = "original"

_TRUTHY = ("true", True, 1, "1")
_LEADING_INT_RE = re.compile(r"^\s*[+-]?\d+")
_LEADING_FLOAT_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

# SQLite INTEGER is a signed 64-bit value.
_SQLITE_INT_MIN = -(2**63)
_SQLITE_INT_MAX = 2**63 - 1


def _is_truthy(value: Any) -> bool:
    # bool is an int subclass: compare type-aware so 1.0/True both behave.
    if isinstance(value, bool):
        return value
    return any(type(value) is type(t) and value == t for t in _TRUTHY)


def _coerce(value: Any, recommended: str) -> Any:
    if value is None:
        return None
    if recommended == BOOLEAN and not isinstance(value, bool):
        return _is_truthy(value)
    if is_array(recommended) and not isinstance(value, (list, tuple)):
        return [value]
    if recommended == STRING and isinstance(value, (list, tuple)) and len(value) == 1:
        return value[0]
    if is_date(recommended) and isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    return value


def normalize_frontmatter(
    frontmatter: dict[str, Any] | None,
    schema: FrontmatterSchema | None,
    mode: str = PERMISSIVE,
) -> dict[str, Any]:
    """Return a copy of *frontmatter* coerced toward the schema's types.

    Modes:
        strict: properties missing from the schema are dropped.
        permissive: unknown properties are kept verbatim.
        original: identity, no coercion at all.

    Without a schema the frontmatter is returned unchanged.
    """
    if not frontmatter:
        return {}
    if schema is None or mode == ORIGINAL:
        return dict(frontmatter)

    normalized: dict[str, Any] = {}
    for key, value in frontmatter.items():
        entry = schema.get(key)
        if entry is None:
            if mode == PERMISSIVE:
                normalized[key] = value
            continue
        normalized[key] = _coerce(value, entry.recommended_type)
    return normalized


def _to_integer(value: Any) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        result = math.floor(value)
    elif isinstance(value, str):
        match = _LEADING_INT_RE.match(value)
        if not match:
            return None
        result = int(match.group())
    else:
        return None
    return result if _SQLITE_INT_MIN <= result <= _SQLITE_INT_MAX else None


def _to_real(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        match = _LEADING_FLOAT_RE.match(value)
        if not match:
            return None
        result = float(match.group())
    else:
        return None
    return result if math.isfinite(result) else None


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(to_jsonable(value), ensure_ascii=False, default=str)
    return str(value)


def to_storage(value: Any, storage_type: str) -> Any:
    """Convert *value* for an INTEGER/REAL/TEXT column. Never raises.

    Anything that can't be represented becomes ``None``.
    """
    if value is None:
        return None
    try:
        if storage_type == "INTEGER":
            return _to_integer(value)
        if storage_type == "REAL":
            return _to_real(value)
        return _to_text(value)
    except (TypeError, ValueError, OverflowError, RecursionError):
        return None


def dump_json(value: Any) -> str:
    """JSON-encode a frontmatter map for the opaque blob columns."""
    try:
        return json.dumps(to_jsonable(value), ensure_ascii=False, default=str)
    except (TypeError, ValueError, RecursionError):
        return "{}"
