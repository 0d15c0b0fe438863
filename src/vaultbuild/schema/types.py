"""Runtime type detection for frontmatter values."""

from __future__ import annotations

import datetime as dt
import re
from typing import Any

NULL = "null"
BOOLEAN = "boolean"
NUMBER = "number"
STRING = "string"
DATE_YMD = "date:YYYY-MM-DD"
DATE_ISO = "date:ISO8601"
OBJECT = "object"
UNKNOWN = "unknown"
ARRAY_EMPTY = "array<empty>"
ARRAY_MIXED = "array<mixed>"

_DATE_YMD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATE_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")


def array_of(element_type: str) -> str:
    return f"array<{element_type}>"


def is_array(type_name: str) -> bool:
    return type_name.startswith("array<")


def is_date(type_name: str) -> bool:
    return type_name.startswith("date:")


def detect_type(value: Any) -> str:
    """Classify *value* into one of the frontmatter type names.

    ``bool`` is tested before numbers since it subclasses ``int``. YAML
    parsers hand back ``datetime``/``date`` objects for unquoted dates; those
    map to the same names as their string forms.
    """
    if value is None:
        return NULL
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (int, float)):
        return NUMBER
    if isinstance(value, dt.datetime):
        return DATE_ISO
    if isinstance(value, dt.date):
        return DATE_YMD
    if isinstance(value, str):
        if _DATE_YMD_RE.match(value):
            return DATE_YMD
        if _DATE_ISO_RE.match(value):
            return DATE_ISO
        return STRING
    if isinstance(value, (list, tuple)):
        if not value:
            return ARRAY_EMPTY
        element_types = {detect_type(item) for item in value}
        if len(element_types) == 1:
            return array_of(element_types.pop())
        return ARRAY_MIXED
    if isinstance(value, dict):
        return OBJECT
    return UNKNOWN


def storage_type(type_name: str) -> str:
    """Map a canonical type to its SQLite storage class."""
    if type_name == BOOLEAN:
        return "INTEGER"
    if type_name == NUMBER:
        return "REAL"
    return "TEXT"
