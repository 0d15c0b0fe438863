"""Frontmatter schema inference across the whole corpus.

Pure analysis: takes posts, returns an immutable FrontmatterSchema. Applying
the schema to storage is a separate, additive pass (vaultbuild.db.ddl).
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

from vaultbuild.models import Post
from vaultbuild.schema.types import (
    ARRAY_EMPTY,
    DATE_ISO,
    NULL,
    OBJECT,
    STRING,
    detect_type,
    is_array,
    is_date,
    storage_type,
)

MAX_SAMPLES = 3

# Core posts columns; frontmatter columns must never shadow these.
CORE_COLUMNS: tuple[str, ...] = (
    "_id",
    "_slug",
    "_title",
    "_content",
    "_backlinks",
    "_wordCount",
    "_created",
    "_modified",
    "_path",
    "_type",
    "_frontmatter",
    "_frontmatter_normalized",
)
_CORE_LOWER = frozenset(c.lower() for c in CORE_COLUMNS)

# SQL keywords that need quoting when used as a column identifier.
SQL_RESERVED_WORDS: frozenset[str] = frozenset(
    [
        "order", "group", "index", "key", "table", "column", "update", "delete",
        "insert", "select", "where", "from", "to", "limit", "offset", "join",
        "union", "having", "exists", "default", "check", "references", "primary",
        "unique", "values", "case", "when", "then", "else", "end", "as", "and",
        "or", "not", "null", "in", "is", "by", "on", "create", "drop", "alter",
        "transaction", "commit", "rollback", "constraint", "foreign", "into",
        "distinct", "between", "like", "all", "collate", "set", "with",
    ]
)

_NON_IDENT_RE = re.compile(r"[^a-z0-9_]")


# ---------------------------------------------------------------------------
# Schema value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchemaEntry:
    """Inferred type information for one frontmatter property."""

    name: str
    types: tuple[str, ...]
    occurrences: int
    nullable: bool
    samples: tuple[Any, ...]
    distribution: Mapping[str, int]
    recommended_type: str
    storage_type: str
    column_name: str
    needs_quoting: bool
    object_shape: Mapping[str, str] | None = None

    @property
    def value_types(self) -> tuple[str, ...]:
        """Observed types excluding ``null``."""
        return tuple(t for t in self.types if t != NULL)

    @property
    def has_conflict(self) -> bool:
        return len(self.value_types) > 1

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "types": list(self.types),
            "occurrences": self.occurrences,
            "nullable": self.nullable,
            "samples": [to_jsonable(s) for s in self.samples],
            "recommendedType": self.recommended_type,
            "sqlType": self.storage_type,
            "columnName": self.column_name,
            "needsQuoting": self.needs_quoting,
        }
        if self.object_shape is not None:
            data["objectShape"] = dict(self.object_shape)
        if self.has_conflict:
            data["conflicts"] = dict(self.distribution)
        else:
            data["distribution"] = dict(self.distribution)
        return data

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> SchemaEntry:
        distribution = data.get("conflicts") or data.get("distribution") or {}
        types = tuple(sorted(data.get("types") or distribution))
        recommended = data.get("recommendedType") or resolve_type(types, distribution)
        return cls(
            name=name,
            types=types,
            occurrences=int(data.get("occurrences", 0)),
            nullable=bool(data.get("nullable", False)),
            samples=tuple(data.get("samples") or ()),
            distribution=dict(distribution),
            recommended_type=recommended,
            storage_type=data.get("sqlType") or storage_type(recommended),
            column_name=data.get("columnName") or sanitize_column_name(name),
            needs_quoting=bool(data.get("needsQuoting", is_reserved_word(name))),
            object_shape=data.get("objectShape"),
        )


@dataclass(frozen=True)
class SchemaStatistics:
    total_posts: int = 0
    posts_with_frontmatter: int = 0
    unique_properties: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalPosts": self.total_posts,
            "postsWithFrontmatter": self.posts_with_frontmatter,
            "uniqueProperties": self.unique_properties,
        }


@dataclass(frozen=True)
class FrontmatterSchema:
    """Immutable result of a corpus-wide frontmatter scan."""

    entries: Mapping[str, SchemaEntry] = field(default_factory=dict)
    statistics: SchemaStatistics = field(default_factory=SchemaStatistics)
    error: str | None = None
    generated_at: str = ""

    @classmethod
    def degraded(cls, error: str, total_posts: int = 0) -> FrontmatterSchema:
        """Conflict-free empty schema used when the corpus could not be read."""
        return cls(
            entries={},
            statistics=SchemaStatistics(total_posts=total_posts),
            error=error,
            generated_at=_utc_now(),
        )

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, name: str) -> SchemaEntry | None:
        return self.entries.get(name)

    def conflicts(self) -> list[SchemaEntry]:
        return [e for e in self.entries.values() if e.has_conflict]

    @property
    def has_conflicts(self) -> bool:
        return any(e.has_conflict for e in self.entries.values())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "schema": {name: e.to_dict() for name, e in self.entries.items()},
            "statistics": self.statistics.to_dict(),
            "generatedAt": self.generated_at,
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FrontmatterSchema:
        stats = data.get("statistics") or {}
        return cls(
            entries={
                name: SchemaEntry.from_dict(name, entry)
                for name, entry in (data.get("schema") or {}).items()
            },
            statistics=SchemaStatistics(
                total_posts=int(stats.get("totalPosts", 0)),
                posts_with_frontmatter=int(stats.get("postsWithFrontmatter", 0)),
                unique_properties=int(stats.get("uniqueProperties", 0)),
            ),
            error=data.get("error"),
            generated_at=str(data.get("generatedAt", "")),
        )


# ---------------------------------------------------------------------------
# Resolution helpers
# ---------------------------------------------------------------------------


def _most_frequent(candidates: Iterable[str], distribution: Mapping[str, int]) -> str:
    return sorted(candidates, key=lambda t: (-distribution.get(t, 0), t))[0]


def resolve_type(types: Iterable[str], distribution: Mapping[str, int]) -> str:
    """Pick the canonical type for a property.

    Priority: single type; ISO-8601 among date formats; array over scalar
    string; most frequent (ties by name). ``null`` only wins when nothing
    else was observed.
    """
    candidates = sorted({t for t in types if t != NULL})
    if not candidates:
        return NULL
    if len(candidates) == 1:
        return candidates[0]

    dates = [t for t in candidates if is_date(t)]
    if dates:
        return DATE_ISO if DATE_ISO in dates else dates[0]

    arrays = [t for t in candidates if is_array(t)]
    if STRING in candidates and arrays:
        non_empty = [t for t in arrays if t != ARRAY_EMPTY] or arrays
        return _most_frequent(non_empty, distribution)

    return _most_frequent(candidates, distribution)


def sanitize_column_name(name: str) -> str:
    """Lowercase alphanumeric-plus-underscore identifier for *name*."""
    ident = _NON_IDENT_RE.sub("_", str(name).lower())
    if not ident:
        return "_"
    if ident[0].isdigit():
        ident = f"_{ident}"
    return ident


def is_reserved_word(name: str) -> bool:
    return str(name).lower() in SQL_RESERVED_WORDS


def assign_column_names(properties: Iterable[str]) -> dict[str, str]:
    """Map each property to a unique column name, independent of input order.

    Names shadowing a core column get an ``fm_`` prefix; later collisions (in
    sorted property order) get ``_2``, ``_3``, ... suffixes.
    """
    used: set[str] = set(_CORE_LOWER)
    columns: dict[str, str] = {}
    for prop in sorted(set(properties)):
        base = sanitize_column_name(prop)
        if base in _CORE_LOWER:
            base = f"fm{base}" if base.startswith("_") else f"fm_{base}"
        candidate = base
        n = 2
        while candidate in used:
            candidate = f"{base}_{n}"
            n += 1
        used.add(candidate)
        columns[prop] = candidate
    return columns


# ---------------------------------------------------------------------------
# Accumulation
# ---------------------------------------------------------------------------


class _PropertyStats:
    __slots__ = ("types", "occurrences", "nullable", "samples", "distribution", "object_shape")

    def __init__(self) -> None:
        self.types: set[str] = set()
        self.occurrences = 0
        self.nullable = False
        self.samples: list[Any] = []
        self.distribution: dict[str, int] = {}
        self.object_shape: dict[str, set[str]] | None = None

    def observe(self, value: Any) -> None:
        type_name = detect_type(value)
        self.types.add(type_name)
        self.occurrences += 1
        self.distribution[type_name] = self.distribution.get(type_name, 0) + 1

        if value is None:
            self.nullable = True
        elif len(self.samples) < MAX_SAMPLES:
            self.samples.append(value)

        if type_name == OBJECT:
            if self.object_shape is None:
                self.object_shape = {}
            for key, sub_value in value.items():
                self.object_shape.setdefault(str(key), set()).add(detect_type(sub_value))


def analyze_frontmatter(posts: Iterable[Post]) -> FrontmatterSchema:
    """Infer a FrontmatterSchema from every post's frontmatter map."""
    registry: dict[str, _PropertyStats] = {}
    total = 0
    with_frontmatter = 0

    for post in posts:
        total += 1
        frontmatter = post.frontmatter
        if not isinstance(frontmatter, dict) or not frontmatter:
            continue
        with_frontmatter += 1
        for key, value in frontmatter.items():
            registry.setdefault(str(key), _PropertyStats()).observe(value)

    columns = assign_column_names(registry)
    entries: dict[str, SchemaEntry] = {}
    for name in sorted(registry):
        stats = registry[name]
        recommended = resolve_type(stats.types, stats.distribution)
        shape = None
        if stats.object_shape is not None:
            shape = {k: "|".join(sorted(v)) for k, v in sorted(stats.object_shape.items())}
        entries[name] = SchemaEntry(
            name=name,
            types=tuple(sorted(stats.types)),
            occurrences=stats.occurrences,
            nullable=stats.nullable,
            samples=tuple(stats.samples),
            distribution=dict(sorted(stats.distribution.items())),
            recommended_type=recommended,
            storage_type=storage_type(recommended),
            column_name=columns[name],
            needs_quoting=is_reserved_word(name) or is_reserved_word(columns[name]),
            object_shape=shape,
        )

    return FrontmatterSchema(
        entries=entries,
        statistics=SchemaStatistics(
            total_posts=total,
            posts_with_frontmatter=with_frontmatter,
            unique_properties=len(entries),
        ),
        generated_at=_utc_now(),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def to_jsonable(value: Any) -> Any:
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value
