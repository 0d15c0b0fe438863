"""Tests for corpus-wide frontmatter schema inference."""

from __future__ import annotations

import datetime as dt

import pytest

from conftest import make_post
from vaultbuild.schema.analyzer import (
    FrontmatterSchema,
    analyze_frontmatter,
    assign_column_names,
    resolve_type,
    sanitize_column_name,
)


def _schema(*frontmatters: dict) -> FrontmatterSchema:
    return analyze_frontmatter(
        [make_post(f"h{i}", frontmatter=fm) for i, fm in enumerate(frontmatters)]
    )


# ---------------------------------------------------------------------------
# resolve_type
# ---------------------------------------------------------------------------


def test_resolve_single_type():
    assert resolve_type(["number"], {"number": 4}) == "number"


def test_resolve_prefers_iso_date():
    types = ["date:YYYY-MM-DD", "date:ISO8601"]
    assert resolve_type(types, {"date:YYYY-MM-DD": 9, "date:ISO8601": 1}) == "date:ISO8601"


def test_resolve_date_beats_string():
    assert resolve_type(["string", "date:YYYY-MM-DD"], {"string": 5, "date:YYYY-MM-DD": 1}) == (
        "date:YYYY-MM-DD"
    )


def test_resolve_string_and_array_prefers_array():
    dist = {"string": 10, "array<string>": 1}
    assert resolve_type(["string", "array<string>"], dist) == "array<string>"


def test_resolve_string_and_arrays_prefers_non_empty_array():
    dist = {"string": 1, "array<empty>": 5, "array<string>": 1}
    assert resolve_type(dist.keys(), dist) == "array<string>"


def test_resolve_most_frequent():
    assert resolve_type(["boolean", "number"], {"boolean": 1, "number": 3}) == "number"


def test_resolve_tie_broken_by_name():
    assert resolve_type(["number", "boolean"], {"boolean": 2, "number": 2}) == "boolean"


def test_resolve_ignores_null():
    assert resolve_type(["null", "string"], {"null": 10, "string": 1}) == "string"


def test_resolve_null_only():
    assert resolve_type(["null"], {"null": 2}) == "null"


# ---------------------------------------------------------------------------
# Column names
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("name,expected", [
    ("Title", "title"),
    ("pub date", "pub_date"),
    ("my-key.v2", "my_key_v2"),
    ("2col", "_2col"),
    ("", "_"),
    ("héllo", "h_llo"),
])
def test_sanitize_column_name(name, expected):
    assert sanitize_column_name(name) == expected


def test_assign_column_names_collisions_are_order_independent():
    first = assign_column_names(["Foo", "foo", "FOO"])
    second = assign_column_names(["foo", "FOO", "Foo"])
    assert first == second
    assert sorted(first.values()) == ["foo", "foo_2", "foo_3"]


def test_assign_column_names_avoids_core_columns():
    columns = assign_column_names(["_slug", "_wordcount", "slug"])
    assert columns["_slug"] == "fm_slug"
    assert columns["_wordcount"] == "fm_wordcount"
    assert columns["slug"] == "slug"


# ---------------------------------------------------------------------------
# analyze_frontmatter
# ---------------------------------------------------------------------------


def test_analyze_tags_conflict():
    schema = _schema({"tags": "solo"}, {"tags": ["a", "b"]})
    entry = schema.get("tags")
    assert set(entry.types) == {"string", "array<string>"}
    assert entry.recommended_type == "array<string>"
    assert entry.has_conflict
    assert entry.storage_type == "TEXT"
    assert schema.has_conflicts


def test_analyze_statistics(sample_posts):
    schema = analyze_frontmatter(sample_posts)
    assert schema.statistics.total_posts == 3
    assert schema.statistics.posts_with_frontmatter == 2
    assert schema.statistics.unique_properties == len(schema)


def test_analyze_occurrences_nullable_and_samples():
    schema = _schema({"a": 1}, {"a": None}, {"a": 2}, {"a": 3}, {"a": 4})
    entry = schema.get("a")
    assert entry.occurrences == 5
    assert entry.nullable
    assert entry.samples == (1, 2, 3)
    assert entry.distribution == {"null": 1, "number": 4}
    assert not entry.has_conflict
    assert entry.recommended_type == "number"


def test_analyze_object_shape():
    schema = _schema({"meta": {"x": 1}}, {"meta": {"x": "one", "y": True}})
    assert dict(schema.get("meta").object_shape) == {"x": "number|string", "y": "boolean"}


def test_analyze_reserved_word_flagged():
    schema = _schema({"order": 1, "group": "x", "title": "t"})
    assert schema.get("order").needs_quoting
    assert schema.get("group").needs_quoting
    assert not schema.get("title").needs_quoting


def test_analyze_yaml_dates():
    schema = _schema({"date": dt.date(2024, 1, 1)}, {"date": "2024-02-02T00:00:00"})
    assert schema.get("date").recommended_type == "date:ISO8601"


def test_analyze_empty_corpus():
    schema = analyze_frontmatter([])
    assert len(schema) == 0
    assert not schema.has_conflicts
    assert schema.error is None


def test_schema_round_trips_through_dict():
    schema = _schema({"tags": "solo", "when": dt.date(2024, 1, 1)}, {"tags": ["a"]})
    data = schema.to_dict()
    assert data["schema"]["tags"]["conflicts"] == {"array<string>": 1, "string": 1}
    assert data["schema"]["when"]["samples"] == ["2024-01-01"]
    restored = FrontmatterSchema.from_dict(data)
    assert restored.get("tags").recommended_type == "array<string>"
    assert restored.statistics == schema.statistics


def test_degraded_schema_has_no_conflicts():
    schema = FrontmatterSchema.degraded("boom", total_posts=4)
    assert schema.error == "boom"
    assert len(schema) == 0
    assert schema.conflicts() == []
    assert schema.to_dict()["error"] == "boom"
