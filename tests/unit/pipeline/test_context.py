"""Tests for BuildContext."""

from __future__ import annotations

from pathlib import Path

import pytest

from vaultbuild.pipeline.context import BuildContext


def test_from_job_normalizes_paths():
    ctx = BuildContext.from_job({"jobId": "j1", "outputDir": "out", "sourceDir": "src"})
    assert ctx.job_id == "j1"
    assert ctx.output_dir == Path("out")
    assert ctx["sourceDir"] == Path("src")


def test_from_job_generates_job_id():
    ctx = BuildContext.from_job({"outputDir": "out"})
    assert len(ctx.job_id) == 12


def test_from_job_requires_output_dir():
    with pytest.raises(ValueError, match="outputDir"):
        BuildContext.from_job({"jobId": "j1"})


def test_add_is_add_only():
    ctx = BuildContext({"outputDir": Path("out")})
    ctx.add("schema", {"a": 1})
    assert ctx["schema"] == {"a": 1}
    with pytest.raises(ValueError, match="schema"):
        ctx.add("schema", {})


def test_mapping_protocol():
    ctx = BuildContext({"a": 1, "b": 2})
    assert len(ctx) == 2
    assert sorted(ctx) == ["a", "b"]
    assert ctx.get("missing") is None
    assert "keys=['a', 'b']" in repr(ctx)


def test_context_does_not_alias_job():
    job = {"outputDir": "out"}
    ctx = BuildContext.from_job(job)
    ctx.add("extra", 1)
    assert "extra" not in job


def test_from_job_ignores_unknown_keys():
    ctx = BuildContext.from_job(
        {"outputDir": "out", "config": "x", "schema": {}, "issues": [], "previousBuildDir": "prev"}
    )
    assert "config" not in ctx
    assert "issues" not in ctx
    assert ctx["previousBuildDir"] == "prev"
    ctx.add("config", {"a": 1})
    ctx.add("schema", {})
    assert ctx["config"] == {"a": 1}
