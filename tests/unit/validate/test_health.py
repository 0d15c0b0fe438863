"""Tests for the content-health checks."""

from __future__ import annotations

import pytest

from conftest import make_media, make_post
from vaultbuild.config import ValidationCfg
from vaultbuild.issues import Category, Severity
from vaultbuild.models import MediaRef
from vaultbuild.schema.analyzer import analyze_frontmatter
from vaultbuild.validate.health import (
    check_content_ratio,
    check_empty_corpus,
    check_orphaned_media,
    check_required_fields,
    check_thin_content,
    extract_media_references,
    normalize_reference,
    validate_content,
)

_FULL_FM = {"title": "T", "date": "2024-01-01", "description": "D"}


# ---------------------------------------------------------------------------
# Reference extraction
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "ref, expected",
    [
        ("./media/a.png", "media/a.png"),
        ("/media/a.png", "media/a.png"),
        ("media/my%20photo.png", "media/my photo.png"),
        ("media/a.png?v=2", "media/a.png"),
        ("media/a.png#frag", "media/a.png"),
        ("<media/a b.png>", "media/a b.png"),
    ],
)
def test_normalize_reference(ref, expected):
    assert normalize_reference(ref) == expected


def test_extract_media_references_all_forms():
    content = (
        '![alt](./img/one.png "Title")\n'
        '<p><img class="x" src="/img/two.jpg"></p>\n'
        "![[three.gif|300]]\n"
        "[not an image](four.png)\n"
    )
    assert extract_media_references(content) == {"img/one.png", "img/two.jpg", "three.gif"}


def test_extract_media_references_empty():
    assert extract_media_references("") == set()


# ---------------------------------------------------------------------------
# Orphaned media
# ---------------------------------------------------------------------------


def test_orphaned_media_ten_files_six_referenced(collector):
    media = [make_media(f"m{i}", f"file{i}.png") for i in range(10)]
    content = " ".join(f"![x](media/file{i}.png)" for i in range(6))
    posts = [make_post("h1", content=content)]

    assert check_orphaned_media(posts, media, collector) == ["orphaned_media"]

    [issue] = collector.issues
    assert issue.category == Category.CONTENT
    assert issue.severity == Severity.WARNING
    assert issue.context["totalOrphaned"] == 4
    assert issue.context["totalMedia"] == 10
    assert issue.context["orphanedFiles"] == [f"file{i}.png" for i in range(6, 10)]
    assert issue.message == "4 media files (40%) not referenced in any posts"


def test_orphaned_examples_capped_at_five(collector):
    media = [make_media(f"m{i}", f"file{i}.png") for i in range(8)]
    check_orphaned_media([make_post("h1")], media, collector)
    [issue] = collector.issues
    assert issue.context["totalOrphaned"] == 8
    assert len(issue.context["orphanedFiles"]) == 5


def test_media_referenced_by_basename_or_media_ref(collector):
    media = [
        make_media("m1", "a.png"),
        make_media("m2", "b.png"),
        make_media("m3", "c.png"),
    ]
    posts = [
        make_post("h1", html='<img src="https://cdn.example.com/x/a.png">'),
        make_post("h2", media=(MediaRef(id="m2"),)),
        make_post("h3", content="![[c.png]]"),
    ]
    assert check_orphaned_media(posts, media, collector) == []
    assert len(collector) == 0


def test_orphan_check_skipped_without_posts(collector):
    assert check_orphaned_media([], [make_media("m1", "a.png")], collector) == []


# ---------------------------------------------------------------------------
# Other checks
# ---------------------------------------------------------------------------


def test_empty_corpus(collector):
    assert check_empty_corpus([], [], collector) == ["no_posts", "no_media"]
    assert {i.category for i in collector.issues} == {Category.CONFIGURATION}


def test_low_content_ratio(collector):
    posts = [make_post("h1")]
    media = [make_media(f"m{i}", f"{i}.png") for i in range(19)]
    assert check_content_ratio(posts, media, collector, min_ratio=0.10) == ["low_content_ratio"]
    assert collector.issues[0].context["contentRatio"] == pytest.approx(0.05)


def test_content_ratio_ok(collector):
    assert check_content_ratio([make_post("h1")], [make_media("m1", "a.png")], collector) == []


def test_required_fields(collector):
    posts = [
        make_post("h1", frontmatter=dict(_FULL_FM)),
        make_post("h2", frontmatter={"title": "Only title"}),
        make_post("h3", frontmatter={"title": "", "date": "2024-01-01"}),
    ]
    schema = analyze_frontmatter(posts)

    assert check_required_fields(posts, collector, schema=schema) == ["incomplete_frontmatter"]

    [issue] = collector.issues
    assert issue.category == Category.CONTENT
    assert issue.context["totalAffected"] == 2
    assert issue.context["affectedPosts"] == ["post-h2", "post-h3"]
    assert issue.context["missingFields"] == {"date": 1, "description": 2, "title": 1}
    assert issue.context["absentFromSchema"] == []
    assert "2 posts (67%)" in issue.message


def test_required_fields_all_present(collector):
    assert check_required_fields([make_post("h1", frontmatter=dict(_FULL_FM))], collector) == []


def test_thin_content(collector):
    posts = [make_post("h1"), make_post("h2", plain="tiny")]
    assert check_thin_content(posts, collector, min_chars=100) == ["short_content"]
    [issue] = collector.issues
    assert issue.context["affectedPosts"] == [{"slug": "post-h2", "length": 4}]


# ---------------------------------------------------------------------------
# validate_content
# ---------------------------------------------------------------------------


def test_validate_content_sample_corpus(sample_posts, sample_media, collector):
    schema = analyze_frontmatter(sample_posts)
    report = validate_content(sample_posts, sample_media, schema, collector)

    assert report.metrics == {"postCount": 3, "mediaCount": 2, "contentRatio": pytest.approx(0.6)}
    assert "orphaned_media" in report.warnings
    assert "short_content" in report.warnings
    assert "incomplete_frontmatter" in report.warnings
    assert report.issues == collector.issues


def test_validate_content_reports_only_its_own_issues(collector):
    collector.warning(Category.BUILD, "earlier stage")
    report = validate_content([make_post("h1", frontmatter=dict(_FULL_FM))], [], None, collector)
    assert report.warnings == ["no_media"]
    assert [i.message for i in report.issues] == ["No media files found in repository"]
    assert report.metrics["contentRatio"] == 1.0


def test_empty_corpus_metrics(collector):
    report = validate_content([], [], None, collector)
    assert report.metrics["contentRatio"] == 0.0
    assert report.warnings == ["no_posts", "no_media"]


def test_crashing_check_does_not_stop_others(collector):
    posts = [make_post("h1", plain="x", frontmatter=["not", "a", "mapping"])]
    report = validate_content(posts, [], None, collector)

    assert "short_content" in report.warnings
    crashed = [i for i in report.issues if i.context.get("check") == "required_fields"]
    assert len(crashed) == 1
    assert crashed[0].message.startswith("Content check 'required_fields' could not run")


def test_config_thresholds_apply(collector):
    cfg = ValidationCfg(required_fields=[], min_content_chars=1)
    report = validate_content([make_post("h1", plain="ok")], [], None, collector, cfg)
    assert report.warnings == ["no_media"]


def test_report_to_dict(collector):
    report = validate_content([], [], None, collector)
    data = report.to_dict()
    assert data["warnings"] == ["no_posts", "no_media"]
    assert len(data["issues"]) == 2
