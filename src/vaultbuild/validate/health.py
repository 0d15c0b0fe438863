"""Corpus-wide content-health checks.

Every check is independent: each one either records its finding on the
collector or, if it crashes, records that it could not run. A failing check
never stops the others.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence
from urllib.parse import unquote

from vaultbuild.config import ValidationCfg
from vaultbuild.issues import MAX_EXAMPLES, Category, Issue, IssueCollector
from vaultbuild.models import MediaItem, Post
from vaultbuild.schema.analyzer import FrontmatterSchema

logger = logging.getLogger(__name__)

_MODULE = "content-health"

_MD_IMAGE_RE = re.compile(r"!\[[^\]]*?\]\(([^)]*)\)")
_HTML_IMG_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)
_WIKI_EMBED_RE = re.compile(r"!\[\[([^\]]+)\]\]")


@dataclass
class HealthReport:
    """Outcome of validate_content()."""

    warnings: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    issues: list[Issue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "warnings": list(self.warnings),
            "metrics": dict(self.metrics),
            "issues": [i.to_dict() for i in self.issues],
        }


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def _post_label(post: Post) -> str:
    return post.slug or post.hash or "unknown"


# ---------------------------------------------------------------------------
# Media references
# ---------------------------------------------------------------------------


def normalize_reference(ref: str) -> str:
    """Canonical form of a media reference: decoded, no ./ or leading /."""
    ref = unquote(ref.strip().strip("<>"))
    ref = ref.split("#", 1)[0].split("?", 1)[0]
    if ref.startswith("./"):
        ref = ref[2:]
    return ref.lstrip("/")


def extract_media_references(content: str) -> set[str]:
    """Media targets referenced by Markdown images, <img> tags and ![[embeds]]."""
    if not content:
        return set()
    refs: set[str] = set()
    for match in _MD_IMAGE_RE.finditer(content):
        target = match.group(1).strip()
        # ![alt](path "title")
        if target and not target.startswith("<"):
            target = target.split()[0]
        if target:
            refs.add(target)
    refs.update(m.group(1) for m in _HTML_IMG_RE.finditer(content))
    for match in _WIKI_EMBED_RE.finditer(content):
        refs.add(match.group(1).split("|", 1)[0])
    return {r for r in (normalize_reference(ref) for ref in refs) if r}


def _used_media_keys(posts: Iterable[Post]) -> set[str]:
    used: set[str] = set()
    for post in posts:
        for text in (post.content, post.plain, post.html):
            for ref in extract_media_references(text):
                used.add(ref)
                used.add(os.path.basename(ref))
        for media_ref in post.media:
            for value in (media_ref.id, media_ref.hash, media_ref.filename):
                if value:
                    used.add(value)
            if media_ref.path:
                used.add(normalize_reference(media_ref.path))
                used.add(os.path.basename(media_ref.path))
    return used


def _is_referenced(item: MediaItem, used: set[str]) -> bool:
    candidates = [item.hash, item.id, item.filename]
    if item.path:
        path = normalize_reference(item.path)
        candidates += [path, os.path.basename(path)]
    return any(c and c in used for c in candidates)


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def check_empty_corpus(
    posts: Sequence[Post], media: Sequence[MediaItem], collector: IssueCollector
) -> list[str]:
    warnings: list[str] = []
    if not posts:
        collector.warning(
            Category.CONFIGURATION,
            "No markdown posts found in repository",
            module=_MODULE,
            suggestion="Ensure your repository contains .md files with valid frontmatter",
            context={"setting": "content.posts"},
        )
        warnings.append("no_posts")
    if not media:
        collector.warning(
            Category.CONFIGURATION,
            "No media files found in repository",
            module=_MODULE,
            suggestion="Add images, videos, or other media files to enhance your content",
            context={"setting": "content.media"},
        )
        warnings.append("no_media")
    return warnings


def check_content_ratio(
    posts: Sequence[Post],
    media: Sequence[MediaItem],
    collector: IssueCollector,
    min_ratio: float = 0.10,
) -> list[str]:
    if not posts or not media:
        return []
    ratio = len(posts) / (len(posts) + len(media))
    if ratio >= min_ratio:
        return []
    collector.warning(
        Category.CONFIGURATION,
        f"Low content ratio detected: {round(ratio * 100)}% posts vs "
        f"{round((1 - ratio) * 100)}% media",
        module=_MODULE,
        suggestion="Consider adding more written content to balance media files",
        context={"setting": "content.ratio", "contentRatio": ratio},
    )
    return ["low_content_ratio"]


def check_required_fields(
    posts: Sequence[Post],
    collector: IssueCollector,
    required: Sequence[str] = ("title", "date", "description"),
    schema: FrontmatterSchema | None = None,
) -> list[str]:
    if not posts or not required:
        return []
    affected: list[Post] = []
    breakdown: dict[str, int] = {}
    for post in posts:
        fm = post.frontmatter or {}
        missing = [f for f in required if not fm.get(f)]
        if missing:
            affected.append(post)
            for f in missing:
                breakdown[f] = breakdown.get(f, 0) + 1
    if not affected:
        return []

    context: dict[str, Any] = {
        "setting": "content.frontmatter",
        "affectedPosts": [_post_label(p) for p in affected[:MAX_EXAMPLES]],
        "totalAffected": len(affected),
        "missingFields": breakdown,
    }
    if schema is not None and not schema.error:
        context["absentFromSchema"] = [f for f in required if f not in schema]

    collector.warning(
        Category.CONTENT,
        f"{len(affected)} posts ({_percent(len(affected), len(posts))}%) "
        "missing required frontmatter fields",
        module=_MODULE,
        suggestion=f"Add {', '.join(required)} to all posts for better SEO and user experience",
        context=context,
    )
    return ["incomplete_frontmatter"]


def check_thin_content(
    posts: Sequence[Post], collector: IssueCollector, min_chars: int = 100
) -> list[str]:
    short = [p for p in posts if len(p.plain or p.content or "") < min_chars]
    if not short:
        return []
    collector.warning(
        Category.CONTENT,
        f"{len(short)} posts ({_percent(len(short), len(posts))}%) have very short "
        f"content (<{min_chars} characters)",
        module=_MODULE,
        suggestion="Consider expanding these posts with more detailed content",
        context={
            "setting": "content.length",
            "affectedPosts": [
                {"slug": _post_label(p), "length": len(p.plain or p.content or "")}
                for p in short[:MAX_EXAMPLES]
            ],
            "totalAffected": len(short),
        },
    )
    return ["short_content"]


def check_orphaned_media(
    posts: Sequence[Post], media: Sequence[MediaItem], collector: IssueCollector
) -> list[str]:
    if not posts or not media:
        return []
    used = _used_media_keys(posts)
    orphaned = [m for m in media if not _is_referenced(m, used)]
    if not orphaned:
        return []
    collector.warning(
        Category.CONTENT,
        f"{len(orphaned)} media files ({_percent(len(orphaned), len(media))}%) "
        "not referenced in any posts",
        module=_MODULE,
        suggestion="Consider removing unused media files or creating content that uses them",
        context={
            "setting": "content.orphaned_media",
            "orphanedFiles": [
                m.filename or m.path or "unknown" for m in orphaned[:MAX_EXAMPLES]
            ],
            "totalOrphaned": len(orphaned),
            "totalMedia": len(media),
        },
    )
    return ["orphaned_media"]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _run_check(name: str, check: Callable[[], list[str]], collector: IssueCollector) -> list[str]:
    try:
        return check()
    except Exception as exc:
        logger.warning("Content check %s could not run: %s", name, exc, exc_info=True)
        collector.warning(
            Category.CONTENT,
            f"Content check '{name}' could not run: {exc}",
            module=_MODULE,
            context={"check": name, "errorMessage": str(exc)},
        )
        return []


def validate_content(
    posts: Sequence[Post],
    media: Sequence[MediaItem],
    schema: FrontmatterSchema | None,
    collector: IssueCollector,
    config: ValidationCfg | None = None,
) -> HealthReport:
    """Run every content-health check and summarise the findings."""
    cfg = config or ValidationCfg()
    before = len(collector)

    checks: list[tuple[str, Callable[[], list[str]]]] = [
        ("empty_corpus", lambda: check_empty_corpus(posts, media, collector)),
        (
            "content_ratio",
            lambda: check_content_ratio(posts, media, collector, cfg.min_content_ratio),
        ),
        (
            "required_fields",
            lambda: check_required_fields(posts, collector, cfg.required_fields, schema),
        ),
        ("thin_content", lambda: check_thin_content(posts, collector, cfg.min_content_chars)),
        ("orphaned_media", lambda: check_orphaned_media(posts, media, collector)),
    ]
    warnings: list[str] = []
    for name, check in checks:
        warnings += _run_check(name, check, collector)

    if posts and media:
        ratio = len(posts) / (len(posts) + len(media))
    else:
        ratio = 1.0 if posts else 0.0

    report = HealthReport(
        warnings=warnings,
        metrics={"postCount": len(posts), "mediaCount": len(media), "contentRatio": ratio},
        issues=collector.issues[before:],
    )
    if warnings:
        logger.warning("Content health: %s", ", ".join(warnings))
    else:
        logger.info("Content health: no problems found")
    return report
