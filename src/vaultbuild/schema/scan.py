"""Schema stage entry point: analyze, report, and never raise."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from vaultbuild.issues import IssueCollector
from vaultbuild.models import Post
from vaultbuild.schema.analyzer import FrontmatterSchema, analyze_frontmatter
from vaultbuild.schema.report import build_schema_report, report_schema_issues

logger = logging.getLogger(__name__)


def scan_frontmatter_schema(
    posts: Sequence[Post],
    collector: IssueCollector,
    rare_threshold: float = 0.10,
) -> tuple[FrontmatterSchema, dict[str, Any]]:
    """Infer the corpus schema and forward its warnings to *collector*.

    A failure while reading the corpus yields a degraded, conflict-free
    schema plus one error issue; the pipeline continues either way.

    Returns:
        ``(schema, report)``
    """
    logger.info("Starting frontmatter schema scan (%d posts)", len(posts))
    try:
        schema = analyze_frontmatter(posts)
    except Exception as exc:
        logger.error("Frontmatter schema scan failed: %s", exc, exc_info=True)
        schema = FrontmatterSchema.degraded(str(exc), total_posts=len(posts))

    report = build_schema_report(schema, rare_threshold=rare_threshold)
    report_schema_issues(report, collector)

    logger.info(
        "Frontmatter schema scan complete: %d properties found, %d with conflicts",
        len(schema),
        report["summary"]["propertiesWithConflicts"],
    )
    return schema, report
