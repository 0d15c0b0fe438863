"""Build orchestrator: sequences the stages for one job.

Stage order:
  1. parse posts/media into models
  2. schema scan ∥ embeddings + similarity (two-worker pool)
  3. schema and embedding artifacts
  4. relational snapshot (needs the schema)
  5. content health (needs posts, media, schema)
  6. derived-file summaries
  7. issue report

Stages record problems on the shared IssueCollector. Anything that still
escapes is fatal: it is recorded, the issue report is flushed, and
``BuildError`` is raised.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Mapping

from vaultbuild.config import BuildConfig, load_config
from vaultbuild.db.snapshot import build_snapshot
from vaultbuild.embeddings.engine import EmbeddingStageResult, run_embedding_stage
from vaultbuild.embeddings.provider import EmbeddingProvider
from vaultbuild.issues import ArtifactError, BuildError, Category, IssueCollector
from vaultbuild.lookup import previous_embeddings_loader
from vaultbuild.models import parse_media, parse_posts
from vaultbuild.pipeline import artifacts
from vaultbuild.pipeline.context import BuildContext
from vaultbuild.schema.analyzer import FrontmatterSchema
from vaultbuild.schema.report import render_schema_markdown
from vaultbuild.schema.scan import scan_frontmatter_schema
from vaultbuild.validate.health import validate_content

logger = logging.getLogger(__name__)


def _analyze(
    ctx: BuildContext,
    config: BuildConfig,
    provider: EmbeddingProvider | None,
    collector: IssueCollector,
) -> tuple[tuple[FrontmatterSchema, dict[str, Any]], EmbeddingStageResult]:
    """Run the schema scan and the embedding stage, concurrently if enabled."""
    posts, media = ctx["postItems"], ctx["mediaItems"]
    loader = previous_embeddings_loader(ctx)

    def schema_job() -> tuple[FrontmatterSchema, dict[str, Any]]:
        return scan_frontmatter_schema(
            posts, collector, rare_threshold=config.validation.rare_property_threshold
        )

    def embedding_job() -> EmbeddingStageResult:
        return run_embedding_stage(posts, media, loader, provider, config, collector)

    if not config.pipeline.parallel:
        return schema_job(), embedding_job()

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="stage") as pool:
        schema_future = pool.submit(schema_job)
        embedding_future = pool.submit(embedding_job)
        return schema_future.result(), embedding_future.result()


def _write_and_verify(
    written: dict[str, str], out: Path, filename: str, data: Any, collector: IssueCollector
) -> None:
    path = artifacts.save_json(out, filename, data)
    artifacts.verify_json(path, collector)
    written[filename] = str(path)


def _flush_issue_report(out: Path, collector: IssueCollector) -> None:
    try:
        artifacts.save_json(out, artifacts.ISSUE_REPORT, collector.generate_report())
    except ArtifactError as exc:
        logger.error("Could not write issue report: %s", exc)


def run_build(
    job: Mapping[str, Any],
    config: BuildConfig | None = None,
    provider: EmbeddingProvider | None = None,
) -> BuildContext:
    """Run every stage for *job* and return the populated context.

    Args:
        job: Job dict (``jobId``, ``posts``, ``media``, ``outputDir``, and
            optionally ``sourceDir``, ``previousEmbeddings``,
            ``previousMediaEmbeddings``, ``previousBuildDir``).
        config: Build configuration; loaded from ``sourceDir`` (or CWD) when
            omitted.
        provider: Embedding provider; a LiteLLM provider is built from the
            config when omitted.

    Returns:
        The BuildContext; ``context["issues"]`` lists every recorded issue.

    Raises:
        BuildError: A stage failed fatally. The issue report has already been
            written to ``outputDir``.
    """
    ctx = BuildContext.from_job(job)
    job_id = ctx.job_id
    out = ctx.output_dir
    collector = IssueCollector(job_id)
    written: dict[str, str] = {}
    stage = "setup"

    try:
        if config is None:
            config = load_config(ctx.get("sourceDir"))
        ctx.add("config", config)
        out.mkdir(parents=True, exist_ok=True)

        stage = "parse"
        ctx.add("postItems", parse_posts(job.get("posts")))
        ctx.add("mediaItems", parse_media(job.get("media")))
        logger.info(
            "[%s] Building %d posts and %d media items",
            job_id,
            len(ctx["postItems"]),
            len(ctx["mediaItems"]),
        )

        stage = "analyze"
        (schema, schema_report), embeddings = _analyze(ctx, config, provider, collector)
        ctx.add("schema", schema)
        ctx.add("schemaReport", schema_report)
        ctx.add("embeddings", embeddings)

        stage = "write-schema"
        _write_and_verify(written, out, artifacts.SCHEMA_DOCUMENT, schema.to_dict(), collector)
        _write_and_verify(written, out, artifacts.SCHEMA_REPORT, schema_report, collector)
        md_path = artifacts.write_text_atomic(
            out / artifacts.SCHEMA_REPORT_MD, render_schema_markdown(schema, schema_report)
        )
        written[artifacts.SCHEMA_REPORT_MD] = str(md_path)

        stage = "write-embeddings"
        for filename, data in (
            (artifacts.POST_EMBEDDINGS, embeddings.posts.hash_map),
            (artifacts.POST_EMBEDDINGS_BY_SLUG, embeddings.posts.slug_map),
            (artifacts.MEDIA_EMBEDDINGS, embeddings.media.hash_map),
            (artifacts.SIMILARITY, embeddings.similarity),
            (artifacts.NEIGHBOURS, embeddings.neighbours),
        ):
            _write_and_verify(written, out, filename, data, collector)

        stage = "snapshot"
        snapshot = build_snapshot(
            ctx["postItems"],
            ctx["mediaItems"],
            schema,
            out / config.snapshot.filename,
            collector,
            mode=config.snapshot.normalization,
            post_vectors=embeddings.posts.hash_map,
            media_vectors=embeddings.media.hash_map,
            vector_index=config.snapshot.vector_index,
            job_id=job_id,
        )
        ctx.add("snapshot", snapshot)
        written[config.snapshot.filename] = str(snapshot.db_path)

        stage = "validate"
        health = validate_content(
            ctx["postItems"], ctx["mediaItems"], schema, collector, config.validation
        )
        ctx.add("contentHealth", health)
        _write_and_verify(written, out, artifacts.CONTENT_HEALTH, health.to_dict(), collector)

        stage = "summaries"
        ctx.add(
            "fileSummaries",
            artifacts.write_file_summaries(out, collector, source_dir=ctx.get("sourceDir")),
        )

        stage = "report"
        report = collector.generate_report()
        report_path = artifacts.save_json(out, artifacts.ISSUE_REPORT, report)
        written[artifacts.ISSUE_REPORT] = str(report_path)
        ctx.add("artifacts", written)
        ctx.add("issueReport", report)
        ctx.add("issues", collector.issues)
    except Exception as exc:
        logger.error("[%s] Build failed during %s: %s", job_id, stage, exc, exc_info=True)
        collector.error(
            Category.BUILD,
            f"Build failed during {stage}: {exc}",
            module="build-orchestrator",
            context={"stage": stage, "jobId": job_id, "errorMessage": str(exc)},
        )
        _flush_issue_report(out, collector)
        raise BuildError(f"Build failed during {stage}: {exc}", stage=stage, job_id=job_id) from exc

    logger.info("[%s] %s", job_id, collector.summary_string())
    return ctx
