"""Output artifacts: atomic writes, read-back verification, file summaries."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from vaultbuild.issues import ArtifactError, IssueCollector
from vaultbuild.schema.analyzer import to_jsonable

logger = logging.getLogger(__name__)

SCHEMA_DOCUMENT = "posts-schema.json"
SCHEMA_REPORT = "schema-report.json"
SCHEMA_REPORT_MD = "schema-report.md"
POST_EMBEDDINGS = "posts-embedding-hash-map.json"
POST_EMBEDDINGS_BY_SLUG = "posts-embedding-slug-map.json"
MEDIA_EMBEDDINGS = "media-embedding-hash-map.json"
SIMILARITY = "posts-similarity.json"
NEIGHBOURS = "posts-similar-hash.json"
CONTENT_HEALTH = "content-health.json"
FILES_DIST = "files-dist.json"
FILES_SOURCE = "files-source.json"
ISSUE_REPORT = "build-issues.json"


# ------------------------------------------------------------------
# Atomic write
# ------------------------------------------------------------------


def write_text_atomic(path: Path, content: str) -> Path:
    """Write *content* to *path* atomically (temp → rename).

    Creates parent directories if needed.

    Raises:
        ArtifactError: If the file can't be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    except OSError as exc:
        raise ArtifactError(f"Cannot write {path}: {exc}") from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except OSError as exc:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise ArtifactError(f"Cannot write {path}: {exc}") from exc
    return path


def save_json(directory: Path, filename: str, data: Any) -> Path:
    """Serialise *data* as indented JSON into *directory*/*filename*."""
    path = write_text_atomic(
        Path(directory) / filename,
        json.dumps(to_jsonable(data), indent=2, ensure_ascii=False, default=str),
    )
    logger.debug("Saved %s", path)
    return path


def verify_json(path: Path, collector: IssueCollector) -> bool:
    """Read *path* back and check it parses; a failure is recorded, not raised."""
    try:
        with path.open(encoding="utf-8") as f:
            json.load(f)
    except (OSError, ValueError) as exc:
        logger.error("Artifact %s failed verification: %s", path.name, exc)
        collector.add_filesystem_error("verify", str(path), exc)
        return False
    return True


# ------------------------------------------------------------------
# Derived-file summaries
# ------------------------------------------------------------------


def summarize_directory(directory: Path) -> list[dict[str, Any]]:
    """One entry per file under *directory*, sorted by relative path."""
    directory = Path(directory)
    files: list[dict[str, Any]] = []
    for path in sorted(p for p in directory.rglob("*") if p.is_file()):
        relative = path.relative_to(directory)
        if relative.name.startswith(".") and relative.name.endswith(".tmp"):
            continue
        files.append(
            {
                "path": relative.as_posix(),
                "filename": path.name,
                "extension": path.suffix.lstrip("."),
                "size": path.stat().st_size,
                "folder": list(relative.parts[:-1]),
            }
        )
    return files


def write_file_summaries(
    dist_dir: Path,
    collector: IssueCollector,
    source_dir: Path | None = None,
) -> dict[str, Any]:
    """Write files-dist.json (and files-source.json when *source_dir* is given).

    An unreadable directory is recorded as a filesystem error and skipped.
    """
    result: dict[str, Any] = {}
    targets = [(FILES_SOURCE, source_dir, "source"), (FILES_DIST, dist_dir, "dist")]
    for filename, directory, label in targets:
        if directory is None:
            continue
        try:
            summary = summarize_directory(directory)
        except OSError as exc:
            collector.add_filesystem_error("summarize", str(directory), exc)
            continue
        result[f"{label}FileSummaryPath"] = str(save_json(dist_dir, filename, summary))
        result[f"{label}FileCount"] = len(summary)
    logger.info(
        "File summaries generated: %s source files, %s dist files",
        result.get("sourceFileCount", 0),
        result.get("distFileCount", 0),
    )
    return result
