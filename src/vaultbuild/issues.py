"""Build issues: the Issue record, the IssueCollector sink, and exceptions.

One IssueCollector is created per build and passed by reference into every
stage. Stages record problems on it instead of raising; only a fatal stage
error escapes as ``BuildError``. The collector is lock-protected because the
schema and embedding stages may run on different threads.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from vaultbuild import __version__

# Maximum number of example offenders kept in any context list.
MAX_EXAMPLES = 5


class Severity:
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Category:
    CONFIGURATION = "configuration"
    CONTENT = "content"
    SCHEMA_CONFLICT = "schema-conflict"
    FRONTMATTER_SCHEMA = "frontmatter-schema"
    EMBEDDING = "embedding-error"
    FILESYSTEM = "filesystem-error"
    DATABASE = "database-error"
    BUILD = "build-error"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class VaultBuildError(Exception):
    """Base class for vaultbuild errors."""


class BuildError(VaultBuildError):
    """A required build stage failed; the job is aborted.

    Attributes:
        stage: Name of the stage that raised.
        job_id: Identifier of the job being built.
    """

    def __init__(self, message: str, stage: str = "", job_id: str = "") -> None:
        super().__init__(message)
        self.stage = stage
        self.job_id = job_id


class SnapshotError(VaultBuildError):
    """The relational snapshot bulk load failed and was rolled back."""


class EmbeddingError(VaultBuildError):
    """The embedding provider failed or returned unusable vectors."""


class ArtifactError(VaultBuildError):
    """An output artifact could not be written."""


# ---------------------------------------------------------------------------
# Issue model
# ---------------------------------------------------------------------------


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _trim_examples(context: dict[str, Any]) -> dict[str, Any]:
    """Cap every list value in *context* at MAX_EXAMPLES entries."""
    return {
        k: (v[:MAX_EXAMPLES] if isinstance(v, list) else v) for k, v in context.items()
    }


@dataclass
class Issue:
    severity: str
    category: str
    message: str
    suggestion: str = ""
    module: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity,
            "category": self.category,
            "module": self.module,
            "message": self.message,
            "suggestion": self.suggestion,
            "context": self.context,
            "timestamp": self.timestamp,
        }


class IssueCollector:
    """Accumulates Issues for one build. Issues are never dropped.

    Args:
        job_id: Identifier echoed into the report metadata.
    """

    def __init__(self, job_id: str = "") -> None:
        self.job_id = job_id
        self.start_time = _now()
        self._issues: list[Issue] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def add(
        self,
        severity: str,
        category: str,
        message: str,
        *,
        suggestion: str = "",
        module: str = "",
        context: dict[str, Any] | None = None,
    ) -> Issue:
        """Record an issue and return it."""
        issue = Issue(
            severity=severity,
            category=category,
            message=message,
            suggestion=suggestion,
            module=module,
            context=_trim_examples(context or {}),
        )
        with self._lock:
            self._issues.append(issue)
        return issue

    def warning(self, category: str, message: str, **kwargs: Any) -> Issue:
        return self.add(Severity.WARNING, category, message, **kwargs)

    def error(self, category: str, message: str, **kwargs: Any) -> Issue:
        return self.add(Severity.ERROR, category, message, **kwargs)

    def info(self, category: str, message: str, **kwargs: Any) -> Issue:
        return self.add(Severity.INFO, category, message, **kwargs)

    def add_embedding_error(self, kind: str, operation: str, error: BaseException | str) -> Issue:
        """Record an embedding failure for *kind* ('post' or 'media')."""
        return self.error(
            Category.EMBEDDING,
            f"Failed to {operation} {kind} embeddings: {error}",
            module=f"{kind}-embeddings",
            suggestion="Similarity data is incomplete for this build; check the embedding provider.",
            context={"embeddingType": kind, "operation": operation, "errorMessage": str(error)},
        )

    def add_filesystem_error(self, operation: str, path: str, error: BaseException | str) -> Issue:
        return self.error(
            Category.FILESYSTEM,
            f"File system {operation} failed for {path}: {error}",
            module="file-system",
            context={"operation": operation, "path": path, "errorMessage": str(error)},
        )

    def add_database_warning(self, operation: str, error: BaseException | str, target: str = "") -> Issue:
        where = f" for {target}" if target else ""
        return self.warning(
            Category.DATABASE,
            f"Database {operation} failed{where}: {error}",
            module="snapshot-builder",
            context={"operation": operation, "target": target, "errorMessage": str(error)},
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def issues(self) -> list[Issue]:
        with self._lock:
            return list(self._issues)

    def __len__(self) -> int:
        with self._lock:
            return len(self._issues)

    def by_category(self, category: str) -> list[Issue]:
        return [i for i in self.issues if i.category == category]

    def has_errors(self) -> bool:
        return any(i.severity == Severity.ERROR for i in self.issues)

    def generate_report(self) -> dict[str, Any]:
        """Return the aggregated issue report (issues + summary + metadata)."""
        issues = self.issues
        category_counts: dict[str, int] = {}
        module_counts: dict[str, int] = {}
        for issue in issues:
            category_counts[issue.category] = category_counts.get(issue.category, 0) + 1
            if issue.module:
                module_counts[issue.module] = module_counts.get(issue.module, 0) + 1

        return {
            "issues": [i.to_dict() for i in issues],
            "summary": {
                "totalIssues": len(issues),
                "errorCount": sum(1 for i in issues if i.severity == Severity.ERROR),
                "warningCount": sum(1 for i in issues if i.severity == Severity.WARNING),
                "infoCount": sum(1 for i in issues if i.severity == Severity.INFO),
                "categoryCounts": category_counts,
                "moduleCounts": module_counts,
            },
            "metadata": {
                "jobId": self.job_id,
                "processStartTime": self.start_time,
                "processEndTime": _now(),
                "version": __version__,
            },
        }

    def summary_string(self) -> str:
        """One-line outcome, e.g. 'Build completed with 1 error, 2 warnings'."""
        issues = self.issues
        errors = sum(1 for i in issues if i.severity == Severity.ERROR)
        warnings_ = sum(1 for i in issues if i.severity == Severity.WARNING)
        info = sum(1 for i in issues if i.severity == Severity.INFO)

        parts: list[str] = []
        if errors:
            parts.append(f"{errors} error{'s' if errors > 1 else ''}")
        if warnings_:
            parts.append(f"{warnings_} warning{'s' if warnings_ > 1 else ''}")
        if info:
            parts.append(f"{info} info")

        if parts:
            return f"Build completed with {', '.join(parts)}"
        return "Build completed successfully"
