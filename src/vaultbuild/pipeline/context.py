"""BuildContext: the job's accumulating, add-only result mapping."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Iterator

# Keys a job may carry; everything else in the job dict is ignored.
JOB_KEYS = (
    "jobId",
    "posts",
    "media",
    "outputDir",
    "sourceDir",
    "previousEmbeddings",
    "previousMediaEmbeddings",
    "previousBuildDir",
)

class BuildContext(Mapping):
    """Read-only mapping that stages extend with ``add()``.

    Keys are never removed or overwritten, so a later stage can't clobber an
    earlier stage's output.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    @classmethod
    def from_job(cls, job: Mapping[str, Any]) -> BuildContext:
        """Seed a context from the recognised keys of a job dict.

        Raises:
            ValueError: If ``outputDir`` is missing.
        """
        if not job.get("outputDir"):
            raise ValueError("job is missing 'outputDir'")
        data = {key: job[key] for key in JOB_KEYS if key in job}
        data.setdefault("jobId", uuid.uuid4().hex[:12])
        data["outputDir"] = Path(job["outputDir"])
        if job.get("sourceDir"):
            data["sourceDir"] = Path(job["sourceDir"])
        return cls(data)

    def add(self, key: str, value: Any) -> None:
        """Record a stage output.

        Raises:
            ValueError: If *key* is already present.
        """
        if key in self._data:
            raise ValueError(f"BuildContext already has '{key}'")
        self._data[key] = value

    @property
    def job_id(self) -> str:
        return str(self._data.get("jobId", ""))

    @property
    def output_dir(self) -> Path:
        return self._data["outputDir"]

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"BuildContext(job_id={self.job_id!r}, keys={sorted(self._data)!r})"
