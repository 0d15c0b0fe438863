"""Build pipeline: context, artifacts, orchestration."""

from vaultbuild.pipeline.context import BuildContext
from vaultbuild.pipeline.orchestrator import run_build

__all__ = ["BuildContext", "run_build"]
