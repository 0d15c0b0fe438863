"""vaultbuild configuration loader.

Priority (high → low):
  1. Call-site overrides  (handled by the caller — not in this module)
  2. Environment variables  (VAULTBUILD_EMBEDDING_MODEL, VAULTBUILD_NORMALIZATION_MODE)
  3. Per-project vaultbuild.yaml  (next to the content being built)
  4. Global ~/.vaultbuild/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".vaultbuild"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "vaultbuild.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like top_k or num_retries.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "similarity", "snapshot", "validation", "pipeline"]
)

NORMALIZATION_MODES: tuple[str, ...] = ("strict", "permissive", "original")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (vaultbuild.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Expected vector size; 0 accepts whatever the provider returns.
        batch_size: Number of chunk texts sent per provider request.
        concurrency: Number of batches in flight at once (fixed window).
        timeout_seconds: Upper bound on a single batch request.
        num_retries: Provider-level retries on transient errors.
        chunk_size: Chunk size in approximate tokens (4 chars ≈ 1 token).
        overlap: Fractional overlap between consecutive chunks.
        embed_media: Whether media items get embeddings too.
        enabled: Master switch; disabled means empty embedding outputs.
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 0
    batch_size: int = 16
    concurrency: int = 4
    timeout_seconds: float = 60.0
    num_retries: int = 3
    chunk_size: int = 512
    overlap: float = 0.10
    embed_media: bool = True
    enabled: bool = True


@dataclass
class SimilarityCfg:
    """Similarity index configuration (vaultbuild.yaml: similarity:)."""

    top_k: int = 10


@dataclass
class SnapshotCfg:
    """Relational snapshot configuration (vaultbuild.yaml: snapshot:).

    Attributes:
        filename: Snapshot file name inside the output directory.
        normalization: Frontmatter normalization mode — strict | permissive | original.
        vector_index: Whether post embeddings are stored in a sqlite-vec table.
    """

    filename: str = "content.sqlite"
    normalization: str = "permissive"
    vector_index: bool = True


@dataclass
class ValidationCfg:
    """Content-health thresholds (vaultbuild.yaml: validation:)."""

    required_fields: list[str] = field(
        default_factory=lambda: ["title", "date", "description"]
    )
    min_content_chars: int = 100
    min_content_ratio: float = 0.10
    rare_property_threshold: float = 0.10


@dataclass
class PipelineCfg:
    """Orchestration switches (vaultbuild.yaml: pipeline:)."""

    parallel: bool = True


@dataclass
class BuildConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    similarity: SimilarityCfg = field(default_factory=SimilarityCfg)
    snapshot: SnapshotCfg = field(default_factory=SnapshotCfg)
    validation: ValidationCfg = field(default_factory=ValidationCfg)
    pipeline: PipelineCfg = field(default_factory=PipelineCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _validate_normalization(mode: str) -> str:
    if mode not in NORMALIZATION_MODES:
        raise ConfigError(
            f"snapshot.normalization must be one of {', '.join(NORMALIZATION_MODES)}, "
            f"got '{mode}'"
        )
    return mode


def _validate_embedding(cfg: EmbeddingCfg) -> None:
    if cfg.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {cfg.batch_size}")
    if cfg.concurrency < 1:
        raise ConfigError(f"embedding.concurrency must be >= 1, got {cfg.concurrency}")
    if cfg.timeout_seconds <= 0:
        raise ConfigError(
            f"embedding.timeout_seconds must be > 0, got {cfg.timeout_seconds}"
        )
    if not 0.0 <= cfg.overlap < 1.0:
        raise ConfigError(f"embedding.overlap must be in [0.0, 1.0), got {cfg.overlap}")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> BuildConfig:
    """Build a *BuildConfig* from a merged raw YAML dict."""
    cfg = BuildConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        d = cfg.embedding
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", d.model)),
            dimensions=int(e.get("dimensions", d.dimensions)),
            batch_size=int(e.get("batch_size", d.batch_size)),
            concurrency=int(e.get("concurrency", d.concurrency)),
            timeout_seconds=float(e.get("timeout_seconds", d.timeout_seconds)),
            num_retries=int(e.get("num_retries", d.num_retries)),
            chunk_size=int(e.get("chunk_size", d.chunk_size)),
            overlap=float(e.get("overlap", d.overlap)),
            embed_media=bool(e.get("embed_media", d.embed_media)),
            enabled=bool(e.get("enabled", d.enabled)),
        )

    if "similarity" in data:
        s = data["similarity"] or {}
        cfg.similarity = SimilarityCfg(top_k=int(s.get("top_k", cfg.similarity.top_k)))

    if "snapshot" in data:
        sn = data["snapshot"] or {}
        cfg.snapshot = SnapshotCfg(
            filename=str(sn.get("filename", cfg.snapshot.filename)),
            normalization=str(sn.get("normalization", cfg.snapshot.normalization)),
            vector_index=bool(sn.get("vector_index", cfg.snapshot.vector_index)),
        )

    if "validation" in data:
        v = data["validation"] or {}
        d = cfg.validation
        cfg.validation = ValidationCfg(
            required_fields=[str(f) for f in v.get("required_fields", d.required_fields)],
            min_content_chars=int(v.get("min_content_chars", d.min_content_chars)),
            min_content_ratio=float(v.get("min_content_ratio", d.min_content_ratio)),
            rare_property_threshold=float(
                v.get("rare_property_threshold", d.rare_property_threshold)
            ),
        )

    if "pipeline" in data:
        p = data["pipeline"] or {}
        cfg.pipeline = PipelineCfg(parallel=bool(p.get("parallel", cfg.pipeline.parallel)))

    return cfg


def _apply_env_overrides(cfg: BuildConfig) -> BuildConfig:
    """Apply VAULTBUILD_* environment variable overrides (layer 2)."""
    if model := os.environ.get("VAULTBUILD_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if mode := os.environ.get("VAULTBUILD_NORMALIZATION_MODE"):
        cfg.snapshot.normalization = mode
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> BuildConfig:
    """Load and return a merged *BuildConfig*.

    Applies layers in order: global → per-project → env vars.

    Args:
        project_dir: Directory to search for *vaultbuild.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *BuildConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or if a
            value is out of range (unknown normalization mode, batch_size < 1, ...).
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate_normalization(cfg.snapshot.normalization)
    _validate_embedding(cfg.embedding)
    return cfg
