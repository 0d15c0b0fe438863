"""Tests for the vaultbuild config loader."""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest
import yaml

from vaultbuild.config import BuildConfig, ConfigError, load_config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VAULTBUILD_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("VAULTBUILD_NORMALIZATION_MODE", raising=False)


# ---------------------------------------------------------------------------
# Defaults — no config files present
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    """No config files → all hardcoded defaults."""
    missing_global = tmp_path / "nonexistent" / "config.yaml"
    cfg = load_config(project_dir=tmp_path, global_config_path=missing_global)

    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.batch_size == 16
    assert cfg.embedding.concurrency == 4
    assert cfg.embedding.chunk_size == 512
    assert cfg.embedding.enabled is True
    assert cfg.similarity.top_k == 10
    assert cfg.snapshot.filename == "content.sqlite"
    assert cfg.snapshot.normalization == "permissive"
    assert cfg.validation.required_fields == ["title", "date", "description"]
    assert cfg.validation.min_content_chars == 100
    assert cfg.pipeline.parallel is True


def test_build_config_instances_do_not_share_lists() -> None:
    a, b = BuildConfig(), BuildConfig()
    a.validation.required_fields.append("author")
    assert b.validation.required_fields == ["title", "date", "description"]


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


def test_load_config_global_overrides_defaults(tmp_path: Path) -> None:
    """Global config overrides hardcoded defaults."""
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {"model": "ollama/nomic-embed-text"}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.embedding.model == "ollama/nomic-embed-text"
    # Other defaults unchanged
    assert cfg.embedding.batch_size == 16


def test_load_config_global_empty_file(tmp_path: Path) -> None:
    """Empty global config file → defaults (no crash)."""
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("", encoding="utf-8")

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.similarity.top_k == 10


def test_load_config_null_section(tmp_path: Path) -> None:
    """A section present but empty keeps its defaults."""
    project_cfg = tmp_path / "vaultbuild.yaml"
    project_cfg.write_text("similarity:\nsnapshot:\n", encoding="utf-8")

    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert cfg.similarity.top_k == 10
    assert cfg.snapshot.filename == "content.sqlite"


# ---------------------------------------------------------------------------
# Per-project config
# ---------------------------------------------------------------------------


def test_load_config_project_overrides_global(tmp_path: Path) -> None:
    """Per-project vaultbuild.yaml overrides global config."""
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"similarity": {"top_k": 20}})

    project_cfg = tmp_path / "vaultbuild.yaml"
    _write_yaml(project_cfg, {"similarity": {"top_k": 5}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.similarity.top_k == 5


def test_load_config_project_partial_override(tmp_path: Path) -> None:
    """Per-project can override a single field; global values for other fields survive."""
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"embedding": {"batch_size": 64, "concurrency": 8}})

    project_cfg = tmp_path / "vaultbuild.yaml"
    _write_yaml(project_cfg, {"embedding": {"batch_size": 8}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.embedding.batch_size == 8
    assert cfg.embedding.concurrency == 8  # global value preserved


def test_load_config_validation_section(tmp_path: Path) -> None:
    project_cfg = tmp_path / "vaultbuild.yaml"
    _write_yaml(
        project_cfg,
        {"validation": {"required_fields": ["title"], "min_content_ratio": 0.25}},
    )

    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert cfg.validation.required_fields == ["title"]
    assert cfg.validation.min_content_ratio == pytest.approx(0.25)
    assert cfg.validation.min_content_chars == 100


# ---------------------------------------------------------------------------
# Value validation
# ---------------------------------------------------------------------------


def test_unknown_normalization_mode_raises(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "vaultbuild.yaml", {"snapshot": {"normalization": "lenient"}})

    with pytest.raises(ConfigError, match="snapshot.normalization"):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "embedding, field",
    [
        ({"batch_size": 0}, "batch_size"),
        ({"concurrency": 0}, "concurrency"),
        ({"timeout_seconds": 0}, "timeout_seconds"),
        ({"overlap": 1.0}, "overlap"),
    ],
)
def test_out_of_range_embedding_values_raise(tmp_path: Path, embedding: dict, field: str) -> None:
    _write_yaml(tmp_path / "vaultbuild.yaml", {"embedding": embedding})

    with pytest.raises(ConfigError, match=field):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")


# ---------------------------------------------------------------------------
# API key validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "bad_key",
    ["api_key", "apikey", "OPENAI_API_KEY", "secret", "password", "token", "api-key"],
)
def test_global_config_rejects_api_key_fields(tmp_path: Path, bad_key: str) -> None:
    """Global config containing API key-like field names raises ConfigError."""
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text(f"{bad_key}: sk-abc123\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="forbidden key"):
        load_config(project_dir=tmp_path, global_config_path=global_cfg)


def test_global_config_rejects_nested_api_key(tmp_path: Path) -> None:
    """Nested API key-like field also raises ConfigError."""
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {"api_key": "sk-secret"}})

    with pytest.raises(ConfigError, match="forbidden key"):
        load_config(project_dir=tmp_path, global_config_path=global_cfg)


def test_top_k_and_num_retries_are_not_api_keys(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"similarity": {"top_k": 3}, "embedding": {"num_retries": 1}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.similarity.top_k == 3
    assert cfg.embedding.num_retries == 1


# ---------------------------------------------------------------------------
# Unknown key warnings
# ---------------------------------------------------------------------------


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    """Unknown top-level key in config emits UserWarning (not error)."""
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"unknown_section": {"foo": "bar"}})

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)

    assert any("unknown_section" in str(w.message) for w in caught)
    # Should still return a valid config
    assert cfg.embedding.model == "openai/text-embedding-3-small"


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


def test_env_var_embedding_model_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """VAULTBUILD_EMBEDDING_MODEL env var overrides config file value."""
    _write_yaml(tmp_path / "vaultbuild.yaml", {"embedding": {"model": "openai/text-embedding-ada-002"}})
    monkeypatch.setenv("VAULTBUILD_EMBEDDING_MODEL", "openai/text-embedding-3-large")

    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert cfg.embedding.model == "openai/text-embedding-3-large"


def test_env_var_normalization_mode_override(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("VAULTBUILD_NORMALIZATION_MODE", "strict")

    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert cfg.snapshot.normalization == "strict"


def test_env_var_normalization_mode_is_validated(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("VAULTBUILD_NORMALIZATION_MODE", "bogus")

    with pytest.raises(ConfigError):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
