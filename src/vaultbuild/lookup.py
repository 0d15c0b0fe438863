"""Ordered fallback lookups over previous-build artifacts.

A chain is a plain tuple of named strategies tried in order; the first one
that finds something wins. "Not found" is ``None``. An exception raised by a
strategy is not "not found": it propagates to the caller, who decides
whether that is fatal.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generic, Mapping, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Artifact names for previous-build embeddings, per item kind.
EMBEDDING_ARTIFACTS: dict[str, str] = {
    "post": "posts-embedding-hash-map.json",
    "media": "media-embedding-hash-map.json",
}

# Job keys carrying in-memory previous embeddings, per item kind.
EMBEDDING_JOB_KEYS: dict[str, str] = {
    "post": "previousEmbeddings",
    "media": "previousMediaEmbeddings",
}


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T
    strategy: str


@dataclass(frozen=True)
class Strategy(Generic[T]):
    name: str
    fn: Callable[[str], T | None]


class FallbackChain(Generic[T]):
    """Try each strategy in order and return the first hit.

    Args:
        strategies: ``Strategy`` objects; kept as an inspectable tuple.
    """

    def __init__(self, strategies: Sequence[Strategy[T]]) -> None:
        self.strategies: tuple[Strategy[T], ...] = tuple(strategies)

    def lookup(self, key: str) -> Found[T] | None:
        for strategy in self.strategies:
            value = strategy.fn(key)
            if value is not None:
                logger.debug("Lookup %r resolved by %s", key, strategy.name)
                return Found(value=value, strategy=strategy.name)
        return None

    def names(self) -> list[str]:
        return [s.name for s in self.strategies]


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Previous embeddings
# ---------------------------------------------------------------------------


def in_memory(job: Mapping[str, Any]) -> Strategy[dict]:
    """Previous embeddings handed over directly in the job dict."""

    def _fn(kind: str) -> dict | None:
        value = job.get(EMBEDDING_JOB_KEYS.get(kind, ""))
        return dict(value) if isinstance(value, Mapping) else None

    return Strategy("in_memory", _fn)


def previous_build_file(directory: Path | str | None) -> Strategy[dict]:
    """Previous embeddings read from a previous build's output directory.

    A missing directory or file is "not found". A file that exists but is
    unreadable, or isn't a JSON object, raises.
    """

    def _fn(kind: str) -> dict | None:
        if directory is None:
            return None
        path = Path(directory) / EMBEDDING_ARTIFACTS[kind]
        if not path.is_file():
            return None
        data = _read_json(path)
        if not isinstance(data, dict):
            raise ValueError(f"{path.name} is not a hash -> vector map")
        logger.info("Loaded %d previous %s embeddings from %s", len(data), kind, path)
        return data

    return Strategy("previous_build_file", _fn)


def previous_embeddings_chain(job: Mapping[str, Any]) -> FallbackChain[dict]:
    """in-memory job data, then the previous build directory, then nothing."""
    return FallbackChain([in_memory(job), previous_build_file(job.get("previousBuildDir"))])


def previous_embeddings_loader(job: Mapping[str, Any]) -> Callable[[str], dict | None]:
    """``kind -> {hash: vector} | None`` loader for run_embedding_stage()."""
    chain = previous_embeddings_chain(job)

    def _load(kind: str) -> dict | None:
        found = chain.lookup(kind)
        return found.value if found is not None else None

    return _load


# ---------------------------------------------------------------------------
# Serving-side post lookup
# ---------------------------------------------------------------------------


def _direct_file(build_dir: Path) -> Strategy[dict]:
    def _fn(hash_: str) -> dict | None:
        path = build_dir / "posts" / f"{hash_}.json"
        return _read_json(path) if path.is_file() else None

    return Strategy("direct_file", _fn)


def _hash_map(build_dir: Path) -> Strategy[dict]:
    def _fn(hash_: str) -> dict | None:
        path = build_dir / "posts-hash-map.json"
        if not path.is_file():
            return None
        value = _read_json(path).get(hash_)
        return value if isinstance(value, dict) else None

    return Strategy("hash_map", _fn)


def _corpus_scan(build_dir: Path) -> Strategy[dict]:
    def _fn(hash_: str) -> dict | None:
        path = build_dir / "posts.json"
        if not path.is_file():
            return None
        data = _read_json(path)
        posts = data if isinstance(data, list) else data.get("posts", [])
        return next((p for p in posts if isinstance(p, dict) and p.get("hash") == hash_), None)

    return Strategy("corpus_scan", _fn)


def post_lookup_chain(build_dir: Path | str) -> FallbackChain[dict]:
    """Per-post file, then the hash map artifact, then a full corpus scan."""
    build_dir = Path(build_dir)
    return FallbackChain([_direct_file(build_dir), _hash_map(build_dir), _corpus_scan(build_dir)])


def post_by_hash(build_dir: Path | str, hash_: str) -> dict | None:
    """Return the post dict for *hash_* from a build directory, or None."""
    found = post_lookup_chain(build_dir).lookup(hash_)
    return found.value if found is not None else None
