"""Embedding computation with cross-build reuse keyed by content hash.

An item whose hash appears in the previous build's map gets that vector back
verbatim. Everything else is chunked, batched and sent to the provider in
fixed windows of ``concurrency`` batches, and each computed vector is
L2-normalised. A batch that fails or times out leaves its items without
vectors and is recorded as one issue. A timed-out request is abandoned, not
interrupted; LiteLLMProvider passes its own request timeout to bound it.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence, Union

import numpy as np

from vaultbuild.config import BuildConfig, EmbeddingCfg
from vaultbuild.embeddings.provider import EmbeddingProvider, LiteLLMProvider, validate_api_key
from vaultbuild.embeddings.similarity import compute_similarity, top_k_neighbours
from vaultbuild.embeddings.text import build_media_text, build_post_text, chunk_text
from vaultbuild.issues import EmbeddingError, IssueCollector
from vaultbuild.models import MediaItem, Post

logger = logging.getLogger(__name__)

Vector = list[float]
Item = Union[Post, MediaItem]
PreviousLoader = Callable[[str], Union[Mapping[str, Vector], None]]


# ---------------------------------------------------------------------------
# Vector helpers
# ---------------------------------------------------------------------------


def mean_vector(vectors: Sequence[Sequence[float]]) -> Vector:
    """Element-wise mean of equally sized vectors."""
    if not vectors:
        return []
    return np.mean(np.asarray(vectors, dtype=np.float64), axis=0).tolist()


def l2_normalize(vector: Sequence[float]) -> Vector:
    """Scale *vector* to unit length; a zero vector is returned unchanged."""
    arr = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        return arr.tolist()
    return (arr / norm).tolist()


def _valid_vector(vector: Any) -> bool:
    if not isinstance(vector, (list, tuple)) or not vector:
        return False
    return all(
        isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)
        for x in vector
    )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingResult:
    """Vectors for one item kind plus reuse accounting."""

    hash_map: dict[str, Vector] = field(default_factory=dict)
    slug_map: dict[str, Vector] = field(default_factory=dict)
    reused_count: int = 0
    computed_count: int = 0
    skipped_count: int = 0
    dimension: int = 0

    def stats(self) -> dict[str, int]:
        return {
            "embedded": len(self.hash_map),
            "reused": self.reused_count,
            "computed": self.computed_count,
            "skipped": self.skipped_count,
            "dimension": self.dimension,
        }


@dataclass
class EmbeddingStageResult:
    """Everything the embedding stage hands back to the orchestrator."""

    posts: EmbeddingResult = field(default_factory=EmbeddingResult)
    media: EmbeddingResult = field(default_factory=EmbeddingResult)
    similarity: dict[str, float] = field(default_factory=dict)
    neighbours: dict[str, list[str]] = field(default_factory=dict)
    failed: bool = False


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class EmbeddingEngine:
    """Compute embeddings for posts or media, reusing previous vectors by hash.

    Args:
        provider: Object with ``embed(texts) -> vectors``.
        batch_size: Chunk texts per provider call.
        concurrency: Batches in flight at once.
        timeout: Seconds to wait for any one batch. A batch past this is
            recorded as failed, but its request is not interrupted; pass
            the provider a request timeout of its own to bound it.
        chunk_size: Chunk size in approximate tokens.
        overlap: Fractional overlap between chunks.
        collector: Receives one issue per failed batch.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        batch_size: int = 16,
        concurrency: int = 4,
        timeout: float = 60.0,
        chunk_size: int = 512,
        overlap: float = 0.10,
        collector: IssueCollector | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.provider = provider
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.collector = collector

    @classmethod
    def from_config(
        cls,
        provider: EmbeddingProvider,
        cfg: EmbeddingCfg,
        collector: IssueCollector | None = None,
    ) -> EmbeddingEngine:
        return cls(
            provider,
            batch_size=cfg.batch_size,
            concurrency=cfg.concurrency,
            timeout=cfg.timeout_seconds,
            chunk_size=cfg.chunk_size,
            overlap=cfg.overlap,
            collector=collector,
        )

    def embed_items(
        self,
        items: Sequence[Item],
        previous: Mapping[str, Vector] | None = None,
        kind: str = "post",
    ) -> EmbeddingResult:
        """Return vectors for every item that could be embedded.

        Args:
            items: Posts or media items.
            previous: hash -> vector from the previous build.
            kind: ``"post"`` or ``"media"``; selects the text builder.
        """
        previous = previous or {}
        result = EmbeddingResult()
        text_for = build_post_text if kind == "post" else build_media_text

        pending: list[tuple[Item, list[str]]] = []
        for item in items:
            key = item.key
            if not key or key in result.hash_map:
                continue
            reused = previous.get(key)
            if reused is not None and len(reused):
                result.hash_map[key] = reused
                result.reused_count += 1
                continue
            chunks = chunk_text(text_for(item), self.chunk_size, self.overlap)
            if not chunks:
                result.skipped_count += 1
                continue
            pending.append((item, chunks))

        if pending:
            computed = self._compute(pending, kind)
            for item, chunks in pending:
                vectors = computed.get(item.key)
                if vectors is None or len(vectors) != len(chunks) or any(v is None for v in vectors):
                    result.skipped_count += 1
                    continue
                vector = vectors[0] if len(vectors) == 1 else mean_vector(vectors)
                result.hash_map[item.key] = l2_normalize(vector)
                result.computed_count += 1

        if kind == "post":
            for item in items:
                vector = result.hash_map.get(item.key)
                slug = getattr(item, "slug", "")
                if vector is not None and slug:
                    result.slug_map[slug] = vector

        sizes = [len(v) for v in result.hash_map.values()]
        result.dimension = max(set(sizes), key=sizes.count) if sizes else 0
        logger.info(
            "%s embeddings: %d reused, %d computed, %d skipped",
            kind.capitalize(),
            result.reused_count,
            result.computed_count,
            result.skipped_count,
        )
        return result

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    def _compute(
        self, pending: list[tuple[Item, list[str]]], kind: str
    ) -> dict[str, list[Vector | None]]:
        """Embed all pending chunks; return key -> per-chunk vectors (None = missing)."""
        slots: list[tuple[str, int, str]] = []
        out: dict[str, list[Vector | None]] = {}
        for item, chunks in pending:
            out[item.key] = [None] * len(chunks)
            slots.extend((item.key, i, text) for i, text in enumerate(chunks))

        batches = [
            slots[start : start + self.batch_size]
            for start in range(0, len(slots), self.batch_size)
        ]
        logger.debug("Embedding %d %s chunks in %d batches", len(slots), kind, len(batches))

        pool = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="embed")
        try:
            for window_start in range(0, len(batches), self.concurrency):
                window = batches[window_start : window_start + self.concurrency]
                futures = [
                    (n, batch, pool.submit(self.provider.embed, [text for _, _, text in batch]))
                    for n, batch in enumerate(window, start=window_start + 1)
                ]
                for n, batch, future in futures:
                    try:
                        vectors = future.result(timeout=self.timeout)
                        if len(vectors) != len(batch):
                            raise EmbeddingError(
                                f"provider returned {len(vectors)} vectors for {len(batch)} texts"
                            )
                    except FuturesTimeout:
                        future.cancel()
                        self._batch_failed(kind, n, len(batch), f"timed out after {self.timeout}s")
                        continue
                    except Exception as exc:
                        self._batch_failed(kind, n, len(batch), exc)
                        continue

                    for (key, index, _), vector in zip(batch, vectors):
                        if _valid_vector(vector):
                            out[key][index] = list(vector)
        finally:
            # Don't wait on a request that already timed out. Its thread still
            # runs to completion and is joined at interpreter exit, so the
            # provider's own request timeout is what bounds a hung call.
            pool.shutdown(wait=False, cancel_futures=True)
        return out

    def _batch_failed(self, kind: str, n: int, size: int, error: BaseException | str) -> None:
        logger.warning("%s embedding batch %d (%d texts) failed: %s", kind, n, size, error)
        if self.collector is not None:
            self.collector.add_embedding_error(kind, "compute", f"batch {n} ({size} texts): {error}")


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------


def run_embedding_stage(
    posts: Sequence[Post],
    media: Sequence[MediaItem],
    previous_loader: PreviousLoader,
    provider: EmbeddingProvider | None,
    config: BuildConfig,
    collector: IssueCollector,
) -> EmbeddingStageResult:
    """Embed posts (and media), then derive similarity and neighbours.

    Never raises. Any failure, including a previous-embedding map that
    exists but can't be loaded, yields empty outputs plus one
    ``embedding-error`` issue; the build carries on without similarity data.

    Args:
        previous_loader: ``kind -> {hash: vector} | None``; ``None`` means
            there is nothing to reuse, an exception means the load failed.
        provider: Embedding provider; ``None`` builds a LiteLLMProvider from
            *config*.
    """
    cfg = config.embedding
    if not cfg.enabled:
        logger.info("Embeddings disabled; skipping embedding stage")
        return EmbeddingStageResult()

    operation = "load previous"
    try:
        previous_posts = previous_loader("post") or {}
        previous_media = (previous_loader("media") or {}) if cfg.embed_media else {}

        operation = "compute"
        if provider is None:
            validate_api_key(cfg.model)
            provider = LiteLLMProvider(
                model=cfg.model,
                timeout=cfg.timeout_seconds,
                num_retries=cfg.num_retries,
                dimensions=cfg.dimensions,
            )
        engine = EmbeddingEngine.from_config(provider, cfg, collector)

        post_result = engine.embed_items(posts, previous_posts, kind="post")
        media_result = (
            engine.embed_items(media, previous_media, kind="media")
            if cfg.embed_media
            else EmbeddingResult()
        )

        operation = "compare"
        similarity = compute_similarity(post_result.hash_map)
        neighbours = top_k_neighbours(
            similarity,
            hashes=list(post_result.hash_map),
            k=config.similarity.top_k,
        )
    except Exception as exc:
        logger.error("Embedding stage failed during %s: %s", operation, exc, exc_info=True)
        collector.add_embedding_error("post", operation, exc)
        return EmbeddingStageResult(failed=True)

    return EmbeddingStageResult(
        posts=post_result,
        media=media_result,
        similarity=similarity,
        neighbours=neighbours,
    )
