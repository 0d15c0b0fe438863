"""Embeddings: text assembly, providers, hash-keyed reuse, similarity."""

from vaultbuild.embeddings.engine import (
    EmbeddingEngine,
    EmbeddingResult,
    EmbeddingStageResult,
    l2_normalize,
    mean_vector,
    run_embedding_stage,
)
from vaultbuild.embeddings.provider import EmbeddingProvider, LiteLLMProvider
from vaultbuild.embeddings.similarity import compute_similarity, pair_key, top_k_neighbours

__all__ = [
    "EmbeddingEngine",
    "EmbeddingProvider",
    "EmbeddingResult",
    "EmbeddingStageResult",
    "LiteLLMProvider",
    "compute_similarity",
    "l2_normalize",
    "mean_vector",
    "pair_key",
    "run_embedding_stage",
    "top_k_neighbours",
]
