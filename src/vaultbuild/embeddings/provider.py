"""Embedding provider boundary.

The engine only needs ``embed(texts) -> vectors``. ``LiteLLMProvider`` is the
production implementation; tests substitute any object with the same method.
"""

from __future__ import annotations

import os
from typing import Protocol, runtime_checkable

import litellm

from vaultbuild.issues import EmbeddingError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
}


@runtime_checkable
class EmbeddingProvider(Protocol):
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per input text, in input order."""
        ...


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EmbeddingError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)
    if env_var is None:
        return
    if not os.getenv(env_var):
        raise EmbeddingError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class LiteLLMProvider:
    """Batch embeddings through ``litellm.embedding()``.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        timeout: Per-request timeout in seconds.
        num_retries: Retries on transient errors (LiteLLM backoff).
        dimensions: Requested output size; 0 leaves it to the model.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        timeout: float = 60.0,
        num_retries: int = 3,
        dimensions: int = 0,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.num_retries = num_retries
        self.dimensions = dimensions

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        kwargs: dict = {
            "model": self.model,
            "input": texts,
            "timeout": self.timeout,
            "num_retries": self.num_retries,
        }
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions
        response = litellm.embedding(**kwargs)

        vectors = [list(d["embedding"]) for d in response.data]
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"{self.model} returned {len(vectors)} embeddings for {len(texts)} inputs"
            )
        return vectors
