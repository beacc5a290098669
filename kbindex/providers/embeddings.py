"""
Embedding providers.

- WorkersAIEmbedding: remote model on Cloudflare Workers AI (default when
  credentials are configured). Retries are handled by the HTTP client.
- SentenceTransformerEmbedding: local model, loaded lazily.
"""

import logging
import os
from numbers import Real
from typing import Any

import httpx

from ..errors import EmbeddingError
from ..http_client import RetryingClient
from .base import get_registry

logger = logging.getLogger(__name__)

WORKERS_AI_BASE_URL = "https://api.cloudflare.com/client/v4"

# Output dimensions of known models; anything else must be configured
KNOWN_DIMENSIONS = {
    "@cf/baai/bge-small-en-v1.5": 384,
    "@cf/baai/bge-base-en-v1.5": 768,
    "@cf/baai/bge-large-en-v1.5": 1024,
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "all-MiniLM-L6-v2": 384,
}


def _parse_vectors(result: Any, expected: int) -> list[list[float]]:
    """Validate a `{"data": [[...], ...]}` model response."""
    data = result.get("data") if isinstance(result, dict) else None
    if not isinstance(data, list) or len(data) != expected:
        raise EmbeddingError("Failed to generate embedding: unexpected response format")
    vectors = []
    for row in data:
        if not isinstance(row, list) or not row or not all(
            isinstance(x, Real) and not isinstance(x, bool) for x in row
        ):
            raise EmbeddingError("Failed to generate embedding: unexpected response format")
        vectors.append([float(x) for x in row])
    return vectors


class WorkersAIEmbedding:
    """
    Embedding provider using the Cloudflare Workers AI REST API.

    Authentication: account_id / api_token parameters, falling back to
    CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN.
    """

    def __init__(
        self,
        model: str = "@cf/baai/bge-base-en-v1.5",
        account_id: str | None = None,
        api_token: str | None = None,
        dimension: int | None = None,
        base_url: str = WORKERS_AI_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: httpx.BaseTransport | None = None,
    ):
        account_id = account_id or os.environ.get("CLOUDFLARE_ACCOUNT_ID")
        api_token = api_token or os.environ.get("CLOUDFLARE_API_TOKEN")
        if not account_id or not api_token:
            raise ValueError(
                "Workers AI requires CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN"
            )

        dim = dimension or KNOWN_DIMENSIONS.get(model)
        if dim is None:
            raise ValueError(
                f"Unknown dimension for model {model!r}; set 'dimension' in [embedding]"
            )

        self._model = model
        self._dimension = dim
        self._client = RetryingClient(
            base_url=f"{base_url.rstrip('/')}/accounts/{account_id}/ai/run",
            headers={"Authorization": f"Bearer {api_token}"},
            timeout=timeout,
            max_retries=max_retries,
            transport=transport,
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model

    def run(self, model: str, inputs: dict[str, Any]) -> dict[str, Any]:
        """POST inputs to a model and return the `result` payload."""
        response = self._client.post(f"/{model}", json=inputs)
        try:
            body = response.json()
        except ValueError as e:
            raise EmbeddingError(f"Failed to generate embedding: invalid JSON ({e})") from e
        if not isinstance(body, dict):
            raise EmbeddingError("Failed to generate embedding: unexpected response format")
        # The REST API wraps the model output in {"result": ..., "success": ...}
        return body.get("result", body)

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        result = self.run(self._model, {"text": texts})
        return _parse_vectors(result, len(texts))

    def close(self) -> None:
        self._client.close()


class SentenceTransformerEmbedding:
    """Local embedding provider using sentence-transformers."""

    def __init__(self, model: str = "BAAI/bge-base-en-v1.5", device: str | None = None):
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise RuntimeError(
                "SentenceTransformerEmbedding requires 'sentence-transformers'. "
                "Install with: pip install 'kbindex[local]'"
            )
        self._model_name = model
        self._model = SentenceTransformer(model, device=device)

    @property
    def dimension(self) -> int:
        return self._model.get_sentence_embedding_dimension()

    @property
    def model_name(self) -> str:
        return self._model_name

    def embed(self, text: str) -> list[float]:
        return self._model.encode(text, normalize_embeddings=True).tolist()

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return self._model.encode(texts, normalize_embeddings=True).tolist()


# Register providers
_registry = get_registry()
_registry.register_embedding("workers-ai", WorkersAIEmbedding)
_registry.register_embedding("sentence-transformers", SentenceTransformerEmbedding)
