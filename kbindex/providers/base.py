"""
Base provider protocols.

These define the interfaces that concrete providers must implement.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

from typing import Protocol, runtime_checkable


# -----------------------------------------------------------------------------
# Embedding Generation
# -----------------------------------------------------------------------------

@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Generates vector embeddings from text.

    The same provider (same model) must be used for both indexing and
    querying, and its dimension must match the vector index's.

    Example implementation:
        class HashEmbedding:
            dimension = 8
            model_name = "hash"

            def embed(self, text: str) -> list[float]:
                digest = hashlib.sha256(text.encode()).digest()
                return [b / 255 for b in digest[:8]]

            def embed_batch(self, texts: list[str]) -> list[list[float]]:
                return [self.embed(t) for t in texts]
    """

    @property
    def dimension(self) -> int:
        """
        The dimensionality of the embedding vectors.

        This must be consistent across all calls and match the vector
        index's provisioning.
        """
        ...

    @property
    def model_name(self) -> str:
        """Identifier of the underlying model."""
        ...

    def embed(self, text: str) -> list[float]:
        """
        Generate an embedding vector for the given text.

        Args:
            text: The text to embed

        Returns:
            A list of floats representing the embedding vector

        Raises:
            EmbeddingError: If the model response is malformed
        """
        ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, one per input text
        """
        ...


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating embedding providers.

    Providers are registered by name and instantiated from the store's TOML
    configuration, so switching models needs no code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_embedding("workers-ai", WorkersAIEmbedding)

        # Later, from config:
        provider = registry.create_embedding("workers-ai", {"model": "@cf/baai/bge-base-en-v1.5"})
    """

    def __init__(self):
        self._embedding_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily import provider modules so they register themselves."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        from . import embeddings  # noqa: F401

    def register_embedding(self, name: str, provider_class: type) -> None:
        """Register an embedding provider class."""
        self._embedding_providers[name] = provider_class

    def create_embedding(self, name: str, params: dict | None = None) -> EmbeddingProvider:
        """Create an embedding provider instance."""
        self._ensure_providers_loaded()
        if name not in self._embedding_providers:
            available = ", ".join(self._embedding_providers.keys()) or "none"
            raise ValueError(
                f"Unknown embedding provider: '{name}'. "
                f"Available providers: {available}."
            )
        try:
            return self._embedding_providers[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create embedding provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e

    def list_embedding_providers(self) -> list[str]:
        """List registered embedding provider names."""
        self._ensure_providers_loaded()
        return list(self._embedding_providers.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
