"""
Embedding providers for the knowledge base.

Concrete providers register themselves with the global registry when
`providers.embeddings` is imported (done lazily by the registry).
"""

from .base import EmbeddingProvider, ProviderRegistry, get_registry

__all__ = ["EmbeddingProvider", "ProviderRegistry", "get_registry"]
