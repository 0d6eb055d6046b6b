"""
Service boundaries: chat models and embedding models.
"""

from .llm_manager import LLMManager, LLMConfig, OpenAIProvider, AnthropicProvider
from .embeddings import EmbeddingClient, OpenAIEmbeddingClient, SentenceTransformerEmbeddingClient, create_embedding_client

__all__ = [
    "LLMManager",
    "LLMConfig",
    "OpenAIProvider",
    "AnthropicProvider",
    "EmbeddingClient",
    "OpenAIEmbeddingClient",
    "SentenceTransformerEmbeddingClient",
    "create_embedding_client",
]
