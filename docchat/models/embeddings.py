"""
Embedding clients that turn text into fixed-dimensional vectors.

Ingestion and querying must use the same client configuration: vectors from
different embedding models are not comparable.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Sequence

from langchain_openai import OpenAIEmbeddings

from ..errors import ConfigError, ServiceError
from .llm_manager import resolve_env_vars

logger = logging.getLogger(__name__)


class EmbeddingClient(ABC):
    """Abstract base class for embedding providers."""

    model_name: str

    @abstractmethod
    async def _embed_documents(self, texts: List[str]) -> List[List[float]]:
        pass

    @abstractmethod
    async def _embed_query(self, text: str) -> List[float]:
        pass

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts, one vector per input in input order."""
        texts = list(texts)
        if not texts:
            return []
        try:
            vectors = await self._embed_documents(texts)
        except Exception as e:
            logger.error(f"Embedding of {len(texts)} texts with {self.model_name} failed: {e}")
            raise ServiceError("embed", str(e), cause=e) from e

        if len(vectors) != len(texts):
            raise ServiceError(
                "embed",
                f"{self.model_name} returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return [list(map(float, vector)) for vector in vectors]

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single query text."""
        try:
            vector = await self._embed_query(text)
        except Exception as e:
            logger.error(f"Query embedding with {self.model_name} failed: {e}")
            raise ServiceError("embed", str(e), cause=e) from e

        if vector is None or len(vector) == 0:
            raise ServiceError("embed", f"{self.model_name} returned an empty query vector")
        return list(map(float, vector))


class OpenAIEmbeddingClient(EmbeddingClient):
    """OpenAI embeddings through LangChain."""

    def __init__(self, model_name: str = "text-embedding-3-small", api_key: Optional[str] = None):
        self.model_name = model_name
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key or api_key.startswith("${"):
            raise ConfigError("OpenAI API key not found for embeddings")
        self.embedder = OpenAIEmbeddings(model=model_name, api_key=api_key)

    async def _embed_documents(self, texts: List[str]) -> List[List[float]]:
        return await self.embedder.aembed_documents(texts)

    async def _embed_query(self, text: str) -> List[float]:
        return await self.embedder.aembed_query(text)


class SentenceTransformerEmbeddingClient(EmbeddingClient):
    """Local sentence-transformers model, encoded off the event loop."""

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2"):
        # Imported here so the torch stack loads only for the local provider
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        self.model = SentenceTransformer(model_name)

    async def _embed_documents(self, texts: List[str]) -> List[List[float]]:
        embeddings = await asyncio.to_thread(self.model.encode, texts)
        return [embedding.tolist() for embedding in embeddings]

    async def _embed_query(self, text: str) -> List[float]:
        embeddings = await asyncio.to_thread(self.model.encode, [text])
        return embeddings[0].tolist()


def create_embedding_client(config: Dict[str, Any]) -> EmbeddingClient:
    """Build the embedding client described by the ``embeddings`` config section."""
    provider = config.get("provider", "openai")
    model = config.get("model")

    if provider == "openai":
        client = OpenAIEmbeddingClient(
            model_name=model or "text-embedding-3-small",
            api_key=resolve_env_vars(config.get("api_key")) if config.get("api_key") else None
        )
    elif provider == "sentence-transformers":
        client = SentenceTransformerEmbeddingClient(model_name=model or "sentence-transformers/all-MiniLM-L6-v2")
    else:
        raise ConfigError(f"Unknown embedding provider: {provider}")

    logger.info(f"Embedding client initialized: {provider}/{client.model_name}")
    return client
