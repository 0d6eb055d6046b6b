"""
Retriever: embeds a standalone query and fetches the nearest chunks.
"""

import logging
from typing import List, TYPE_CHECKING

from ..errors import ConfigError, DocChatError, ServiceError
from .models import RetrievedChunk
from .vector_store import VectorStore

if TYPE_CHECKING:
    from ..models.embeddings import EmbeddingClient

logger = logging.getLogger(__name__)


class Retriever:
    """Top-K nearest-neighbour retrieval over the vector store.

    Must be given the same embedding client that was used at ingestion time.
    """

    def __init__(self, embedding_client: "EmbeddingClient", vector_store: VectorStore, top_k: int = 10):
        if not isinstance(top_k, int) or top_k <= 0:
            raise ConfigError(f"top_k must be a positive integer, got {top_k!r}")
        self.embedding_client = embedding_client
        self.vector_store = vector_store
        self.top_k = top_k

    async def retrieve(self, query: str) -> List[RetrievedChunk]:
        """
        Retrieve up to ``top_k`` chunks for a query.

        Results keep the store's order (descending similarity) and may hold
        fewer than ``top_k`` items when the index is sparse.
        """
        query_vector = await self.embedding_client.embed_query(query)
        try:
            results = await self.vector_store.query(query_vector, self.top_k)
        except DocChatError:
            raise
        except Exception as e:
            logger.error(f"Vector store query failed: {e}")
            raise ServiceError("retrieve", str(e), cause=e) from e

        logger.info(f"Retrieved {len(results)} chunks (top_k={self.top_k})")
        return results[:self.top_k]
