"""
Pinecone-backed vector store.
"""

import asyncio
import logging
import os
from typing import Dict, Any, List, Optional, Sequence

from pinecone import Pinecone, ServerlessSpec

from ..errors import ConfigError, ServiceError
from .models import IndexedVector, RetrievedChunk
from .vector_store import VectorStore, InMemoryVectorStore

logger = logging.getLogger(__name__)


class PineconeVectorStore(VectorStore):
    """Vector store on a Pinecone serverless index.

    The client and index handle are acquired once and reused for every call.
    Chunk text and source are kept in vector metadata.
    """

    UPSERT_BATCH_SIZE = 100

    def __init__(
        self,
        index_name: str,
        dimension: int,
        api_key: Optional[str] = None,
        metric: str = "cosine",
        cloud: str = "aws",
        region: str = "us-east-1",
        namespace: str = ""
    ):
        if not dimension or dimension <= 0:
            raise ConfigError("Pinecone vector store requires a positive dimension")

        self.index_name = index_name
        self.dimension = dimension
        self.metric = metric
        self.namespace = namespace

        api_key = api_key or os.getenv("PINECONE_API_KEY")
        if not api_key:
            raise ConfigError("Pinecone API key must be provided")

        self.pc = Pinecone(api_key=api_key)
        self._setup_index(cloud, region)

    def _setup_index(self, cloud: str, region: str):
        """Get or create the Pinecone index."""
        try:
            if self.index_name not in self.pc.list_indexes().names():
                self.pc.create_index(
                    name=self.index_name,
                    dimension=self.dimension,
                    metric=self.metric,
                    spec=ServerlessSpec(cloud=cloud, region=region)
                )
                logger.info(f"Created Pinecone index: {self.index_name}")
            else:
                logger.info(f"Using existing Pinecone index: {self.index_name}")

            self.index = self.pc.Index(self.index_name)

        except Exception as e:
            logger.error(f"Failed to setup Pinecone index: {e}")
            raise ServiceError("connect", str(e), cause=e) from e

    async def upsert(self, items: List[IndexedVector]) -> int:
        for item in items:
            self.check_dimension(item.embedding, "upsert")

        pinecone_vectors = [
            {
                "id": item.id,
                "values": item.embedding,
                "metadata": {**item.metadata, "text": item.text, "source": item.source_id}
            }
            for item in items
        ]

        written_ids: List[str] = []
        try:
            for i in range(0, len(pinecone_vectors), self.UPSERT_BATCH_SIZE):
                batch = pinecone_vectors[i:i + self.UPSERT_BATCH_SIZE]
                await asyncio.to_thread(self.index.upsert, vectors=batch, namespace=self.namespace)
                written_ids.extend(vector["id"] for vector in batch)
        except Exception as e:
            logger.error(f"Failed to upsert to Pinecone: {e}")
            await self._rollback(written_ids)
            raise ServiceError("upsert", str(e), cause=e) from e

        logger.info(f"Upserted {len(pinecone_vectors)} vectors to Pinecone index {self.index_name}")
        return len(pinecone_vectors)

    async def _rollback(self, ids: List[str]):
        """Best-effort delete of batches already written by a failed upsert."""
        if not ids:
            return
        try:
            await asyncio.to_thread(self.index.delete, ids=ids, namespace=self.namespace)
            logger.info(f"Rolled back {len(ids)} vectors after failed upsert")
        except Exception as e:
            logger.error(f"Rollback of {len(ids)} vectors failed: {e}")

    async def query(self, vector: Sequence[float], top_k: int) -> List[RetrievedChunk]:
        self.check_dimension(vector, "retrieve")

        try:
            query_response = await asyncio.to_thread(
                self.index.query,
                vector=list(vector),
                top_k=top_k,
                include_metadata=True,
                namespace=self.namespace
            )
        except Exception as e:
            logger.error(f"Pinecone query failed: {e}")
            raise ServiceError("retrieve", str(e), cause=e) from e

        results = []
        for match in query_response.matches:
            metadata = dict(match.metadata or {})
            results.append(RetrievedChunk(
                text=metadata.pop("text", ""),
                score=float(match.score),
                source_id=metadata.pop("source", ""),
                metadata=metadata
            ))
        return results

    async def count(self) -> int:
        try:
            stats = await asyncio.to_thread(self.index.describe_index_stats)
        except Exception as e:
            logger.error(f"Failed to count Pinecone vectors: {e}")
            raise ServiceError("count", str(e), cause=e) from e
        return stats.total_vector_count

    async def clear(self):
        try:
            await asyncio.to_thread(self.index.delete, delete_all=True, namespace=self.namespace)
            logger.info("Cleared all vectors from Pinecone index")
        except Exception as e:
            logger.error(f"Failed to clear index: {e}")
            raise ServiceError("clear", str(e), cause=e) from e

    def get_stats(self) -> Dict[str, Any]:
        """Get Pinecone index statistics."""
        try:
            index_stats = self.index.describe_index_stats()
            return {
                "backend": "pinecone",
                "index_name": self.index_name,
                "total_vector_count": index_stats.total_vector_count,
                "dimension": index_stats.dimension,
                "metric": self.metric
            }
        except Exception as e:
            logger.error(f"Failed to get Pinecone stats: {e}")
            return {"error": str(e)}


def create_vector_store(config: Dict[str, Any], dimension: Optional[int] = None) -> VectorStore:
    """Build the vector store described by the ``vector_store`` config section."""
    provider = config.get("provider", "memory")
    dimension = config.get("dimension", dimension)

    if provider == "memory":
        return InMemoryVectorStore(dimension=dimension, storage_path=config.get("storage_path"))
    if provider == "pinecone":
        return PineconeVectorStore(
            index_name=config.get("index_name", "docchat"),
            dimension=dimension,
            api_key=config.get("api_key"),
            metric=config.get("metric", "cosine"),
            cloud=config.get("cloud", "aws"),
            region=config.get("region", "us-east-1"),
            namespace=config.get("namespace", "")
        )
    raise ConfigError(f"Unknown vector store provider: {provider}")
