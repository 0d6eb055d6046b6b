"""
Vector Store for managing indexed chunk vectors and nearest-neighbour queries.
"""

import json
import logging
import pickle
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence

import numpy as np

from ..errors import ConfigError, DimensionMismatchError, ServiceError
from .models import IndexedVector, RetrievedChunk

logger = logging.getLogger(__name__)


class VectorStore(ABC):
    """Interface shared by all vector store backends.

    The dimension is fixed per store instance; vectors of any other dimension
    are rejected rather than truncated or padded.
    """

    dimension: Optional[int] = None

    def check_dimension(self, vector: Sequence[float], stage: str):
        """Raise DimensionMismatchError if ``vector`` does not match the store dimension."""
        if self.dimension is not None and len(vector) != self.dimension:
            raise DimensionMismatchError(stage, self.dimension, len(vector))

    @abstractmethod
    async def upsert(self, items: List[IndexedVector]) -> int:
        """Insert or overwrite items by id. Returns the number of items written."""
        pass

    @abstractmethod
    async def query(self, vector: Sequence[float], top_k: int) -> List[RetrievedChunk]:
        """Return up to ``top_k`` matches ordered by descending score."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored vectors."""
        pass

    @abstractmethod
    async def clear(self):
        """Remove all stored vectors."""
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        pass


class InMemoryVectorStore(VectorStore):
    """Cosine-similarity store kept in memory, optionally persisted to disk."""

    def __init__(self, dimension: Optional[int] = None, storage_path: Optional[Path] = None):
        if dimension is not None and dimension <= 0:
            raise ConfigError(f"Vector dimension must be positive, got {dimension}")
        self.dimension = dimension
        self.records: Dict[str, IndexedVector] = {}

        self.storage_path = Path(storage_path) if storage_path else None
        if self.storage_path:
            self.storage_path.mkdir(parents=True, exist_ok=True)
            self.records_file = self.storage_path / "records.json"
            self.embeddings_file = self.storage_path / "embeddings.pkl"
            self._load()

    def _load(self):
        """Load records from persistent storage."""
        if not self.records_file.exists():
            logger.info(f"No existing vectors found in {self.storage_path}")
            return

        with open(self.records_file, 'r') as f:
            records_data = json.load(f)

        embeddings = {}
        if self.embeddings_file.exists():
            with open(self.embeddings_file, 'rb') as f:
                embeddings = pickle.load(f)

        for record_data in records_data:
            record_data["embedding"] = embeddings.get(record_data["id"], [])
            record = IndexedVector(**record_data)
            self.check_dimension(record.embedding, "load")
            if self.dimension is None:
                self.dimension = len(record.embedding)
            self.records[record.id] = record

        logger.info(f"Loaded {len(self.records)} vectors from {self.storage_path}")

    def _save(self):
        """Save records to persistent storage."""
        if not self.storage_path:
            return

        records_data = []
        embeddings = {}
        for record in self.records.values():
            record_dict = asdict(record)
            # Embeddings are pickled separately, not stored in JSON
            embeddings[record.id] = record_dict.pop("embedding")
            records_data.append(record_dict)

        with open(self.records_file, 'w') as f:
            json.dump(records_data, f, indent=2)
        with open(self.embeddings_file, 'wb') as f:
            pickle.dump(embeddings, f)

        logger.debug(f"Saved {len(records_data)} vectors to {self.storage_path}")

    async def upsert(self, items: List[IndexedVector]) -> int:
        # Validate the whole batch first so a bad item leaves the store untouched
        dimension = self.dimension
        for item in items:
            if dimension is None:
                dimension = len(item.embedding)
            if len(item.embedding) != dimension:
                raise DimensionMismatchError("upsert", dimension, len(item.embedding))

        previous_records = dict(self.records)
        previous_dimension = self.dimension

        self.dimension = dimension
        for item in items:
            if item.id in self.records:
                logger.debug(f"Vector {item.id} already exists, overwriting")
            self.records[item.id] = item

        try:
            self._save()
        except Exception as e:
            # Keep memory consistent with what is on disk
            self.records = previous_records
            self.dimension = previous_dimension
            logger.error(f"Failed to persist vectors: {e}")
            raise ServiceError("upsert", str(e), cause=e) from e
        return len(items)

    async def query(self, vector: Sequence[float], top_k: int) -> List[RetrievedChunk]:
        if not self.records:
            return []
        self.check_dimension(vector, "retrieve")

        ids = list(self.records)
        matrix = np.array([self.records[i].embedding for i in ids], dtype=float)
        query_vector = np.asarray(vector, dtype=float)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vector)
        norms[norms == 0] = 1.0
        similarities = matrix @ query_vector / norms

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-similarities, kind="stable")[:top_k]
        return [
            RetrievedChunk(
                text=self.records[ids[i]].text,
                score=float(similarities[i]),
                source_id=self.records[ids[i]].source_id,
                metadata=dict(self.records[ids[i]].metadata)
            )
            for i in order
        ]

    async def count(self) -> int:
        return len(self.records)

    async def clear(self):
        self.records = {}
        self._save()
        logger.info("Cleared all vectors from store")

    def get_stats(self) -> Dict[str, Any]:
        sources = sorted(set(record.source_id for record in self.records.values()))
        total = len(self.records)
        return {
            "backend": "memory",
            "total_vector_count": total,
            "dimension": self.dimension,
            "metric": "cosine",
            "sources": sources,
            "avg_chunk_length": sum(len(r.text) for r in self.records.values()) / total if total else 0
        }
