"""
Ingestion Pipeline: chunk -> embed -> upsert.
"""

import logging
import asyncio
import time
from typing import Dict, Any, List, Optional
from pathlib import Path

from ..errors import ConfigError
from ..models.embeddings import EmbeddingClient
from ..rag.models import Chunk, Document, IndexedVector, IngestionReport
from ..rag.vector_store import VectorStore
from .chunker import chunk_document, validate_chunking
from .document_processor import DocumentProcessor

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Materializes documents into the vector store.

    Embedding calls run in batches with at most ``max_concurrency`` requests
    in flight. A document is upserted only after every batch embedded, so a
    failed embedding call leaves no partial index state for that document.
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        vector_store: VectorStore,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        max_concurrency: int = 5,
        batch_size: int = 32,
        document_processor: Optional[DocumentProcessor] = None
    ):
        validate_chunking(chunk_size, chunk_overlap)
        if max_concurrency <= 0:
            raise ConfigError(f"max_concurrency must be positive, got {max_concurrency}")
        if batch_size <= 0:
            raise ConfigError(f"batch_size must be positive, got {batch_size}")

        self.embedding_client = embedding_client
        self.vector_store = vector_store
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_concurrency = max_concurrency
        self.batch_size = batch_size
        self.document_processor = document_processor or DocumentProcessor()

    async def _embed_chunks(self, chunks: List[Chunk]) -> List[List[float]]:
        """Embed chunk texts in bounded-concurrency batches, preserving order."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def embed_batch(batch: List[Chunk]) -> List[List[float]]:
            async with semaphore:
                return await self.embedding_client.embed([chunk.text for chunk in batch])

        batches = [
            chunks[i:i + self.batch_size]
            for i in range(0, len(chunks), self.batch_size)
        ]
        tasks = [asyncio.ensure_future(embed_batch(batch)) for batch in batches]
        try:
            batch_vectors = await asyncio.gather(*tasks)
        except BaseException:
            # Do not leave sibling requests running once one batch failed
            for task in tasks:
                task.cancel()
            raise

        return [vector for vectors in batch_vectors for vector in vectors]

    async def ingest(self, document: Document) -> IngestionReport:
        """
        Chunk, embed and upsert a single document.

        Args:
            document: Document to ingest

        Returns:
            IngestionReport with the number of chunks written

        Raises:
            ServiceError: If any embedding or upsert call fails
        """
        start_time = time.time()
        chunks = chunk_document(document, self.chunk_size, self.chunk_overlap)

        if not chunks:
            logger.info(f"Document {document.source_id} produced no chunks")
            return IngestionReport(source_id=document.source_id, chunk_count=0)

        vectors = await self._embed_chunks(chunks)

        items = [
            IndexedVector(
                id=chunk.chunk_id,
                embedding=vector,
                text=chunk.text,
                source_id=chunk.source_id,
                metadata={"offset": chunk.offset, "length": chunk.length}
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        await self.vector_store.upsert(items)

        processing_time = time.time() - start_time
        logger.info(f"Ingested {document.source_id}: {len(chunks)} chunks in {processing_time:.2f}s")
        return IngestionReport(
            source_id=document.source_id,
            chunk_count=len(chunks),
            processing_time=processing_time
        )

    async def ingest_path(self, path: str) -> List[IngestionReport]:
        """
        Load and ingest every supported file under ``path``.

        A failing document is reported as failed; the remaining documents are
        still processed.
        """
        results = []
        for file_path in self.document_processor.iter_files(Path(path)):
            start_time = time.time()
            try:
                document = self.document_processor.load(file_path)
                results.append(await self.ingest(document))
            except Exception as e:
                logger.error(f"Failed to ingest {file_path}: {e}")
                results.append(IngestionReport(
                    source_id=str(file_path),
                    chunk_count=0,
                    success=False,
                    errors=[str(e)],
                    processing_time=time.time() - start_time
                ))

        if not results:
            logger.info(f"No supported documents found in {path}")
        return results

    def get_processing_stats(self) -> Dict[str, Any]:
        """Get processing settings."""
        return {
            "chunk_size": self.chunk_size,
            "chunk_overlap": self.chunk_overlap,
            "max_concurrency": self.max_concurrency,
            "batch_size": self.batch_size,
            "supported_formats": self.document_processor.supported_formats
        }
