"""
Document ingestion: loading, chunking and indexing into the vector store.
"""

from .chunker import chunk_document, validate_chunking
from .document_processor import DocumentProcessor
from .ingestion_pipeline import IngestionPipeline

__all__ = ["chunk_document", "validate_chunking", "DocumentProcessor", "IngestionPipeline"]
