"""
Fixed-size character chunker with overlap.
"""

from typing import List

from ..errors import ConfigError
from ..rag.models import Chunk, Document


def validate_chunking(chunk_size: int, overlap: int):
    """Raise ConfigError for chunking parameters that cannot produce a window."""
    if not isinstance(chunk_size, int) or chunk_size <= 0:
        raise ConfigError(f"chunk_size must be a positive integer, got {chunk_size!r}")
    if not isinstance(overlap, int) or overlap < 0:
        raise ConfigError(f"chunk_overlap must be a non-negative integer, got {overlap!r}")
    if overlap >= chunk_size:
        raise ConfigError(f"chunk_overlap ({overlap}) must be smaller than chunk_size ({chunk_size})")


def chunk_document(document: Document, chunk_size: int, overlap: int) -> List[Chunk]:
    """
    Split a document into overlapping fixed-size chunks.

    Each chunk is ``text[offset:offset + chunk_size]`` and the next offset is
    ``offset + chunk_size - overlap``. Boundaries ignore sentence structure.

    Args:
        document: Document to split
        chunk_size: Maximum characters per chunk
        overlap: Characters shared by consecutive chunks

    Returns:
        Chunks in document order; empty for an empty document
    """
    validate_chunking(chunk_size, overlap)

    text = document.text
    text_length = len(text)
    step = chunk_size - overlap
    chunks = []

    offset = 0
    while offset < text_length:
        end = min(offset + chunk_size, text_length)
        chunks.append(Chunk(
            text=text[offset:end],
            source_id=document.source_id,
            offset=offset,
            length=end - offset
        ))
        if end >= text_length:
            # Remainder already covered; a further window would only repeat overlap
            break
        offset += step

    return chunks
