"""
Data models for the RAG module.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List


@dataclass(frozen=True)
class Document:
    """Raw document text handed over by a loader."""
    text: str
    source_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Chunk:
    """A contiguous substring of a document."""
    text: str
    source_id: str
    offset: int
    length: int

    @property
    def chunk_id(self) -> str:
        """Stable vector id, so re-ingestion overwrites instead of duplicating."""
        return f"{self.source_id}#{self.offset}"


@dataclass
class IndexedVector:
    """A row of the vector store."""
    id: str
    embedding: List[float]
    text: str
    source_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class Role(Enum):
    """Speaker of a conversation turn."""
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class Turn:
    """A single conversation turn."""
    role: Role
    text: str


@dataclass
class RetrievedChunk:
    """A nearest-neighbour match returned by the vector store."""
    text: str
    score: float
    source_id: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IngestionReport:
    """Result of ingesting one document."""
    source_id: str
    chunk_count: int
    success: bool = True
    errors: List[str] = field(default_factory=list)
    processing_time: float = 0.0


@dataclass
class TurnResult:
    """Result of one completed question/answer exchange."""
    utterance: str
    standalone_query: str
    answer: str
    retrieved: List[RetrievedChunk]
    metadata: Dict[str, Any] = field(default_factory=dict)
