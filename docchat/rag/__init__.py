"""
RAG (Retrieval-Augmented Generation) query side: conversation state, query
rewriting, retrieval, context assembly and grounded answer generation.
"""

from .models import Document, Chunk, IndexedVector, Role, Turn, RetrievedChunk, IngestionReport, TurnResult
from .conversation import ConversationHistory
from .query_rewriter import QueryRewriter
from .retriever import Retriever
from .context import assemble_context, CONTEXT_SEPARATOR
from .answer_generator import AnswerGenerator, FALLBACK_ANSWER
from .pipeline import QueryPipeline, ChatSession, build_query_pipeline
from .vector_store import VectorStore, InMemoryVectorStore

__all__ = [
    "Document",
    "Chunk",
    "IndexedVector",
    "Role",
    "Turn",
    "RetrievedChunk",
    "IngestionReport",
    "TurnResult",
    "ConversationHistory",
    "QueryRewriter",
    "Retriever",
    "assemble_context",
    "CONTEXT_SEPARATOR",
    "AnswerGenerator",
    "FALLBACK_ANSWER",
    "QueryPipeline",
    "ChatSession",
    "build_query_pipeline",
    "VectorStore",
    "InMemoryVectorStore",
]
