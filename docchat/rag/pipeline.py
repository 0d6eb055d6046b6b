"""
Query pipeline: rewrite -> retrieve -> assemble -> answer, one user turn at a time.
"""

import asyncio
import logging
import time
from typing import Dict, Any, TYPE_CHECKING

from ..errors import ConfigError
from .answer_generator import AnswerGenerator, DEFAULT_PERSONA
from .context import assemble_context
from .conversation import ConversationHistory
from .models import TurnResult
from .query_rewriter import QueryRewriter
from .retriever import Retriever
from .vector_store import VectorStore

if TYPE_CHECKING:
    from ..models.embeddings import EmbeddingClient
    from ..models.llm_manager import LLMManager

logger = logging.getLogger(__name__)


class QueryPipeline:
    """Runs the query stages for one utterance.

    Stages run strictly in sequence because each consumes the previous output.
    A failing stage raises ServiceError and the history is left as it was.
    """

    def __init__(self, rewriter: QueryRewriter, retriever: Retriever, answer_generator: AnswerGenerator):
        self.rewriter = rewriter
        self.retriever = retriever
        self.answer_generator = answer_generator

    async def run_turn(self, history: ConversationHistory, utterance: str) -> TurnResult:
        """
        Process one user utterance.

        Args:
            history: Session history, updated only when the turn completes
            utterance: Raw user input

        Returns:
            TurnResult with the standalone query, answer and evidence
        """
        if not utterance or not utterance.strip():
            raise ConfigError("Utterance must not be empty")

        start_time = time.time()

        standalone_query = await self.rewriter.rewrite(history.turns, utterance)
        retrieved = await self.retriever.retrieve(standalone_query)
        context = assemble_context(retrieved)
        answer = await self.answer_generator.answer(history, standalone_query, context)

        processing_time = time.time() - start_time
        logger.info(f"Turn completed in {processing_time:.2f}s with {len(retrieved)} chunks")

        return TurnResult(
            utterance=utterance,
            standalone_query=standalone_query,
            answer=answer,
            retrieved=retrieved,
            metadata={
                "chunk_count": len(retrieved),
                "context_length": len(context),
                "processing_time": processing_time
            }
        )


class ChatSession:
    """One conversation: its own history, turns processed one at a time."""

    def __init__(self, pipeline: QueryPipeline):
        self.pipeline = pipeline
        self.history = ConversationHistory()
        self._lock = asyncio.Lock()

    async def ask(self, utterance: str) -> TurnResult:
        async with self._lock:
            return await self.pipeline.run_turn(self.history, utterance)

    def reset(self):
        self.history.clear()
        logger.info("Conversation history cleared")


def build_query_pipeline(
    config: Dict[str, Any],
    llm_manager: "LLMManager",
    embedding_client: "EmbeddingClient",
    vector_store: VectorStore
) -> QueryPipeline:
    """Wire the query stages from the ``retrieval``, ``rewriter`` and ``generation`` config sections."""
    rewriter = QueryRewriter(
        llm_manager,
        skip_when_empty=config.get("rewriter", {}).get("skip_when_empty", False)
    )
    retriever = Retriever(
        embedding_client,
        vector_store,
        top_k=config.get("retrieval", {}).get("top_k", 10)
    )
    answer_generator = AnswerGenerator(
        llm_manager,
        persona=config.get("generation", {}).get("persona", DEFAULT_PERSONA)
    )
    return QueryPipeline(rewriter, retriever, answer_generator)
