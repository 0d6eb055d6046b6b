"""
Query rewriting: turns a follow-up utterance into a standalone question.
"""

import logging
from typing import Sequence, TYPE_CHECKING

from .models import Role, Turn

if TYPE_CHECKING:
    from ..models.llm_manager import LLMManager

logger = logging.getLogger(__name__)


REWRITE_INSTRUCTION = (
    "You are a query rewriting expert. Based on the provided chat history, rephrase the "
    "\"Follow Up user Question\" into a complete, standalone question that can be "
    "understood without the chat history.\n"
    "Only output the rewritten question and nothing else."
)


class QueryRewriter:
    """Rewrites the latest user utterance relative to the answered exchanges."""

    def __init__(self, llm_manager: "LLMManager", skip_when_empty: bool = False):
        self.llm_manager = llm_manager
        self.skip_when_empty = skip_when_empty

    async def rewrite(self, history: Sequence[Turn], utterance: str) -> str:
        """
        Rephrase ``utterance`` into a standalone query.

        The utterance is sent as a provisional user turn on a copy of the
        history; the caller's history is never modified.

        Args:
            history: Snapshot of the answered exchanges so far
            utterance: Raw user input for this turn

        Returns:
            The rewritten query text

        Raises:
            ServiceError: If the rewriting model call fails
        """
        if self.skip_when_empty and not history:
            logger.debug("Empty history, using utterance as standalone query")
            return utterance.strip()

        working_history = list(history) + [Turn(role=Role.USER, text=utterance)]
        standalone_query = await self.llm_manager.generate(
            working_history,
            REWRITE_INSTRUCTION,
            stage="rewrite"
        )

        logger.info(f"Rewrote query: {utterance!r} -> {standalone_query!r}")
        return standalone_query
