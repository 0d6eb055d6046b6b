"""
Answer generation constrained to retrieved evidence.
"""

import logging
from typing import TYPE_CHECKING

from .conversation import ConversationHistory
from .models import Role, Turn

if TYPE_CHECKING:
    from ..models.llm_manager import LLMManager

logger = logging.getLogger(__name__)


FALLBACK_ANSWER = "I could not find the answer in the provided document."

DEFAULT_PERSONA = "You are a helpful assistant that answers questions about a document."

ANSWER_INSTRUCTION = """{persona}
You will be given a context of relevant information and a user question.
Your task is to answer the user's question based ONLY on the provided context.
If the answer is not in the context, you must say "{fallback}"
Keep your answers clear, concise, and educational.

Context: {context}
"""


def _normalize_answer(text: str) -> str:
    """Map quoted or re-punctuated variants of the fallback sentence to the exact string."""
    candidate = text.strip().strip("\"'").strip()
    if candidate.rstrip(".").lower() == FALLBACK_ANSWER.rstrip(".").lower():
        return FALLBACK_ANSWER
    return text.strip()


class AnswerGenerator:
    """Generates the model turn and records the completed exchange."""

    def __init__(self, llm_manager: "LLMManager", persona: str = DEFAULT_PERSONA):
        self.llm_manager = llm_manager
        self.persona = persona

    def build_instruction(self, context: str) -> str:
        return ANSWER_INSTRUCTION.format(
            persona=self.persona.strip(),
            fallback=FALLBACK_ANSWER,
            context=context
        )

    async def answer(self, history: ConversationHistory, standalone_query: str, context: str) -> str:
        """
        Answer ``standalone_query`` using only ``context``.

        Args:
            history: Session history; receives the exchange on success
            standalone_query: Rewritten, self-contained question
            context: Evidence block from the context assembler

        Returns:
            The answer text, or FALLBACK_ANSWER when there is no evidence

        Raises:
            ServiceError: If generation fails; history is left unchanged
        """
        if not context.strip():
            logger.info("No evidence retrieved, answering with fallback")
            answer = FALLBACK_ANSWER
        else:
            conversation = list(history.turns) + [Turn(role=Role.USER, text=standalone_query)]
            reply = await self.llm_manager.generate(
                conversation,
                self.build_instruction(context),
                stage="generate"
            )
            answer = _normalize_answer(reply)

        history.record_exchange(standalone_query, answer)
        return answer
