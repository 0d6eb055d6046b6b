"""
Shared fakes for the service boundaries.
"""

import asyncio
import re
from typing import List, Optional, Sequence
from unittest.mock import AsyncMock, Mock

import pytest

from docchat.models.embeddings import EmbeddingClient
from docchat.models.llm_manager import LLMManager
from docchat.rag.answer_generator import FALLBACK_ANSWER
from docchat.rag.models import Turn
from docchat.rag.query_rewriter import REWRITE_INSTRUCTION


class FakeEmbeddingClient(EmbeddingClient):
    """Deterministic bag-of-letters embeddings that records concurrency."""

    def __init__(self, dimension: int = 26, fail_on: Optional[str] = None, delay: float = 0.0):
        self.model_name = "fake-embedding-v1"
        self.dimension = dimension
        self.fail_on = fail_on
        self.delay = delay
        self.calls: List[List[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def _vector(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for char in text.lower():
            if char.isalpha():
                vector[(ord(char) - ord("a")) % self.dimension] += 1.0
        vector[0] += 0.001
        return vector

    async def _embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.fail_on and any(self.fail_on in text for text in texts):
                raise ConnectionError("embedding service unavailable")
            return [self._vector(text) for text in texts]
        finally:
            self.in_flight -= 1

    async def _embed_query(self, text: str) -> List[float]:
        return self._vector(text)


def echo_generate(history: Sequence[Turn], system_instruction: str, stage: str = "generate", **kwargs) -> str:
    """Stand-in chat model.

    Rewrites by returning the latest user turn unchanged; answers by quoting
    the context, or with the fallback sentence when the context is empty.
    """
    if system_instruction.startswith(REWRITE_INSTRUCTION):
        return history[-1].text
    context = system_instruction.split("Context:", 1)[1].strip()
    if not context:
        return FALLBACK_ANSWER
    first_passage = re.split(r"\n\n---\n\n", context)[0]
    return f"According to the document: {first_passage}"


@pytest.fixture
def embedding_client():
    return FakeEmbeddingClient()


@pytest.fixture
def llm_manager():
    manager = Mock(spec=LLMManager)
    manager.generate = AsyncMock(side_effect=echo_generate)
    return manager


@pytest.fixture
def make_embedding_client():
    """Factory for embedding clients with custom failure or latency behaviour."""
    return FakeEmbeddingClient
