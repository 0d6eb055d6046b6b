"""
Context assembly for grounded generation.
"""

from typing import Sequence

from .models import RetrievedChunk

CONTEXT_SEPARATOR = "\n\n---\n\n"


def assemble_context(results: Sequence[RetrievedChunk]) -> str:
    """Join retrieved chunk texts, in retrieval order, into one evidence block."""
    return CONTEXT_SEPARATOR.join(result.text for result in results)
