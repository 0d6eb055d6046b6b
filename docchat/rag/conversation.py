"""
Session-scoped conversation history.
"""

import logging
from typing import List, Tuple

from .models import Role, Turn

logger = logging.getLogger(__name__)


class ConversationHistory:
    """Ordered, append-only turns of one chat session.

    Readers get immutable snapshots. The only writer is the answer generator,
    which records a full exchange (user query, model answer) at once, so the
    visible history always ends with a model turn.
    """

    def __init__(self):
        self._turns: List[Turn] = []

    @property
    def turns(self) -> Tuple[Turn, ...]:
        """Snapshot of the history, oldest turn first."""
        return tuple(self._turns)

    def record_exchange(self, query: str, answer: str):
        """Append a user turn and the model turn answering it."""
        self._turns.extend([
            Turn(role=Role.USER, text=query),
            Turn(role=Role.MODEL, text=answer),
        ])
        logger.debug(f"Recorded exchange, history now has {len(self._turns)} turns")

    def clear(self):
        self._turns = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(self.turns)

    def __bool__(self) -> bool:
        return bool(self._turns)
