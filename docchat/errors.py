"""
Error taxonomy for the DocChat pipelines.
"""

from typing import Optional


class DocChatError(Exception):
    """Base class for all DocChat errors."""


class ConfigError(DocChatError):
    """Invalid configuration detected before any I/O is performed."""


class ServiceError(DocChatError):
    """An external service call (embedding, generation, vector store) failed."""

    def __init__(self, stage: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage
        self.message = message
        self.cause = cause


class DimensionMismatchError(ServiceError):
    """A vector's dimension differs from the dimension fixed by the vector store."""

    def __init__(self, stage: str, expected: int, actual: int):
        super().__init__(stage, f"expected vector dimension {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
