"""
Error taxonomy for lorekeeper.

Every error raised on purpose by the package derives from
``LorekeeperError`` so the outer surfaces (CLI, MCP server) can catch one
type and report it.  Each carries a stable ``ErrorCode`` plus a free-form
``details`` dict for logging.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes, grouped by concern."""

    # Input (1xxx)
    INVALID_INPUT = "1002"
    NOT_FOUND = "1003"
    DIMENSION_MISMATCH = "1010"

    # Access (2xxx)
    OWNERSHIP = "2002"

    # Embedding provider (4xxx)
    EMBEDDING_FAILED = "4003"


class LorekeeperError(Exception):
    """Base class for all lorekeeper errors."""

    code: ErrorCode = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}


class ValidationError(LorekeeperError):
    """Empty content, importance out of range, malformed tags or query."""

    code = ErrorCode.INVALID_INPUT


class DimensionMismatchError(ValidationError):
    """An embedding's length differs from the store's dimension."""

    code = ErrorCode.DIMENSION_MISMATCH

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding has {actual} dimensions, expected {expected}",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class NotFoundError(LorekeeperError):
    """The referenced memory does not exist."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, memory_id: str) -> None:
        super().__init__(f"Memory {memory_id} not found", details={"memory_id": memory_id})
        self.memory_id = memory_id


class OwnershipError(LorekeeperError):
    """The memory exists but belongs to another campaign."""

    code = ErrorCode.OWNERSHIP

    def __init__(self, memory_id: str, campaign_id: int) -> None:
        super().__init__(
            f"Memory {memory_id} does not belong to campaign {campaign_id}",
            details={"memory_id": memory_id, "campaign_id": campaign_id},
        )
        self.memory_id = memory_id
        self.campaign_id = campaign_id


class EmbeddingProviderError(LorekeeperError):
    """The embedding provider failed, timed out or returned malformed data."""

    code = ErrorCode.EMBEDDING_FAILED


EmbeddingFailure = EmbeddingProviderError
