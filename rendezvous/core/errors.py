"""Application-level exception types.

Every rejected register/claim surfaces as exactly one ``AppError`` subclass,
identified by its ``ErrorKind``. The HTTP layer maps kinds to status codes in
``rendezvous.core.exception_handlers``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorKind(str, Enum):
    """Stable, machine-readable failure kinds."""

    INVALID_FORMAT = "invalid_format"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    STORE_UNAVAILABLE = "store_unavailable"


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    kind: ClassVar[ErrorKind]
    http_status: ClassVar[int] = 400

    message: str
    details: ErrorDetails | None = field(default=None)

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.value


class InvalidPhraseError(AppError):
    """Raised when a phrase does not match the passphrase grammar."""

    kind = ErrorKind.INVALID_FORMAT
    http_status = 400


class PhraseConflictError(AppError):
    """Raised when registering a phrase that already holds an entry."""

    kind = ErrorKind.CONFLICT
    http_status = 409


class PhraseNotFoundError(AppError):
    """Raised when claiming a phrase with no live entry.

    Never-registered, already-claimed and expired phrases are deliberately
    indistinguishable.
    """

    kind = ErrorKind.NOT_FOUND
    http_status = 404


class RateLimitedError(AppError):
    """Raised when the client's request budget for the window is spent."""

    kind = ErrorKind.RATE_LIMITED
    http_status = 429


class StoreUnavailableError(AppError):
    """Raised when the KV engine fails or a phrase lock cannot be acquired."""

    kind = ErrorKind.STORE_UNAVAILABLE
    http_status = 503
