"""Error kinds and the result value returned across component boundaries."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


class AuthErrorKind(str, Enum):
    """Failures of the Spotify authorization and token lifecycle."""

    MISSING_VERIFIER = "missing_verifier"
    EXCHANGE_FAILED = "exchange_failed"
    UNAUTHENTICATED = "unauthenticated"
    REFRESH_FAILED = "refresh_failed"


class PollErrorKind(str, Enum):
    """Failures of a now-playing poll."""

    UNAUTHENTICATED = "unauthenticated"
    REFRESH_FAILED = "refresh_failed"
    FETCH_FAILED = "fetch_failed"
    MALFORMED_RESPONSE = "malformed_response"


class PublishErrorKind(str, Enum):
    """Failures of a single Slack profile sub-update."""

    IMAGE_FETCH_FAILED = "image_fetch_failed"
    PLATFORM_REJECTED = "platform_rejected"
    TRANSPORT_FAILED = "transport_failed"


@dataclass(frozen=True)
class Result(Generic[T, E]):
    """Outcome of an operation: either ``value`` or ``error`` is set."""

    value: Optional[T] = None
    error: Optional[E] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T, E]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: E, message: Optional[str] = None) -> "Result[T, E]":
        return cls(error=error, message=message)
