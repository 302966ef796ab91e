"""Outcome of handing an outbound message to a channel."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode:
    NOT_CONFIGURED = "not_configured"  # binding lacks credentials
    NO_RECIPIENT = "no_recipient"
    UNSUPPORTED = "unsupported"  # no dispatcher for the channel
    UNSUPPORTED_MEDIA = "unsupported_media"
    PROVIDER_ERROR = "provider_error"
    EXCEPTION = "exception"

    # Failures that may succeed if the same message is sent again later.
    TRANSIENT = frozenset({PROVIDER_ERROR, EXCEPTION})


@dataclass
class Result(Generic[T]):
    """``value`` carries the provider message id on success."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = ErrorCode.PROVIDER_ERROR) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    @property
    def transient(self) -> bool:
        return not self.ok and self.error_code in ErrorCode.TRANSIENT
