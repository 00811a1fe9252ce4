"""Typed errors that cross the harness boundary.

Tool problems never show up here: they are folded into tool-result text for
the model. Only transport failures escape a turn.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    LLM_REQUEST_FAILED = "LLM_REQUEST_FAILED"
    LLM_AUTH_FAILED = "LLM_AUTH_FAILED"
    LLM_RATE_LIMITED = "LLM_RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class HarnessError(Exception):
    """Base error carrying a stable code."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


class TransportError(HarnessError):
    """The LLM call itself failed; the whole turn fails with it."""


_STATUS_CODES: dict[int, ErrorCode] = {
    401: ErrorCode.LLM_AUTH_FAILED,
    403: ErrorCode.LLM_AUTH_FAILED,
    429: ErrorCode.LLM_RATE_LIMITED,
    529: ErrorCode.LLM_RATE_LIMITED,
}

_CLASS_NAMES: dict[str, ErrorCode] = {
    "AuthenticationError": ErrorCode.LLM_AUTH_FAILED,
    "PermissionDeniedError": ErrorCode.LLM_AUTH_FAILED,
    "RateLimitError": ErrorCode.LLM_RATE_LIMITED,
    "OverloadedError": ErrorCode.LLM_RATE_LIMITED,
}


def to_transport_error(exc: BaseException, provider: str = "") -> TransportError:
    """Map an SDK exception onto a :class:`TransportError`.

    Looks at ``status_code`` first (OpenAI / Anthropic / httpx style), then at
    the exception class name.
    """
    if isinstance(exc, TransportError):
        return exc
    code = ErrorCode.LLM_REQUEST_FAILED
    status_code: int | None = getattr(exc, "status_code", None)
    if status_code is not None and status_code in _STATUS_CODES:
        code = _STATUS_CODES[status_code]
    elif type(exc).__name__ in _CLASS_NAMES:
        code = _CLASS_NAMES[type(exc).__name__]
    prefix = f"{provider} request failed" if provider else "LLM request failed"
    return TransportError(code, f"{prefix}: {exc}", exc)
