from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional


class FailureKind(Enum):
    """How a failed provider call should steer the fallback chain."""

    RATE_LIMITED = "rate_limited"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    GATEWAY_TIMEOUT = "gateway_timeout"
    AUTH_FAILURE = "auth_failure"
    MALFORMED_OUTPUT = "malformed_output"
    UNKNOWN = "unknown"


_AUTH_MARKERS = ("api key", "permission", "unauthorized", "forbidden", "invalid credentials")
_TIMEOUT_MARKERS = ("504", "gateway", "timed out", "timeout")
_LOADING_MARKERS = ("503", "loading", "service unavailable")
_RATE_MARKERS = ("429", "rate limit", "too many requests", "quota")


def classify_failure(status: Optional[int], message: str) -> FailureKind:
    """Map an HTTP-like status plus error text to a FailureKind.

    Status codes win over message text. Every input maps to exactly one kind,
    UNKNOWN being the catch-all.
    """
    if status in (401, 403):
        return FailureKind.AUTH_FAILURE
    if status == 504:
        return FailureKind.GATEWAY_TIMEOUT
    if status == 503:
        return FailureKind.PROVIDER_UNAVAILABLE
    if status == 429:
        return FailureKind.RATE_LIMITED
    lower = (message or "").lower()
    if any(m in lower for m in _AUTH_MARKERS):
        return FailureKind.AUTH_FAILURE
    if any(m in lower for m in _TIMEOUT_MARKERS):
        return FailureKind.GATEWAY_TIMEOUT
    if any(m in lower for m in _LOADING_MARKERS):
        return FailureKind.PROVIDER_UNAVAILABLE
    if any(m in lower for m in _RATE_MARKERS):
        return FailureKind.RATE_LIMITED
    return FailureKind.UNKNOWN


class SitegenError(Exception):
    """Base class for errors whose message is safe to show to the end user."""

    @property
    def message(self) -> str:
        return str(self)


class InvalidRequest(SitegenError):
    pass


class ProviderError(SitegenError):
    def __init__(self, message: str, status: Optional[int] = None, kind: Optional[FailureKind] = None):
        super().__init__(message)
        self.status = status
        self.kind = kind or classify_failure(status, message)


class ExtractionFailed(SitegenError):
    kind = FailureKind.MALFORMED_OUTPUT


class PayloadTooShort(ExtractionFailed):
    pass


class FallbackExhausted(SitegenError):
    def __init__(self, message: str, attempts: Optional[List[Any]] = None):
        super().__init__(message)
        self.attempts = list(attempts or [])


class GenerationAborted(FallbackExhausted):
    """The chain stopped early on an authentication failure."""


class GenerationError(SitegenError):
    def __init__(self, message: str, primary_error: Optional[BaseException] = None,
                 fallback_error: Optional[BaseException] = None):
        super().__init__(message)
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class TemplateApiError(SitegenError):
    def __init__(self, detail: str, status: int = 502):
        super().__init__(detail)
        self.status = status
