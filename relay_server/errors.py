"""
Upstream (language-model provider) error handling.
Maps provider failures to stable categories without leaking provider detail
or credentials to clients.
"""
import asyncio
import re
from typing import Optional

import aiohttp

from observability.events import relay_emitter, Severity


class UpstreamErrorCategory:
    """Stable error categories returned to clients as the response detail."""

    AUTH_FAILED = "upstream.auth_failed"
    RATE_LIMITED = "upstream.rate_limited"
    TIMEOUT = "upstream.timeout"
    UNREACHABLE = "upstream.unreachable"
    BAD_RESPONSE = "upstream.bad_response"
    UNKNOWN_ERROR = "upstream.unknown_error"


# HTTP status the relay answers with, per category
STATUS_CODES = {
    UpstreamErrorCategory.TIMEOUT: 504,
}
DEFAULT_STATUS_CODE = 502


class UpstreamError(Exception):
    """Non-success answer from the provider."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class UpstreamErrorHandler:
    """Classifies and reports upstream failures."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        """Classify an upstream failure into a stable category."""
        if isinstance(error, asyncio.TimeoutError):
            return UpstreamErrorCategory.TIMEOUT

        if isinstance(error, UpstreamError) and error.status is not None:
            if error.status in (401, 403):
                return UpstreamErrorCategory.AUTH_FAILED
            if error.status == 429:
                return UpstreamErrorCategory.RATE_LIMITED
            if error.status in (408, 504):
                return UpstreamErrorCategory.TIMEOUT
            if error.status >= 500:
                return UpstreamErrorCategory.UNREACHABLE
            return UpstreamErrorCategory.UNKNOWN_ERROR

        if isinstance(error, UpstreamError):
            return UpstreamErrorCategory.BAD_RESPONSE

        if isinstance(error, aiohttp.ClientError):
            return UpstreamErrorCategory.UNREACHABLE

        return UpstreamErrorCategory.UNKNOWN_ERROR

    @staticmethod
    def redact(detail: str) -> str:
        """Drop anything that looks like a credential from an error message."""
        lowered = detail.lower()
        if "secret" in lowered or "password" in lowered or "key" in lowered:
            return "[redacted: potential secret]"
        # Bearer tokens and sk-/gsk_ style keys
        return re.sub(r"(bearer\s+)?\b(g?sk[-_])[A-Za-z0-9_\-]+", "[redacted]", detail, flags=re.IGNORECASE)

    @staticmethod
    def handle_error(
        session_id: str,
        error: Exception,
        correlation_id: Optional[str] = None,
        latency_ms: Optional[int] = None,
    ) -> str:
        """
        Emit relay.upstream_error and return the category.
        Never raises; every failure maps to some category.
        """
        category = UpstreamErrorHandler.classify_error(error)

        relay_emitter.emit(
            "relay.upstream_error",
            session_id=session_id,
            severity=Severity.ERROR,
            correlation_id=correlation_id,
            category=category,
            error_class=type(error).__name__,
            status=getattr(error, "status", None),
            detail=UpstreamErrorHandler.redact(str(error)),
            latency_ms=latency_ms,
        )

        return category

    @staticmethod
    def status_code(category: str) -> int:
        return STATUS_CODES.get(category, DEFAULT_STATUS_CODE)
