from __future__ import annotations

from typing import Any, Literal

ErrorCategory = Literal["invalid_input", "not_found", "mechanical", "rate_limited"]


class StreamRelayError(Exception):
    """Base error for extraction and gateway use cases.

    Every error surfaced to a caller is structured: a stable ``kind``,
    a human message, the request correlation id and optional suggestions.
    """

    kind: str = "internal_error"
    category: ErrorCategory = "mechanical"
    status_code: int = 500

    def __init__(
        self,
        message: str = "",
        *,
        correlation_id: str | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.correlation_id = correlation_id
        self.suggestions = list(suggestions or [])

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.kind,
            "category": self.category,
            "message": self.message,
            "suggestions": self.suggestions,
            "requestId": self.correlation_id,
        }


# Alias used by the extraction use case signature.
ExtractionError = StreamRelayError


class InvalidInput(StreamRelayError):
    kind = "invalid_input"
    category = "invalid_input"
    status_code = 400


class HopExtractionFailed(StreamRelayError):
    """No extractor of a hop produced a URL carrying the hop marker."""

    kind = "hop_extraction_failed"
    status_code = 502

    def __init__(self, message: str = "", *, hop: str | None = None, **kw) -> None:
        super().__init__(message, **kw)
        self.hop = hop


HopNotFound = HopExtractionFailed


class UpstreamNotFound(StreamRelayError):
    kind = "not_found"
    category = "not_found"
    status_code = 404


class UpstreamTransientError(StreamRelayError):
    """5xx, network failure or non-2xx hop response after the retry budget."""

    kind = "upstream_error"
    status_code = 502

    def __init__(self, message: str = "", *, status: int | None = None, **kw) -> None:
        super().__init__(message, **kw)
        self.status = status


UpstreamHttpError = UpstreamTransientError


class UpstreamTimeout(UpstreamTransientError):
    """Gateway fetch exceeded its deadline."""

    kind = "upstream_timeout"
    status_code = 408


class ChallengeUnsolved(StreamRelayError):
    kind = "challenge_unsolved"
    status_code = 502


class ExtractionTimeout(StreamRelayError):
    kind = "timeout"
    status_code = 502


class RateLimited(StreamRelayError):
    kind = "rate_limited"
    category = "rate_limited"
    status_code = 429

    def __init__(self, message: str = "", *, retry_after: int = 1, **kw) -> None:
        super().__init__(message, **kw)
        self.retry_after = max(1, int(retry_after))

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retryAfter"] = self.retry_after
        return data


class AutomatedClientRejected(StreamRelayError):
    kind = "automated_client_rejected"
    category = "invalid_input"
    status_code = 403
