"""Error taxonomy shared by providers, resolver, radio engine and player.

Every raised error carries an `ErrorKind` so callers can branch on the kind
(skip track, enter cooldown, fall back) without string matching.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classified failure kinds surfaced across the engine."""

    NOT_RESOLVABLE = "not_resolvable"
    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK_ERROR = "network_error"
    INVALID_IDENTIFIER = "invalid_identifier"
    RECOMMENDATION_EXHAUSTED = "recommendation_exhausted"
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    BACKEND_ERROR = "backend_error"


TRANSIENT_KINDS = frozenset({ErrorKind.NETWORK_ERROR, ErrorKind.SERVER_ERROR})

_QUOTA_REASONS = frozenset(
    {"quotaexceeded", "dailylimitexceeded", "dailylimitexceededunreg"}
)


class ContinuoError(Exception):
    """Base error with a classified kind."""

    kind: ErrorKind = ErrorKind.NOT_RESOLVABLE

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class ProviderError(ContinuoError):
    """HTTP/transport failure talking to an external provider."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        kind: ErrorKind,
        status_code: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message, kind=kind)
        self.provider = provider
        self.status_code = status_code
        self.reason = reason

    @property
    def is_transient(self) -> bool:
        return self.kind in TRANSIENT_KINDS


class QuotaExceededError(ProviderError):
    """Primary resolution provider refused the call for quota reasons."""

    def __init__(
        self, message: str, *, provider: str, reason: str | None = None
    ) -> None:
        super().__init__(
            message,
            provider=provider,
            kind=ErrorKind.QUOTA_EXCEEDED,
            status_code=403,
            reason=reason,
        )


class ResolutionError(ContinuoError):
    """No playable identifier could be produced for a track."""

    def __init__(self, message: str, *, identity: str, kind: ErrorKind) -> None:
        super().__init__(message, kind=kind)
        self.identity = identity

    @property
    def skippable(self) -> bool:
        """Invalid identifiers are handled exactly like unresolvable tracks."""
        return self.kind in {ErrorKind.NOT_RESOLVABLE, ErrorKind.INVALID_IDENTIFIER}


class RecommendationExhaustedError(ContinuoError):
    """Every radio strategy failed to produce a playable continuation."""

    kind = ErrorKind.RECOMMENDATION_EXHAUSTED


class BackendUnavailableError(ContinuoError):
    """Playback backend is not initialized yet or went away."""

    kind = ErrorKind.BACKEND_ERROR


def classify_http_status(status: int) -> ErrorKind:
    """Map an HTTP status code onto the provider error taxonomy."""
    if status == 400:
        return ErrorKind.BAD_REQUEST
    if status == 401:
        return ErrorKind.UNAUTHORIZED
    if status == 403:
        return ErrorKind.FORBIDDEN
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.BAD_REQUEST


def is_quota_reason(reason: str | None) -> bool:
    """Return whether a provider error reason denotes quota exhaustion."""
    if not reason:
        return False
    return reason.strip().lower() in _QUOTA_REASONS
