"""Deterministic diagnostic classification of non-zero backend exits."""

from __future__ import annotations

from dataclasses import dataclass

from prompt_relay.orchestrator.models import FailureClass

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource_exhausted",
    "insufficient",
    "billing",
    "payment",
    "credits",
    "usage limit",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "authentication",
    "not logged in",
    "setup-token",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "model is not available",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "429",
    "overloaded",
)
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "temporarily unavailable",
    "temporary failure",
    "connection reset",
    "network error",
    "could not resolve host",
    "econnrefused",
)
# 128 + SIGKILL / SIGTERM
_SIGNAL_EXIT_CODES: tuple[int, ...] = (137, 143)

_RULES: tuple[tuple[FailureClass, tuple[str, ...]], ...] = (
    (FailureClass.BILLING_OR_QUOTA, _BILLING_OR_QUOTA_PATTERNS),
    (FailureClass.ACCESS_OR_AUTH, _ACCESS_OR_AUTH_PATTERNS),
    (FailureClass.MODEL_NOT_AVAILABLE, _MODEL_NOT_AVAILABLE_PATTERNS),
    (FailureClass.RATE_LIMITED, _RATE_LIMIT_PATTERNS),
    (FailureClass.BACKEND_TRANSIENT, _TRANSIENT_PATTERNS),
)


@dataclass(frozen=True, slots=True)
class ExitClassification:
    """Normalized classification of one failed exit."""

    failure_class: FailureClass
    reason_code: str
    matched_pattern: str | None


def classify_exit_failure(*, backend: str, exit_code: int, stderr: str) -> ExitClassification:
    """Classify a non-zero exit from its code and diagnostic text.

    The classification only labels the failure for logs and messages.
    Every non-zero exit stays eligible for fallback regardless of class.
    """

    haystack = stderr.lower()
    for failure_class, patterns in _RULES:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return ExitClassification(
                failure_class=failure_class,
                reason_code=f"{backend}_{failure_class.value}",
                matched_pattern=pattern,
            )

    if exit_code in _SIGNAL_EXIT_CODES or exit_code < 0:
        return ExitClassification(
            failure_class=FailureClass.BACKEND_TRANSIENT,
            reason_code=f"{backend}_killed_by_signal",
            matched_pattern=None,
        )
    return ExitClassification(
        failure_class=FailureClass.BACKEND_ERROR,
        reason_code=f"{backend}_{FailureClass.BACKEND_ERROR.value}",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
