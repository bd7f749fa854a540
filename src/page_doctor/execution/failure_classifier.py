"""Deterministic classification of CLI failure text."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FailureClass(str, Enum):
    """Normalized failure classes derived from stderr or exception text."""

    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    ACCESS_DENIED = "access_denied"
    CHECKED_OUT = "checked_out"
    UNKNOWN = "unknown"


_ACCESS_DENIED_PATTERNS: tuple[str, ...] = (
    "access denied",
    "access is denied",
    "unauthorized",
    "forbidden",
    "401",
    "403",
    "log in to microsoft 365 first",
)
_CHECKED_OUT_PATTERNS: tuple[str, ...] = (
    "checked out",
    "is locked",
    "locked for shared use",
)
_NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "does not exist",
    "not found",
    "404",
    "cannot find",
    "could not find",
    "no such file",
)
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "429",
    "503",
    "service unavailable",
    "temporarily unavailable",
    "timed out",
    "timeout",
    "econnreset",
    "socket hang up",
    "network error",
    "try again later",
)


@dataclass(slots=True)
class FailureClassification:
    """Classification result with the rule that produced it."""

    failure_class: FailureClass
    matched_pattern: str | None


def classify_failure(message: str) -> FailureClassification:
    """Classify failure text; access problems win over absence, absence over throttling."""

    haystack = message.lower()
    for failure_class, patterns in (
        (FailureClass.ACCESS_DENIED, _ACCESS_DENIED_PATTERNS),
        (FailureClass.CHECKED_OUT, _CHECKED_OUT_PATTERNS),
        (FailureClass.NOT_FOUND, _NOT_FOUND_PATTERNS),
        (FailureClass.TRANSIENT, _TRANSIENT_PATTERNS),
    ):
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return FailureClassification(failure_class=failure_class, matched_pattern=pattern)
    return FailureClassification(failure_class=FailureClass.UNKNOWN, matched_pattern=None)


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
