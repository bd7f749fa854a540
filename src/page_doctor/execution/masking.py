"""Secret redaction for logged commands and error text."""

from __future__ import annotations

from collections.abc import Iterable

MASK = "***"


def mask_secrets(text: str, secrets: Iterable[str]) -> str:
    """Replace every occurrence of each non-empty secret with the redaction marker."""

    masked = text
    # Longest first: a secret containing a shorter one is replaced whole.
    for secret in sorted({value for value in secrets if value}, key=len, reverse=True):
        masked = masked.replace(secret, MASK)
    return masked
