"""Per-run memoization of remote facts."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from page_doctor.publishing.models import normalize_key


class ResourceCache:
    """Facts confirmed during one publish run.

    Nothing expires and nothing survives the run. Listings are snapshots: a
    listing is fetched once and served unchanged for the rest of the run, even
    after this run mutates the remote side.
    """

    def __init__(self) -> None:
        self._checked: set[str] = set()
        self._processed: dict[str, int | None] = {}
        self._listings: dict[str, Any] = {}

    def has_checked(self, key: str) -> bool:
        return normalize_key(key) in self._checked

    def mark_checked(self, key: str) -> None:
        self._checked.add(normalize_key(key))

    def record_processed(self, key: str, identifier: int | None) -> None:
        """Remember a handled resource; a known identifier is never replaced by ``None``."""

        normalized = normalize_key(key)
        if identifier is None and self._processed.get(normalized) is not None:
            return
        self._processed[normalized] = identifier

    def is_processed(self, key: str) -> bool:
        return normalize_key(key) in self._processed

    def processed_id(self, key: str) -> int | None:
        return self._processed.get(normalize_key(key))

    @property
    def processed(self) -> Mapping[str, int | None]:
        return MappingProxyType(self._processed)

    def has_listing(self, scope: str) -> bool:
        return normalize_key(scope) in self._listings

    def cached_listing(self, scope: str, fetch: Callable[[], Any]) -> Any:
        """Return the listing for ``scope``, calling ``fetch`` only the first time."""

        normalized = normalize_key(scope)
        if normalized not in self._listings:
            self._listings[normalized] = fetch()
        return self._listings[normalized]

    def untouched(self, keys: Iterable[str]) -> list[str]:
        """Keys never recorded as processed, in their original order."""

        return [key for key in keys if normalize_key(key) not in self._processed]
