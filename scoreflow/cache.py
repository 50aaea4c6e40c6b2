"""Append-only memo tables used by the formatters."""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterator
from typing import Generic, TypeVar

from scoreflow.errors import FormattingError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class GeometryCache(Generic[K, V]):
    """
    Map of computed values that never forgets or overwrites an entry.

    Each key is either uncomputed, being computed, or cached. Asking for a key
    while its own computation is still running is reported as an error
    instead of recursing forever.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[K, V] = {}
        self._computing: set[K] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[K]:
        return iter(self._entries)

    def get(self, key: K, default: V | None = None) -> V | None:
        return self._entries.get(key, default)

    def get_or_compute(self, key: K, compute: Callable[[], V]) -> V:
        if key in self._entries:
            return self._entries[key]
        if key in self._computing:
            raise FormattingError(f"{self.name} {key!r} requested while it is being computed.")
        self._computing.add(key)
        try:
            value = compute()
        finally:
            self._computing.discard(key)
        self._entries[key] = value
        return value

    def put(self, key: K, value: V) -> None:
        if key in self._entries:
            raise FormattingError(f"{self.name} {key!r} is already set.")
        self._entries[key] = value
