"""Thread-safe caches shared by concurrent fetches.

Three caches hold the only shared mutable state: constructed endpoints,
endpoint network identities, and name resolutions. Entries are immutable once
inserted, so a lock-guarded dict with insert-if-absent semantics is enough.
When two threads race to build the same endpoint, the first insert wins and
the loser's value is discarded (the endpoint registry closes a discarded
backend).

Caches are owned by a :class:`FetchCaches` bundle that is injected into the
registry and resolver, so tests can use a fresh set per test. A process-wide
bundle is available through :func:`get_default_caches`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Generic, Hashable, List, Optional, TypeVar

__all__ = ["LockedCache", "FetchCaches", "get_default_caches", "reset_default_caches"]

LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LockedCache(Generic[K, V]):
    """A mutex-guarded mapping with insert-if-absent semantics."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: Dict[K, V] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = value

    def set_if_absent(self, key: K, value: V) -> V:
        """Insert ``value`` unless ``key`` is present; return the stored value."""

        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return existing
            self._entries[key] = value
            return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        LOGGER.debug("cache cleared", extra={"stage": "cache", "cache": self.name})

    def drain(self) -> List[V]:
        """Empty the cache and return the values it held."""

        with self._lock:
            values = list(self._entries.values())
            self._entries.clear()
        LOGGER.debug("cache cleared", extra={"stage": "cache", "cache": self.name})
        return values

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class FetchCaches:
    """The endpoint, network-identity, and name-resolution caches."""

    endpoints: LockedCache = field(default_factory=lambda: LockedCache("endpoints"))
    network_ids: LockedCache = field(default_factory=lambda: LockedCache("network_ids"))
    names: LockedCache = field(default_factory=lambda: LockedCache("names"))

    def clear(self) -> None:
        self.endpoints.clear()
        self.network_ids.clear()
        self.names.clear()


_default_caches: Optional[FetchCaches] = None
_default_lock = threading.Lock()


def get_default_caches() -> FetchCaches:
    global _default_caches
    with _default_lock:
        if _default_caches is None:
            _default_caches = FetchCaches()
        return _default_caches


def reset_default_caches() -> None:
    """Drop the process-wide caches (test isolation)."""

    global _default_caches
    with _default_lock:
        _default_caches = None
