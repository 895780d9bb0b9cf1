from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Union

from .models import JobLinkEntry

LOGGER = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


class _Miss:
    _instance: "_Miss | None" = None

    def __new__(cls) -> "_Miss":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


@dataclass(slots=True)
class CacheEntry:
    source_key: str
    scope_key: str
    entries: List[JobLinkEntry]
    fetched_at: float
    partitions: List[str] = field(default_factory=list)


class ReadCache:
    """Hold the last fetched entry set for one (source, scope) pair.

    Single slot: storing a new pair evicts the previous one. Not
    thread-safe; callers sharing an instance must serialize access.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("Cache TTL must be positive")
        self._ttl = ttl
        self._clock = clock
        self._slot: Optional[CacheEntry] = None

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def current(self) -> Optional[CacheEntry]:
        return self._slot

    def get(self, source_key: str, scope_key: str) -> Union[List[JobLinkEntry], _Miss]:
        """Return cached entries, or ``MISS`` when absent, foreign or expired."""

        slot = self._slot
        if slot is None:
            LOGGER.debug("No cached entries available")
            return MISS
        if slot.source_key != source_key or slot.scope_key != scope_key:
            LOGGER.debug(
                "Cached entries belong to %s/%s, not %s/%s",
                slot.source_key,
                slot.scope_key,
                source_key,
                scope_key,
            )
            return MISS
        age = self._clock() - slot.fetched_at
        if age >= self._ttl:
            LOGGER.debug("Cached entries expired (age %.1fs, ttl %.1fs)", age, self._ttl)
            return MISS
        LOGGER.debug("Using %s cached entries (age %.1fs)", len(slot.entries), age)
        return slot.entries

    def put(
        self,
        source_key: str,
        scope_key: str,
        entries: Sequence[JobLinkEntry],
        *,
        partitions: Sequence[str] = (),
    ) -> None:
        """Store ``entries`` for the pair, replacing whatever was cached."""

        self._slot = CacheEntry(
            source_key=source_key,
            scope_key=scope_key,
            entries=list(entries),
            fetched_at=self._clock(),
            partitions=list(partitions),
        )

    def invalidate(self) -> None:
        if self._slot is not None:
            LOGGER.debug(
                "Invalidating cached entries for %s/%s",
                self._slot.source_key,
                self._slot.scope_key,
            )
        self._slot = None

    def switch_scope(self, source_key: str, scope_key: str) -> None:
        """Drop the slot when the active (source, scope) pair changes."""

        slot = self._slot
        if slot is not None and (slot.source_key, slot.scope_key) != (source_key, scope_key):
            self.invalidate()


__all__ = ["CacheEntry", "DEFAULT_TTL_SECONDS", "MISS", "ReadCache"]
