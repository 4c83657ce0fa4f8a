"""
Per-key cache state and the scope stores that hold it.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Mutable state for one resource key. Only the controller writes to it."""

    items: List[T] = field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None
    fetched_at: Optional[float] = None
    # Incremented every time a load starts.
    generation: int = 0
    pending: Optional["asyncio.Task[None]"] = field(default=None, repr=False)

    def snapshot(self) -> "EntrySnapshot[T]":
        """Return an immutable copy of the entry."""
        return EntrySnapshot(
            items=tuple(self.items),
            loading=self.loading,
            error=self.error,
            fetched_at=self.fetched_at,
        )


@dataclass(frozen=True)
class EntrySnapshot(Generic[T]):
    """Read-only view of a cache entry."""

    items: Tuple[T, ...]
    loading: bool
    error: Optional[str]
    fetched_at: Optional[float]


@dataclass
class ScopeStore(Generic[T]):
    """Entries for one scope (e.g. corporation + project), keyed by resource id."""

    scope_components: Tuple[str, ...]
    entries: Dict[str, CacheEntry[T]] = field(default_factory=dict)

    def get(self, resource_suffix: str) -> Optional[CacheEntry[T]]:
        return self.entries.get(resource_suffix)

    def get_or_create(self, resource_suffix: str) -> CacheEntry[T]:
        entry = self.entries.get(resource_suffix)
        if entry is None:
            entry = CacheEntry()
            self.entries[resource_suffix] = entry
        return entry

    def loading_count(self) -> int:
        return sum(1 for entry in self.entries.values() if entry.loading)
