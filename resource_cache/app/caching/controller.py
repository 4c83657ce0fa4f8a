"""
Scoped resource cache controller.

Each instance caches one resource family (for example the line items of
purchase orders) under an outer scope such as corporation + project.
Concurrent ensure() calls for the same key share a single loader call.

The check-then-set in ensure() contains no await, which is what makes the
deduplication correct under asyncio. Instances are not thread-safe and must
be driven from a single event loop.
"""

import asyncio
import time
from collections.abc import Iterable, Mapping
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Sequence,
    Tuple,
)

from shared.errors import CacheConfigurationError, LoaderError
from shared.logging import get_logger

from .entry import CacheEntry, EntrySnapshot, ScopeStore, T
from .keys import Identifier, compose_key, normalize, resource_key

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_ERROR_MESSAGE = "Failed to load items"

Loader = Callable[[], Awaitable[Optional[Iterable]]]
LoaderFactory = Callable[[Tuple[Identifier, ...], Identifier], Loader]


def extract_message(error: BaseException, fallback: str = DEFAULT_ERROR_MESSAGE) -> str:
    """Best human-readable message for a loader failure.

    Tries the API's ``data.statusMessage`` first, then the exception's
    ``message`` attribute, then ``str(error)``, then ``fallback``.
    """
    data = getattr(error, "data", None)
    if isinstance(data, Mapping):
        status_message = data.get("statusMessage")
    else:
        status_message = getattr(data, "statusMessage", None)
    if status_message:
        return str(status_message)

    message = getattr(error, "message", None)
    if message:
        return str(message)

    return str(error) or fallback


def _coerce_items(result: Any) -> List[Any]:
    """Turn a loader result into the list stored on the entry."""
    if result is None:
        return []
    if isinstance(result, list):
        return result
    if isinstance(result, (str, bytes, Mapping)) or not isinstance(result, Iterable):
        raise LoaderError(
            f"Loader returned {type(result).__name__}, expected a list",
            details={"result_type": type(result).__name__},
        )
    return list(result)


class ScopedResourceCache(Generic[T]):
    """Keyed async cache with in-flight deduplication and explicit invalidation."""

    def __init__(
        self,
        name: str,
        loader_factory: Optional[LoaderFactory] = None,
        *,
        fallback_error: str = DEFAULT_ERROR_MESSAGE,
        share_inflight: bool = True,
        discard_stale: bool = False,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.loader_factory = loader_factory
        self.fallback_error = fallback_error
        self.share_inflight = share_inflight
        self.discard_stale = discard_stale
        self.metrics = metrics
        self.logger = get_logger(f"resource_cache.{name}")
        self._clock = clock
        self._scopes: Dict[str, ScopeStore[T]] = {}

    # Store resolution

    def _get_or_create_scope(self, scope_parts: Tuple[Identifier, ...]) -> ScopeStore[T]:
        key = compose_key(*scope_parts)
        store = self._scopes.get(key)
        if store is None:
            store = ScopeStore(scope_components=tuple(normalize(part) for part in scope_parts))
            self._scopes[key] = store
            self._record_scope_count()
        return store

    def _find_entry(self, scope_parts: Sequence[Identifier], resource_id: Identifier) -> Optional[CacheEntry[T]]:
        store = self._scopes.get(compose_key(*scope_parts))
        if store is None:
            return None
        return store.get(normalize(resource_id))

    # Public API

    async def ensure(
        self,
        scope_parts: Sequence[Identifier],
        resource_id: Identifier,
        loader: Optional[Loader] = None,
        force: bool = False,
    ) -> List[T]:
        """Return the items for a key, loading them if needed.

        A populated entry is returned as is unless ``force`` is set. A call
        that arrives while a load for the same key is running does not start
        another one; with ``share_inflight`` it waits for that load and
        returns its result, otherwise it returns the current items at once.

        Loader failures never propagate: the entry's items become ``[]`` and
        the message is available from :meth:`get_error`.
        """
        if not resource_id:
            return []
        if loader is None and self.loader_factory is None:
            raise CacheConfigurationError(
                f"No loader given and cache '{self.name}' has no loader factory",
                details={"cache": self.name},
            )

        scope = tuple(scope_parts)
        key = resource_key(scope, resource_id)
        store = self._get_or_create_scope(scope)
        entry = store.get_or_create(normalize(resource_id))

        # Nothing below may await until entry.loading is set.
        if entry.items and not force:
            if self.metrics:
                self.metrics.increment_counter("hits_total", cache=self.name)
            return entry.items

        if entry.loading and not force:
            if self.metrics:
                self.metrics.increment_counter("dedup_total", cache=self.name)
            self.logger.debug("Joining in-flight load", key=key)
            if self.share_inflight and entry.pending is not None:
                await self._wait(entry.pending)
            return entry.items

        resolved = loader if loader is not None else self.loader_factory(scope, resource_id)
        entry.loading = True
        entry.error = None
        entry.generation += 1
        if self.metrics:
            self.metrics.increment_counter("misses_total", cache=self.name, forced=str(force).lower())

        task = asyncio.ensure_future(self._load(entry, resolved, entry.generation, key))
        entry.pending = task
        await self._wait(task)
        return entry.items

    async def _wait(self, task: "asyncio.Future[None]") -> None:
        """Wait for a load without letting the caller's cancellation reach it.

        A cancellation raised by the loader itself has already been recorded
        as a failure and is not passed on.
        """
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def _load(self, entry: CacheEntry[T], loader: Loader, generation: int, key: str) -> None:
        """Run one loader call and write its outcome into ``entry``."""
        self.logger.debug("Loading resource", key=key, generation=generation)
        started = time.perf_counter()
        stale = False
        try:
            try:
                items = _coerce_items(await loader())
            except asyncio.CancelledError as exc:
                stale = self._record_failure(entry, exc, generation, key)
                raise
            except Exception as exc:
                stale = self._record_failure(entry, exc, generation, key)
                return

            stale = self._is_stale(entry, generation)
            if stale:
                self.logger.debug("Discarding stale load result", key=key, generation=generation)
                return
            entry.items = items
            entry.fetched_at = self._clock()
            entry.error = None
            self.logger.debug("Resource loaded", key=key, count=len(items))
        finally:
            if not stale:
                entry.loading = False
            if entry.pending is asyncio.current_task():
                entry.pending = None
            if self.metrics:
                self.metrics.observe_histogram("load_duration_seconds", time.perf_counter() - started, cache=self.name)

    def _record_failure(self, entry: CacheEntry[T], exc: BaseException, generation: int, key: str) -> bool:
        """Write a failed load into ``entry``; returns True if it was stale."""
        if self._is_stale(entry, generation):
            self.logger.debug("Discarding stale load failure", key=key, generation=generation)
            return True
        entry.items = []
        entry.error = extract_message(exc, self.fallback_error)
        self.logger.error(
            "Resource load failed",
            cache=self.name,
            key=key,
            error=entry.error,
            error_type=type(exc).__name__,
        )
        if self.metrics:
            self.metrics.increment_counter("errors_total", cache=self.name, error_type=type(exc).__name__)
        return False

    def _is_stale(self, entry: CacheEntry[T], generation: int) -> bool:
        return self.discard_stale and generation != entry.generation

    def get_items(self, scope_parts: Sequence[Identifier], resource_id: Identifier) -> List[T]:
        """Cached items for a key, or ``[]``."""
        entry = self._find_entry(scope_parts, resource_id)
        return entry.items if entry is not None else []

    def get_loading(self, scope_parts: Sequence[Identifier], resource_id: Identifier) -> bool:
        """Whether a load is running for a key."""
        entry = self._find_entry(scope_parts, resource_id)
        return entry.loading if entry is not None else False

    def get_error(self, scope_parts: Sequence[Identifier], resource_id: Identifier) -> Optional[str]:
        """Message of the last failed load for a key, or ``None``."""
        entry = self._find_entry(scope_parts, resource_id)
        return entry.error if entry is not None else None

    def get_entry(self, scope_parts: Sequence[Identifier], resource_id: Identifier) -> Optional[EntrySnapshot[T]]:
        """Immutable snapshot of a key's entry, or ``None`` if it was never ensured."""
        entry = self._find_entry(scope_parts, resource_id)
        return entry.snapshot() if entry is not None else None

    def clear_scope(self, scope_parts: Sequence[Identifier]) -> None:
        """Drop every entry under one scope."""
        store = self._scopes.pop(compose_key(*scope_parts), None)
        if store is not None:
            self.logger.info("Cleared cache scope", cache=self.name, scope=list(store.scope_components), entries=len(store.entries))
            self._record_scope_count()

    def clear_all(self) -> None:
        """Drop every scope."""
        count = len(self._scopes)
        self._scopes.clear()
        self.logger.info("Cleared cache", cache=self.name, scopes=count)
        self._record_scope_count()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "cache": self.name,
            "scopes": len(self._scopes),
            "entries": sum(len(store.entries) for store in self._scopes.values()),
            "loading": sum(store.loading_count() for store in self._scopes.values()),
        }

    def _record_scope_count(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("scopes", len(self._scopes), cache=self.name)
