"""
Resource caching package.

Provides the scoped resource cache used to avoid re-fetching line items and
project lists for the same corporation/project/order. State lives only in
memory; invalidation is explicit through clear_scope() and clear_all().
"""

from .controller import ScopedResourceCache, extract_message
from .entry import CacheEntry, EntrySnapshot, ScopeStore
from .keys import KEY_SEPARATOR, compose_key, normalize

__all__ = [
    "CacheEntry",
    "EntrySnapshot",
    "KEY_SEPARATOR",
    "ScopeStore",
    "ScopedResourceCache",
    "compose_key",
    "extract_message",
    "normalize",
]
