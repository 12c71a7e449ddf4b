"""
gatedfeed cache module.

Detail records are cached by link; FetchCoordinator guarantees one
in-flight fetch per link.
"""

from gatedfeed.cache.coordinator import FetchCoordinator
from gatedfeed.cache.store import CacheEntry, CacheStore, MemoryCacheStore

__all__ = [
    "CacheEntry",
    "CacheStore",
    "FetchCoordinator",
    "MemoryCacheStore",
]
