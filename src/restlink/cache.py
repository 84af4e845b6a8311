"""
Process-wide cache of canonical entity instances.

The cache never owns an entity: it holds a weak reference whose callback
evicts the slot once the last strong owner releases the instance.
"""

import threading
import weakref
from collections.abc import Hashable
from typing import Generic, TypeVar

from core.logging import get_logger
from restlink.entity import RestEntity

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
E = TypeVar("E", bound=RestEntity)


class ObjectsCache(Generic[K, E]):
    """
    Keyed table of weakly held canonical instances.

    All access is serialized by one re-entrant lock. Eviction callbacks may
    run from garbage collection while the same thread holds it.

    Usage:
        cache = get_objects_cache("projects")
        project = cache.reconcile(project.id, project)
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._refs: dict[K, weakref.ref] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._merges = 0

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for ref in list(self._refs.values()) if ref() is not None)

    def _evict(self, key: K, ref: weakref.ref) -> None:
        with self._lock:
            # Slot may already hold a newer instance
            if self._refs.get(key) is ref:
                del self._refs[key]

    def _store(self, key: K, obj: E) -> None:
        self._refs[key] = weakref.ref(obj, lambda r, key=key: self._evict(key, r))

    def get(self, key: K) -> E | None:
        with self._lock:
            ref = self._refs.get(key)
            return ref() if ref is not None else None

    def contains(self, key: K) -> bool:
        return self.get(key) is not None

    def __contains__(self, key: object) -> bool:
        return self.contains(key)  # type: ignore[arg-type]

    def add(self, key: K, obj: E) -> E:
        """Store ``obj`` unless a live instance already exists; return the canonical one."""
        with self._lock:
            existing = self.get(key)
            if existing is not None:
                return existing
            self._store(key, obj)
            return obj

    def reconcile(self, key: K, fresh: E) -> E:
        """
        Fold ``fresh`` into the canonical instance for ``key``.

        Returns:
            ``fresh`` if nothing live was cached, otherwise the cached
            instance updated in place from ``fresh``.
        """
        with self._lock:
            existing = self.get(key)
            if existing is None:
                self._misses += 1
                self._store(key, fresh)
                return fresh
            self._hits += 1
            if existing is fresh:
                return existing
            existing.update_from(fresh)
            self._merges += 1
            logger.debug(
                "Merged decoded entity into cached instance",
                extra={
                    "cache_name": self.name,
                    "entity_type": type(existing).__name__,
                    "entity_key": str(key),
                },
            )
            return existing

    def remove(self, key: K) -> bool:
        with self._lock:
            return self._refs.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._refs.clear()

    def keys(self) -> list[K]:
        with self._lock:
            return [key for key, ref in list(self._refs.items()) if ref() is not None]

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self),
                "hits": self._hits,
                "misses": self._misses,
                "merges": self._merges,
            }


_caches: dict[str, ObjectsCache] = {}
_caches_lock = threading.Lock()


def get_objects_cache(name: str) -> ObjectsCache:
    """Get or create the named process-wide cache."""
    with _caches_lock:
        cache = _caches.get(name)
        if cache is None:
            cache = ObjectsCache(name)
            _caches[name] = cache
            logger.debug("Created objects cache", extra={"cache_name": name})
        return cache


def clear_objects_caches() -> None:
    """Drop every named cache (useful for testing)."""
    with _caches_lock:
        _caches.clear()


__all__ = [
    "ObjectsCache",
    "get_objects_cache",
    "clear_objects_caches",
]
