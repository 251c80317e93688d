"""In-memory response cache keyed by page slug."""

import hashlib
import logging
import threading
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def cache_key(slug: str) -> str:
    return "bridgyfed_" + hashlib.md5(slug.encode()).hexdigest()


class SlugCache:
    """Thread-safe cache of per-slug API responses.

    WebmentionStore calls invalidate(slug) after every write. Each invalidation
    bumps the slug's generation; a value computed before the bump is refused
    by set(), so a read that overlaps a write never fills the cache.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._generations: Dict[str, int] = {}

    def generation(self, slug: str) -> int:
        with self._lock:
            return self._generations.get(cache_key(slug), 0)

    def get(self, slug: str, variant: str = "") -> Optional[Any]:
        with self._lock:
            return self._entries.get(cache_key(slug), {}).get(variant)

    def set(self, slug: str, value: Any, variant: str = "", generation: Optional[int] = None) -> bool:
        """Store ``value`` unless the slug was invalidated since ``generation``."""
        key = cache_key(slug)
        with self._lock:
            if generation is not None and generation != self._generations.get(key, 0):
                logger.debug(f"Not caching stale response for {slug}")
                return False
            self._entries.setdefault(key, {})[variant] = value
            return True

    def invalidate(self, slug: str) -> None:
        key = cache_key(slug)
        with self._lock:
            self._generations[key] = self._generations.get(key, 0) + 1
            removed = self._entries.pop(key, None)
        if removed is not None:
            logger.debug(f"Invalidated cache for {slug}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
