"""
Config Cache - in-memory runtime configuration with TTL.

An explicit object injected where needed (never a module global), with
get / set / bulk_load / invalidate semantics. Expired entries are evicted
lazily on read.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass
class CachedValue:
    """Cached value with absolute expiry (math.inf for no expiry)."""
    value: Any
    expiry: float


class ConfigCache:
    """
    TTL cache for configuration values.

    Usage:
        cache = ConfigCache(default_ttl=60)
        cache.set("import.concurrency", 5)
        cache.get("import.concurrency")      # 5, until the TTL passes
        cache.set("system.name", "Archive", ttl=math.inf)   # never expires
    """

    def __init__(self, default_ttl: float = 60, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CachedValue] = {}
        self._last_update: float = 0.0

    @property
    def last_update(self) -> float:
        """Clock time of the last bulk load or invalidation."""
        return self._last_update

    def _expiry(self, ttl: Optional[float]) -> float:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl == math.inf:
            return math.inf
        return self._clock() + ttl

    def get(self, key: str, default: Any = None) -> Any:
        cached = self._entries.get(key)
        if cached is None:
            return default
        if self._clock() > cached.expiry:
            del self._entries[key]
            return default
        return cached.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = CachedValue(value=value, expiry=self._expiry(ttl))

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def bulk_load(self, values: Mapping[str, Any], ttl: Optional[float] = None) -> None:
        """Warm the cache with many values sharing one TTL."""
        expiry = self._expiry(ttl)
        for key, value in values.items():
            self._entries[key] = CachedValue(value=value, expiry=expiry)
        self._last_update = self._clock()
        logger.debug(f"Config cache loaded {len(values)} entries")

    def invalidate(self) -> None:
        """Drop every entry."""
        self._entries.clear()
        self._last_update = self._clock()

    def __len__(self) -> int:
        return len(self._entries)
