"""
Cache Module - runtime configuration cache.

An explicit TTL cache object, injected where needed.
"""

from app.cache.config_cache import CachedValue, ConfigCache

__all__ = [
    "CachedValue",
    "ConfigCache",
]
