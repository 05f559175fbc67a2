"""In-memory caches used by the skill read paths."""

from .query_cache import DEFAULT_TTL_SECONDS, CacheEntry, QueryCache

__all__ = ["CacheEntry", "DEFAULT_TTL_SECONDS", "QueryCache"]
