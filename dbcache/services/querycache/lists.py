"""Whole-result-set caching under one key, optionally versioned."""

from typing import Any, Dict, List, Optional, TYPE_CHECKING, Union

from dbcache.core.cache import ABSENT
from dbcache.core.logging import get_logger
from dbcache.models.query import CacheConfig, Diagnostics, QueryRequest
from .keys import versioned_key
from .rows import index_by

if TYPE_CHECKING:
    from dbcache.core.cache import CacheService
    from dbcache.core.database import Database

logger = get_logger(__name__)


class VersionedListCache:
    """Cache a full result list under ``cache_key``.

    With ``cache_version_key`` the effective key carries the current version
    token (``<cache_key>_<token>``). Rotating the token moves every sibling
    list onto fresh keys at once; the old entries are left to expire.
    """

    def __init__(self, database: "Database", cache: Optional["CacheService"] = None):
        self.database = database
        self.cache = cache

    def effective_key(self, config: CacheConfig) -> str:
        """Key the list is stored under for this call."""
        if self.cache is not None and config.cache_version_key and config.cache_time:
            token = self.cache.get_version(config.cache_version_key, config.cache_time)
            return versioned_key(config.cache_key, token)
        return config.cache_key

    def fetch(self, request: QueryRequest, config: CacheConfig,
              diagnostics: Diagnostics) -> Union[List[Dict[str, Any]], Dict[Any, Dict[str, Any]]]:
        use_cache = self.cache is not None and config.cache
        cache_key = self.effective_key(config) if use_cache else config.cache_key

        if use_cache and not config.renew_cache:
            cached = self.cache.get(cache_key)
            if cached is not ABSENT and isinstance(cached, list):
                diagnostics.add(f'Cached list results found under key "{cache_key}". Skip query')
                logger.debug("List cache hit", cache_key=cache_key, rows=len(cached))
                return index_by(cached, config.arr_index)
            if cached is not ABSENT:
                logger.warning("Ignoring non-list value under list cache key", cache_key=cache_key)

        diagnostics.add(f"Query: {request.sql}")
        if request.values:
            diagnostics.add(f"Bound values: {list(request.values)}")

        rows = self.database.fetch_all(request.sql, request.values)

        if use_cache and config.writes_cache:
            if self.cache.set(cache_key, rows, config.cache_time):
                diagnostics.add(f'Saved {len(rows)} rows to cache key "{cache_key}"')
            else:
                diagnostics.add(f"Cache write failed: {self.cache.get_last_error()}")

        return index_by(rows, config.arr_index)
