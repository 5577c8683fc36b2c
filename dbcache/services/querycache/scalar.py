"""Single-key cache-or-fetch for one row or one value."""

from typing import Any, Dict, List, Optional, TYPE_CHECKING

from dbcache.core.cache import ABSENT
from dbcache.core.logging import get_logger
from dbcache.models.query import CacheConfig, Diagnostics, QueryRequest

if TYPE_CHECKING:
    from dbcache.core.cache import CacheService
    from dbcache.core.database import Database

logger = get_logger(__name__)


class ScalarCacheQuery:
    """Serve ``fetch_one`` / ``fetch_scalar`` from a single cache key.

    A missing row is cached as ``None`` so that the next call does not hit the
    database again for a result that is known to be empty.
    """

    def __init__(self, database: "Database", cache: Optional["CacheService"] = None):
        self.database = database
        self.cache = cache

    def fetch_one(self, request: QueryRequest, config: CacheConfig,
                  diagnostics: Diagnostics) -> Optional[Dict[str, Any]]:
        return self._fetch(request, config, diagnostics, _first_row)

    def fetch_scalar(self, request: QueryRequest, config: CacheConfig, diagnostics: Diagnostics) -> Any:
        return self._fetch(request, config, diagnostics, _first_value)

    def _fetch(self, request, config, diagnostics, pick):
        use_cache = self.cache is not None and config.cache and config.cache_key is not None

        if use_cache and not config.renew_cache:
            cached = self.cache.get(config.cache_key)
            if cached is not ABSENT:
                diagnostics.add(f'Cached result found under key "{config.cache_key}". Skip query')
                logger.debug("Single-key cache hit", cache_key=config.cache_key)
                return cached

        diagnostics.add(f"Query: {request.sql}")
        if request.values:
            diagnostics.add(f"Bound values: {list(request.values)}")

        value = pick(self.database.fetch_all(request.sql, request.values))

        if use_cache and config.writes_cache:
            if self.cache.set(config.cache_key, value, config.cache_time):
                diagnostics.add(f'Saved to cache key "{config.cache_key}"')
            else:
                diagnostics.add(f"Cache write failed: {self.cache.get_last_error()}")

        return value


def _first_row(rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return rows[0] if rows else None


def _first_value(rows: List[Dict[str, Any]]) -> Any:
    if not rows:
        return None
    return next(iter(rows[0].values()), None)
