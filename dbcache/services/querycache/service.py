"""Caller-facing query surface with read-through caching."""

from typing import Any, Dict, Mapping, Optional, Sequence, TYPE_CHECKING, Union

from dbcache.core.exceptions import CacheConfigError
from dbcache.core.logging import get_logger
from dbcache.models.query import CacheConfig, CacheMode, Diagnostics, ExecuteResult, QueryRequest
from .batch import BatchKeyedCacheQuery, BatchResult
from .lists import VersionedListCache
from .rows import index_by
from .scalar import ScalarCacheQuery

if TYPE_CHECKING:
    from dbcache.core.cache import CacheService
    from dbcache.core.database import Database

logger = get_logger(__name__)

ConfigLike = Union[CacheConfig, Mapping[str, Any], None]


def _as_config(config: ConfigLike) -> CacheConfig:
    if config is None:
        return CacheConfig()
    if isinstance(config, CacheConfig):
        return config
    return CacheConfig(**config)


class QueryCacheService:
    """Run queries through the cache.

    ``cache`` is optional: without a store every call still returns correct
    results, only uncached. The notes gathered while serving the most recent
    call are kept in ``last_diagnostics``.

    Example:
        service.fetch_list(
            "SELECT id, title FROM items WHERE",
            [1, 2, 3],
            {"cache": True, "cache_time": 60, "cache_prefix": "item_", "cache_bycol": "id"},
        )
    """

    def __init__(self, database: "Database", cache: Optional["CacheService"] = None):
        self.database = database
        self.cache = cache
        self.scalar = ScalarCacheQuery(database, cache)
        self.lists = VersionedListCache(database, cache)
        self.batch = BatchKeyedCacheQuery(database, cache)
        self.last_diagnostics: Optional[Diagnostics] = None

    def _begin(self, operation: str, request: QueryRequest, config: CacheConfig) -> Diagnostics:
        diagnostics = Diagnostics(operation=operation)
        self.last_diagnostics = diagnostics

        if config.cache and self.cache is None:
            diagnostics.add("CacheUnavailable: cache mode is enabled, but no cache store is configured")
            logger.warning("Cache requested without a cache store", operation=operation, sql=request.sql)
        return diagnostics

    def fetch_list(self, sql: str, values: Sequence[Any] = (),
                   config: ConfigLike = None) -> Union[BatchResult, Dict[Any, Any]]:
        """Return all rows of a query.

        Per-identifier configs append ``<column> IN (...)`` to ``sql`` and treat
        ``values`` as the identifiers; list configs cache the whole result.
        """
        config = _as_config(config)
        request = QueryRequest(sql=sql, values=tuple(values))
        diagnostics = self._begin("fetch_list", request, config)

        if config.mode is CacheMode.PER_IDENTIFIER:
            return self.batch.fetch(request, config, diagnostics)
        if config.mode is CacheMode.LIST:
            return self.lists.fetch(request, config, diagnostics)

        diagnostics.add(f"Query: {request.sql}")
        rows = self.database.fetch_all(request.sql, request.values)
        return index_by(rows, config.arr_index)

    def fetch_one(self, sql: str, values: Sequence[Any] = (),
                  config: ConfigLike = None) -> Optional[Dict[str, Any]]:
        """Return the first row of a query, or None."""
        config = self._single_key(_as_config(config), "fetch_one")
        request = QueryRequest(sql=sql, values=tuple(values))
        return self.scalar.fetch_one(request, config, self._begin("fetch_one", request, config))

    def fetch_scalar(self, sql: str, values: Sequence[Any] = (), config: ConfigLike = None) -> Any:
        """Return the first column of the first row, or None."""
        config = self._single_key(_as_config(config), "fetch_scalar")
        request = QueryRequest(sql=sql, values=tuple(values))
        return self.scalar.fetch_scalar(request, config, self._begin("fetch_scalar", request, config))

    def execute(self, sql: str, values: Sequence[Any] = ()) -> ExecuteResult:
        """Run a write statement. Nothing is invalidated; callers own that."""
        request = QueryRequest(sql=sql, values=tuple(values))
        return self.database.execute(request.sql, request.values)

    @staticmethod
    def _single_key(config: CacheConfig, operation: str) -> CacheConfig:
        if config.mode is CacheMode.PER_IDENTIFIER:
            raise CacheConfigError(f"{operation} does not support per-identifier caching")
        if config.cache_version_key:
            raise CacheConfigError(f"{operation} does not support cache_version_key")
        if config.arr_index:
            raise CacheConfigError(f"{operation} does not support arr_index")
        return config
