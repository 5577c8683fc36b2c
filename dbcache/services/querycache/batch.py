"""Per-identifier cache addressing for batched lookups.

Each identifier has its own cache entry ``<cache_prefix><identifier>``. A call
reads all of them with one multi-get, queries the database once for the
identifiers that were missing, merges both halves and writes the freshly
fetched entries back.

The query template must end where a condition can follow (``... WHERE`` or
``... WHERE active = 1 AND``); ``<column> IN (?,...)`` is appended to it. A
template without a trailing ``WHERE`` fails in the database instead of
returning an unfiltered table.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple, TYPE_CHECKING, Union

from dbcache.core.database import placeholders
from dbcache.core.exceptions import CacheKeyError
from dbcache.core.logging import get_logger
from dbcache.models.query import CacheConfig, Diagnostics, QueryRequest
from .keys import KeyedIdentifier, derive_cache_keys, identifier_token
from .rows import group_by, index_by

if TYPE_CHECKING:
    from dbcache.core.cache import CacheService
    from dbcache.core.database import Database

logger = get_logger(__name__)

BatchResult = Union[List[Dict[str, Any]], Dict[Any, Any]]


class BatchKeyedCacheQuery:
    """Cache-or-fetch for a set of identifiers, one cache entry per identifier.

    Result shape:
        - with ``cache_bycol_group``: ``{identifier: [unit, ...]}`` where a unit
          is a row, a projected sub-row or a bare value
        - otherwise: a flat list of rows (fresh rows first, then cached ones),
          re-keyed by ``arr_index`` when given

    Identifiers the database has no rows for are not cached, so they are
    queried again on the next call.
    """

    def __init__(self, database: "Database", cache: Optional["CacheService"] = None):
        self.database = database
        self.cache = cache

    def fetch(self, request: QueryRequest, config: CacheConfig, diagnostics: Diagnostics) -> BatchResult:
        keyed = derive_cache_keys(request.values, config.cache_prefix, config.numeric_keys)
        if not keyed:
            diagnostics.add("Cache keys init failed")
            raise CacheKeyError(
                f"No cache keys could be derived from {len(request.values)} identifier(s) "
                f"with prefix {config.cache_prefix!r}"
            )

        dropped = len(request.values) - len(keyed)
        if dropped:
            logger.debug("Dropped identifiers", count=dropped, reason="non-numeric or duplicate")

        diagnostics.add("Cache query keys: " + ", ".join(k.cache_key for k in keyed.values()))

        use_cache = self.cache is not None and config.cache
        hits = self._read_hits(keyed) if use_cache and not config.renew_cache else {}
        misses = [token for token in keyed if token not in hits]

        if not misses:
            diagnostics.add("Cached results found. Skip database query")
            logger.debug("Batch cache fully served", identifiers=len(keyed))
            return self._merge(config, keyed, hits, fresh={}, fresh_rows=[])

        if hits:
            diagnostics.add("Found in cache: " + ", ".join(keyed[t].cache_key for t in hits))

        sql, values = self._miss_query(request, config, [keyed[t] for t in misses])
        diagnostics.add(f"Query: {sql}")
        diagnostics.add(f"Bound values: {values}")

        rows = self.database.fetch_all(sql, values)
        fresh = self._shape(rows, config)

        if use_cache and config.writes_cache:
            self._write_back(keyed, misses, fresh, config, diagnostics)

        logger.debug(
            "Batch cache query served",
            identifiers=len(keyed),
            hits=len(hits),
            misses=len(misses),
            rows=len(rows),
        )
        return self._merge(config, keyed, hits, fresh, rows)

    def _read_hits(self, keyed: Mapping[str, KeyedIdentifier]) -> Dict[str, Any]:
        cached = self.cache.get_many(k.cache_key for k in keyed.values())
        return {
            token: cached[slot.cache_key]
            for token, slot in keyed.items()
            if slot.cache_key in cached
        }

    def _miss_query(self, request: QueryRequest, config: CacheConfig, misses: List[KeyedIdentifier]):
        column = config.cache_bycol_sql or self.database.quote_identifier(config.cache_bycol)
        sql = f"{request.sql.rstrip()} {column} IN ({placeholders(len(misses))})"
        return sql, [slot.identifier for slot in misses]

    def _shape(self, rows: List[Dict[str, Any]], config: CacheConfig) -> Dict[str, Tuple[Any, Any]]:
        """Fresh rows as ``{identifier token: (column value, cache unit)}``.

        Tokens are built the same way as in ``derive_cache_keys``, so a row
        whose column reads ``1`` matches the identifier ``"01"`` under numeric keys.
        """
        numeric = config.numeric_keys
        if config.grouped:
            groups = group_by(rows, config.cache_bycol, config.cache_bycol_group, config.cache_bycol_group_value)
            return {identifier_token(value, numeric): (value, units) for value, units in groups.items()}

        indexed = index_by(rows, config.cache_bycol)
        if not isinstance(indexed, dict):
            logger.warning("Rows lack the cache column, nothing will be cached", column=config.cache_bycol)
            return {}
        return {identifier_token(value, numeric): (value, row) for value, row in indexed.items()}

    def _write_back(self, keyed, misses, fresh, config, diagnostics) -> None:
        to_cache = {keyed[token].cache_key: fresh[token][1] for token in misses if token in fresh}
        if not to_cache:
            return

        if self.cache.set_many(to_cache, config.cache_time):
            diagnostics.add("Saved to cache: " + ", ".join(to_cache))
        else:
            diagnostics.add(f"Cache write failed: {self.cache.get_last_error()}")

    def _merge(self, config: CacheConfig, keyed: Mapping[str, KeyedIdentifier],
               hits: Dict[str, Any], fresh: Dict[str, Any], fresh_rows: List[Dict[str, Any]]) -> BatchResult:
        if config.grouped:
            merged: Dict[Any, Any] = {}
            for token, slot in keyed.items():
                if token in fresh:
                    merged[slot.identifier] = fresh[token][1]
                elif token in hits:
                    merged[slot.identifier] = hits[token]

            # Groups the database matched but no identifier token did (collations, casts)
            unmatched = [token for token in fresh if token not in keyed]
            if unmatched:
                logger.warning("Rows matched no identifier token", column=config.cache_bycol, tokens=unmatched)
            for token in unmatched:
                value, units = fresh[token]
                merged.setdefault(value, units)
            return merged

        result = list(fresh_rows)
        result.extend(hits[token] for token in keyed if token in hits)
        return index_by(result, config.arr_index)
