"""dbcache exception hierarchy."""

from typing import Any, Sequence


class DBCacheError(Exception):
    """Base exception for all dbcache errors."""


class DatabaseConnectionError(DBCacheError):
    """The relational engine could not be reached."""


class QueryError(DBCacheError):
    """A statement failed in the backing store."""

    def __init__(self, sql: str, values: Sequence[Any], message: str):
        self.sql = sql
        self.values = tuple(values)
        self.message = message
        super().__init__(f"{message} | query: {sql} | bound values: {list(self.values)}")


class CacheConfigError(DBCacheError, ValueError):
    """A cache configuration was used with an operation that cannot honour it."""


class CacheKeyError(DBCacheError):
    """No cache keys could be derived from the supplied identifiers."""


class CacheError(DBCacheError):
    """Base for non-fatal cache store failures."""


class CacheUnavailableError(CacheError):
    """Caching was requested but no usable store is available."""


class CacheReadError(CacheError):
    """Reading from the cache store failed."""

    def __init__(self, key: Any, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Error reading key {key!r}: {reason}")


class CacheWriteError(CacheError):
    """Writing to or deleting from the cache store failed."""

    def __init__(self, key: Any, reason: str, operation: str = "write"):
        self.key = key
        self.reason = reason
        self.operation = operation
        super().__init__(f"{operation.capitalize()} error for key {key!r}: {reason}")
