"""Cache service with Redis (production), SQL table or in-memory backend.

Every operation reports failure instead of raising: writes return ``False``,
reads come back as ``ABSENT``. The reason for the last failure is kept in
``last_error``.
"""

import json
import random
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, TYPE_CHECKING

import redis
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from dbcache.core.config import Settings
from dbcache.core.exceptions import CacheError, CacheReadError, CacheUnavailableError, CacheWriteError
from dbcache.core.logging import get_logger, log_cache_operation
from dbcache.models.cache import CacheEntry

if TYPE_CHECKING:
    from dbcache.core.database import Database

logger = get_logger(__name__)


class _Absent:
    """Marker for "nothing cached under this key"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "ABSENT"


ABSENT = _Absent()


def encode(value: Any) -> str:
    return json.dumps(value, default=str)


def decode(raw: Optional[str]) -> Any:
    """Decode a stored value; anything unreadable counts as absent."""
    if raw is None:
        return ABSENT
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
        logger.warning("Discarding undecodable cache value", raw=str(raw)[:200])
        return ABSENT


def mint_version_token() -> str:
    """Unix time plus four random digits, e.g. ``"17609999994821"``."""
    return f"{int(time.time())}{random.randint(1000, 9999)}"


class CacheService:
    """Key-value store adapter.

    Backend selection (``Settings.cache_backend``):
    - redis: redis-py client built from ``redis_url``
    - sql: ``dbcache_entries`` table in the injected ``Database``
    - memory: process-local dict, entries expire lazily on read
    """

    def __init__(self, settings: Settings, database: Optional["Database"] = None,
                 client: Optional[redis.Redis] = None):
        self.settings = settings
        self.backend = settings.cache_backend
        self.database = database
        self.redis: Optional[redis.Redis] = client
        self.memory_cache: Dict[str, Tuple[str, Optional[float]]] = {}
        self.last_error: Optional[CacheError] = None
        self._started = client is not None or self.backend == "memory"

    def startup(self):
        """Connect to the configured backend."""
        if self.backend == "redis":
            if self.redis is None:
                if not self.settings.redis_url:
                    self._unavailable("redis backend selected but redis_url is not set")
                    return
                self.redis = redis.Redis.from_url(
                    self.settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_timeout=self.settings.redis_socket_timeout,
                    socket_connect_timeout=self.settings.redis_socket_timeout,
                )
            try:
                self.redis.ping()
                logger.info("Redis cache initialized", url=self.settings.redis_url)
            except redis.RedisError as e:
                # Not fatal: every call reports the failure and queries still run
                self._unavailable(f"Redis connection failed: {e}")
                return

        elif self.backend == "sql":
            if self.database is None or self.database.engine is None:
                self._unavailable("sql backend selected but no started Database was given")
                return
            try:
                SQLModel.metadata.create_all(self.database.engine, tables=[CacheEntry.__table__])
            except SQLAlchemyError as e:
                self._unavailable(f"Cache table creation failed: {e}")
                return
            logger.info("Using SQL table cache", table=CacheEntry.__tablename__)

        else:
            logger.info("Using in-memory cache")

        self._started = True

    def shutdown(self):
        """Close cache connections."""
        if self.redis:
            self.redis.close()
            logger.info("Redis cache connections closed")

        self.memory_cache.clear()
        self._started = self.backend == "memory"

    def get_last_error(self) -> str:
        return str(self.last_error) if self.last_error else ""

    def _unavailable(self, reason: str) -> None:
        self._started = False
        self._fail(CacheUnavailableError(reason))

    def _fail(self, error: CacheError) -> None:
        self.last_error = error
        logger.error("Cache operation failed", error=str(error), backend=self.backend)

    def _check_ready(self) -> None:
        if not self._started:
            raise CacheUnavailableError(f"{self.backend} cache backend is not started")

    def _sql_session(self) -> Session:
        return Session(self.database.engine)

    # ============================================================================
    # Reads
    # ============================================================================

    def get(self, key: str) -> Any:
        """Get one value, or ``ABSENT``."""
        if not key:
            self._fail(CacheReadError(key, "Incorrect parameters passed to get"))
            return ABSENT

        try:
            self._check_ready()
            raw = self._read([key]).get(key)
        except (CacheError, redis.RedisError, SQLAlchemyError) as e:
            self._fail(CacheReadError(key, str(e)))
            return ABSENT

        value = decode(raw)
        log_cache_operation(logger, "get", key, hit=value is not ABSENT)
        return value

    def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Get several values at once; missing keys are left out of the result."""
        keys = list(dict.fromkeys(keys))
        if not keys or not all(keys):
            self._fail(CacheReadError(keys, "Incorrect parameters passed to get_many"))
            return {}

        try:
            self._check_ready()
            raw_values = self._read(keys)
        except (CacheError, redis.RedisError, SQLAlchemyError) as e:
            self._fail(CacheReadError(keys, str(e)))
            return {}

        found = {}
        for key, raw in raw_values.items():
            value = decode(raw)
            if value is not ABSENT:
                found[key] = value

        log_cache_operation(logger, "get_many", keys, hits=len(found), misses=len(keys) - len(found))
        return found

    def _read(self, keys: List[str]) -> Dict[str, Optional[str]]:
        if self.backend == "redis":
            values = self.redis.mget(keys)
            return {key: raw for key, raw in zip(keys, values) if raw is not None}

        if self.backend == "sql":
            now = time.time()
            with self._sql_session() as session:
                entries = session.exec(select(CacheEntry).where(CacheEntry.key.in_(keys))).all()
                return {entry.key: entry.value for entry in entries if not entry.is_expired(now)}

        now = time.time()
        found = {}
        for key in keys:
            stored = self.memory_cache.get(key)
            if stored is None:
                continue
            raw, expires_at = stored
            if expires_at is not None and expires_at < now:
                self.memory_cache.pop(key, None)
                continue
            found[key] = raw
        return found

    # ============================================================================
    # Writes
    # ============================================================================

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set one value. ``ttl`` None uses the default TTL, 0 never expires."""
        if not key:
            self._fail(CacheWriteError(key, "Incorrect parameters passed to set"))
            return False
        return self._write({key: value}, ttl, "set")

    def set_many(self, mapping: Mapping[str, Any], ttl: Optional[int] = None) -> bool:
        """Set several values with one TTL."""
        if not mapping or not all(mapping):
            self._fail(CacheWriteError(list(mapping), "Incorrect parameters passed to set_many"))
            return False
        return self._write(dict(mapping), ttl, "set_many")

    def _write(self, mapping: Dict[str, Any], ttl: Optional[int], operation: str) -> bool:
        ttl = self.settings.cache_ttl if ttl is None else ttl
        keys = list(mapping)

        try:
            self._check_ready()
            encoded = {key: encode(value) for key, value in mapping.items()}

            if self.backend == "redis":
                pipe = self.redis.pipeline()
                for key, raw in encoded.items():
                    pipe.set(key, raw, ex=ttl or None)
                pipe.execute()

            elif self.backend == "sql":
                now = time.time()
                expires_at = now + ttl if ttl else None
                with self._sql_session() as session:
                    existing = {
                        entry.key: entry
                        for entry in session.exec(select(CacheEntry).where(CacheEntry.key.in_(keys))).all()
                    }
                    for key, raw in encoded.items():
                        entry = existing.get(key)
                        if entry:
                            entry.value = raw
                            entry.expires_at = expires_at
                            entry.created_at = now
                        else:
                            entry = CacheEntry(key=key, value=raw, expires_at=expires_at, created_at=now)
                        session.add(entry)
                    session.commit()

            else:
                expires_at = time.time() + ttl if ttl else None
                for key, raw in encoded.items():
                    self.memory_cache[key] = (raw, expires_at)

        except (CacheError, redis.RedisError, SQLAlchemyError, TypeError, ValueError) as e:
            self._fail(CacheWriteError(keys if len(keys) > 1 else keys[0], str(e)))
            return False

        log_cache_operation(logger, operation, keys if len(keys) > 1 else keys[0], ttl=ttl)
        return True

    def delete(self, key: str) -> bool:
        """Delete one value."""
        if not key:
            self._fail(CacheWriteError(key, "Incorrect parameters passed to delete", "delete"))
            return False
        return self._delete([key])

    def delete_many(self, keys: Iterable[str]) -> bool:
        """Delete several values."""
        keys = list(keys)
        if not keys or not all(keys):
            self._fail(CacheWriteError(keys, "Incorrect parameters passed to delete_many", "delete"))
            return False
        return self._delete(keys)

    def _delete(self, keys: List[str]) -> bool:
        try:
            self._check_ready()
            if self.backend == "redis":
                deleted = self.redis.delete(*keys)
            elif self.backend == "sql":
                with self._sql_session() as session:
                    entries = session.exec(select(CacheEntry).where(CacheEntry.key.in_(keys))).all()
                    for entry in entries:
                        session.delete(entry)
                    session.commit()
                    deleted = len(entries)
            else:
                deleted = sum(1 for key in keys if self.memory_cache.pop(key, None) is not None)

        except (CacheError, redis.RedisError, SQLAlchemyError) as e:
            self._fail(CacheWriteError(keys, str(e), "delete"))
            return False

        log_cache_operation(logger, "delete", keys, deleted=deleted)
        return True

    def flush(self) -> bool:
        """Remove every entry this backend holds."""
        try:
            self._check_ready()
            if self.backend == "redis":
                self.redis.flushdb()
            elif self.backend == "sql":
                with self._sql_session() as session:
                    for entry in session.exec(select(CacheEntry)).all():
                        session.delete(entry)
                    session.commit()
            else:
                self.memory_cache.clear()

        except (CacheError, redis.RedisError, SQLAlchemyError) as e:
            self._fail(CacheWriteError("*", f"Failed to remove all cache keys: {e}", "flush"))
            return False

        log_cache_operation(logger, "flush", "*")
        return True

    def cleanup_expired(self) -> int:
        """Drop expired entries from the sql and memory backends. Redis expires on its own."""
        now = time.time()
        try:
            self._check_ready()
            if self.backend == "sql":
                with self._sql_session() as session:
                    stmt = select(CacheEntry).where(
                        CacheEntry.expires_at.isnot(None),
                        CacheEntry.expires_at < now
                    )
                    entries = session.exec(stmt).all()
                    for entry in entries:
                        session.delete(entry)
                    session.commit()
                    count = len(entries)
            elif self.backend == "memory":
                expired = [k for k, (_, exp) in self.memory_cache.items() if exp is not None and exp < now]
                for key in expired:
                    del self.memory_cache[key]
                count = len(expired)
            else:
                count = 0

        except (CacheError, SQLAlchemyError) as e:
            self._fail(CacheWriteError("*", f"Failed to clean up expired entries: {e}", "cleanup"))
            return 0

        if count:
            logger.info("Cleaned up expired cache entries", count=count)
        return count

    # ============================================================================
    # Version tokens
    # ============================================================================

    def get_version(self, key: str, ttl: Optional[int] = None) -> str:
        """Read the version token under ``key``, minting and storing one if absent.

        The minted token is returned even when storing it fails; the next call
        then mints another one, which only costs a cache miss.
        """
        ttl = self.settings.cache_version_ttl if ttl is None else ttl

        token = self.get(key)
        if token is not ABSENT and token:
            return str(token)

        token = mint_version_token()
        self.set(key, token, ttl)
        logger.debug("Minted cache version token", version_key=key, token=token)
        return token

    def rotate_version(self, key: str, ttl: Optional[int] = None) -> str:
        """Replace the version token, invalidating every key built on the old one."""
        ttl = self.settings.cache_version_ttl if ttl is None else ttl
        current = self.get(key)
        token = mint_version_token()
        while token == current:
            token = mint_version_token()
        self.set(key, token, ttl)
        logger.info("Rotated cache version token", version_key=key, token=token)
        return token

    def is_redis_available(self) -> bool:
        """Check if Redis is the backend and a client is connected."""
        return self.backend == "redis" and self.redis is not None and self._started
