"""SQL-backed cache model for key-value storage with TTL.

Used by the ``sql`` cache backend when no Redis server is available: entries
live in a table of the same database the queries run against.
"""

import time
from typing import Optional
from sqlmodel import SQLModel, Field


class CacheEntry(SQLModel, table=True):
    """One cached value, JSON serialized, with an optional expiry."""

    __tablename__ = "dbcache_entries"

    key: str = Field(primary_key=True, max_length=512)
    value: str = Field(max_length=1000000)
    expires_at: Optional[float] = Field(default=None, index=True)  # Unix timestamp, None = never
    created_at: float = Field(default_factory=time.time)

    def is_expired(self, now: Optional[float] = None) -> bool:
        return self.expires_at is not None and self.expires_at < (now or time.time())
