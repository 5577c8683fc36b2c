"""Read-through query caching.

- Single-key caching of one row or one value
- Whole-list caching with version tokens for bulk invalidation
- Per-identifier caching of batched lookups with partial-hit resolution
"""

from .rows import index_by, group_by
from .keys import (
    KeyedIdentifier,
    derive_cache_keys,
    identifier_token,
    is_numeric,
    versioned_key,
)
from .scalar import ScalarCacheQuery
from .lists import VersionedListCache
from .batch import BatchKeyedCacheQuery
from .service import QueryCacheService

__all__ = [
    # Rows
    "index_by",
    "group_by",
    # Keys
    "KeyedIdentifier",
    "derive_cache_keys",
    "identifier_token",
    "is_numeric",
    "versioned_key",
    # Components
    "ScalarCacheQuery",
    "VersionedListCache",
    "BatchKeyedCacheQuery",
    # Facade
    "QueryCacheService",
]
