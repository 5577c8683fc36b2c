"""Pydantic v2 models for query requests and cache configuration."""

from enum import Enum
from typing import Any, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CacheMode(str, Enum):
    """How a list query is addressed in the cache."""
    NONE = "none"                      # No cache addressing, plain query
    LIST = "list"                      # Whole result set under one key
    PER_IDENTIFIER = "per_identifier"  # One entry per lookup identifier


class QueryRequest(BaseModel):
    """A statement template with ``?`` placeholders and its bind values."""
    model_config = ConfigDict(frozen=True)

    sql: str = Field(min_length=1)
    values: Tuple[Any, ...] = ()


class CacheConfig(BaseModel):
    """Per-call cache options.

    Single-key mode uses ``cache_key`` (plus ``cache_version_key`` for
    versioned lists). Per-identifier mode uses ``cache_prefix`` and
    ``cache_bycol`` and treats the bind values as the lookup identifiers.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    cache: bool = False
    cache_time: int = Field(default=0, ge=0)      # TTL in seconds, 0 = do not write
    renew_cache: bool = False                     # Skip reads, rebuild entries

    # Single-key mode
    cache_key: Optional[str] = None
    cache_version_key: Optional[str] = None

    # Per-identifier mode
    cache_prefix: Optional[str] = None
    cache_bycol: Optional[str] = None
    cache_bycol_sql: Optional[str] = None
    cache_bycol_group: Optional[List[str]] = None
    cache_bycol_group_value: bool = False
    cache_key_num: bool = False

    # Re-key the returned list by this column
    arr_index: Optional[str] = None

    @field_validator(
        "cache_key", "cache_version_key", "cache_prefix", "cache_bycol",
        "cache_bycol_sql", "arr_index",
    )
    @classmethod
    def empty_as_none(cls, v):
        return v or None

    @field_validator("cache_bycol_group")
    @classmethod
    def validate_group(cls, v):
        if v is not None and not v:
            raise ValueError("cache_bycol_group must name at least one column")
        return v

    @model_validator(mode="after")
    def check_modes(self):
        if bool(self.cache_prefix) != bool(self.cache_bycol):
            raise ValueError("cache_prefix and cache_bycol must be set together")

        per_identifier_only = {
            "cache_bycol_sql": self.cache_bycol_sql,
            "cache_bycol_group": self.cache_bycol_group,
            "cache_key_num": self.cache_key_num,
        }
        if not self.cache_prefix:
            for name, value in per_identifier_only.items():
                if value:
                    raise ValueError(f"{name} requires cache_prefix and cache_bycol")

        if self.cache_bycol_group_value and not self.cache_bycol_group:
            raise ValueError("cache_bycol_group_value requires cache_bycol_group")
        if self.cache_version_key and not self.cache_key:
            raise ValueError("cache_version_key requires cache_key")
        return self

    @property
    def mode(self) -> CacheMode:
        if self.cache_prefix and self.cache_bycol:
            return CacheMode.PER_IDENTIFIER
        if self.cache_key:
            return CacheMode.LIST
        return CacheMode.NONE

    @property
    def numeric_keys(self) -> bool:
        """Identifiers must be numeric (always the case for an ``id`` column)."""
        return self.cache_bycol == "id" or self.cache_key_num

    @property
    def grouped(self) -> bool:
        return bool(self.cache_bycol_group)

    @property
    def writes_cache(self) -> bool:
        return self.cache and self.cache_time > 0


class ExecuteResult(BaseModel):
    """Outcome of a statement run for its side effect."""
    affected: int = 0
    insert_id: Optional[int] = None


class Diagnostics(BaseModel):
    """Notes collected while serving one call."""
    operation: str
    notes: List[str] = Field(default_factory=list)

    def add(self, note: str) -> None:
        self.notes.append(note)

    def __str__(self) -> str:
        return "\n".join([self.operation, *self.notes])
