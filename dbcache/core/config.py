"""Environment-driven configuration with Pydantic v2."""

from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings for the database executor, the cache store and logging.

    Every field can be overridden with a ``DBCACHE_``-prefixed environment
    variable (``DBCACHE_DATABASE_URL``, ``DBCACHE_CACHE_BACKEND``, ...).
    """

    # Database Configuration
    database_url: str = Field(default="sqlite://")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=5, ge=1, le=100)
    database_max_overflow: int = Field(default=10, ge=0, le=100)

    # Cache Configuration
    cache_backend: Literal["redis", "sql", "memory"] = Field(default="memory")
    redis_url: Optional[str] = Field(default=None)
    redis_socket_timeout: float = Field(default=5.0, gt=0, le=60)
    cache_ttl: int = Field(default=3600, ge=0)
    cache_version_ttl: int = Field(default=3600, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Normalise and check the level name against stdlib logging."""
        level = v.upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v):
        if v and not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("redis_url must use the redis://, rediss:// or unix:// scheme")
        return v

    @property
    def is_memory_database(self) -> bool:
        """True for SQLite URLs that never touch the filesystem."""
        url = self.database_url
        return url.startswith("sqlite") and (url.endswith("://") or ":memory:" in url)

    model_config = {
        "env_prefix": "DBCACHE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
