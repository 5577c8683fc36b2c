"""Tests for settings and per-call cache configuration."""

import pytest
from pydantic import ValidationError

from dbcache.core.config import Settings
from dbcache.models.query import CacheConfig, CacheMode, Diagnostics, QueryRequest


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.cache_backend == "memory"
        assert settings.cache_ttl == 3600
        assert settings.is_memory_database

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("DBCACHE_CACHE_TTL", "120")
        monkeypatch.setenv("DBCACHE_CACHE_BACKEND", "sql")
        settings = Settings(_env_file=None)
        assert settings.cache_ttl == 120
        assert settings.cache_backend == "sql"

    def test_log_level_normalised(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="loud")

    def test_redis_url_scheme(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, redis_url="http://localhost:6379")

    def test_file_database_is_not_memory(self):
        assert not Settings(_env_file=None, database_url="sqlite:///data.db").is_memory_database
        assert Settings(_env_file=None, database_url="sqlite:///:memory:").is_memory_database


class TestCacheConfig:

    def test_modes(self):
        assert CacheConfig().mode is CacheMode.NONE
        assert CacheConfig(cache_key="all").mode is CacheMode.LIST
        assert CacheConfig(cache_prefix="item_", cache_bycol="id").mode is CacheMode.PER_IDENTIFIER

    def test_empty_strings_are_unset(self):
        config = CacheConfig(cache_key="", cache_prefix="", cache_bycol="")
        assert config.mode is CacheMode.NONE

    def test_numeric_keys(self):
        assert CacheConfig(cache_prefix="item_", cache_bycol="id").numeric_keys
        assert not CacheConfig(cache_prefix="t_", cache_bycol="item_id").numeric_keys
        assert CacheConfig(cache_prefix="t_", cache_bycol="item_id", cache_key_num=True).numeric_keys

    def test_writes_cache(self):
        assert CacheConfig(cache=True, cache_time=60).writes_cache
        assert not CacheConfig(cache=True).writes_cache
        assert not CacheConfig(cache_time=60).writes_cache

    @pytest.mark.parametrize("options", [
        {"cache_prefix": "item_"},
        {"cache_bycol": "id"},
        {"cache_bycol_sql": "i.id"},
        {"cache_bycol_group": ["tag"]},
        {"cache_key_num": True},
        {"cache_prefix": "t_", "cache_bycol": "item_id", "cache_bycol_group": []},
        {"cache_prefix": "t_", "cache_bycol": "item_id", "cache_bycol_group_value": True},
        {"cache_version_key": "ver"},
        {"cache_time": -1},
        {"unknown_option": 1},
    ])
    def test_invalid(self, options):
        with pytest.raises(ValidationError):
            CacheConfig(**options)

    def test_frozen(self):
        config = CacheConfig(cache=True)
        with pytest.raises(ValidationError):
            config.cache = False


def test_query_request_requires_sql():
    with pytest.raises(ValidationError):
        QueryRequest(sql="")
    assert QueryRequest(sql="SELECT 1", values=[1, 2]).values == (1, 2)


def test_diagnostics_render():
    diagnostics = Diagnostics(operation="fetch_list")
    diagnostics.add("Query: SELECT 1")
    assert str(diagnostics) == "fetch_list\nQuery: SELECT 1"
