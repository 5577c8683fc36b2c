"""Tests for whole-list caching with version tokens."""

from dbcache.core.cache import ABSENT
from dbcache.models.query import CacheConfig, Diagnostics, QueryRequest
from dbcache.services.querycache import VersionedListCache

TOOLS = QueryRequest(sql="SELECT id, title FROM items WHERE category = ? ORDER BY id", values=("tools",))
TOOLS_ROWS = [{"id": 1, "title": "alpha"}, {"id": 2, "title": "beta"}]


def listed(**options):
    options.setdefault("cache_key", "tools_list")
    return CacheConfig(cache=True, cache_time=60, **options)


def run(component, config, request=TOOLS):
    return component.fetch(request, config, Diagnostics(operation="fetch_list"))


class TestUnversioned:

    def test_miss_then_hit(self, database, cache, queries):
        component = VersionedListCache(database, cache)

        assert run(component, listed()) == TOOLS_ROWS
        assert run(component, listed()) == TOOLS_ROWS
        assert len(queries()) == 1
        assert cache.get("tools_list") == TOOLS_ROWS

    def test_empty_list_is_cached(self, database, cache, queries):
        component = VersionedListCache(database, cache)
        request = QueryRequest(sql="SELECT id FROM items WHERE category = ?", values=("toys",))

        assert run(component, listed(cache_key="toys_list"), request) == []
        assert run(component, listed(cache_key="toys_list"), request) == []
        assert len(queries()) == 1

    def test_arr_index_keeps_cached_value_flat(self, database, cache):
        component = VersionedListCache(database, cache)

        assert run(component, listed(arr_index="id")) == {1: TOOLS_ROWS[0], 2: TOOLS_ROWS[1]}
        assert cache.get("tools_list") == TOOLS_ROWS
        assert run(component, listed(arr_index="id")) == {1: TOOLS_ROWS[0], 2: TOOLS_ROWS[1]}

    def test_non_list_value_is_ignored(self, database, cache, queries):
        cache.set("tools_list", {"stale": True}, 60)
        component = VersionedListCache(database, cache)

        assert run(component, listed()) == TOOLS_ROWS
        assert len(queries()) == 1
        assert cache.get("tools_list") == TOOLS_ROWS

    def test_zero_cache_time_reads_but_never_writes(self, database, cache, queries):
        component = VersionedListCache(database, cache)
        config = CacheConfig(cache=True, cache_key="tools_list")

        assert run(component, config) == TOOLS_ROWS
        assert cache.memory_cache == {}

        cache.set("tools_list", [{"id": 9}], 60)
        assert run(component, config) == [{"id": 9}]
        assert len(queries()) == 1

    def test_renew(self, database, cache, queries):
        cache.set("tools_list", [{"id": 9}], 60)
        component = VersionedListCache(database, cache)

        assert run(component, listed(renew_cache=True)) == TOOLS_ROWS
        assert cache.get("tools_list") == TOOLS_ROWS
        assert len(queries()) == 1


class TestVersioned:

    def test_effective_key_carries_token(self, database, cache):
        component = VersionedListCache(database, cache)
        config = listed(cache_version_key="items_version")

        key = component.effective_key(config)
        token = cache.get("items_version")
        assert key == f"tools_list_{token}"
        assert component.effective_key(config) == key

    def test_no_versioning_without_cache_time(self, database, cache):
        component = VersionedListCache(database, cache)
        config = CacheConfig(cache=True, cache_key="tools_list", cache_version_key="items_version")

        assert component.effective_key(config) == "tools_list"
        assert cache.get("items_version") is ABSENT

    def test_rotation_invalidates_sibling_lists(self, database, cache, queries):
        component = VersionedListCache(database, cache)
        books = QueryRequest(sql="SELECT id FROM items WHERE category = ? ORDER BY id", values=("books",))
        tools_config = listed(cache_version_key="items_version")
        books_config = listed(cache_key="books_list", cache_version_key="items_version")

        run(component, tools_config)
        run(component, books_config, books)
        run(component, tools_config)
        run(component, books_config, books)
        assert len(queries()) == 2

        database.execute("UPDATE items SET title = ? WHERE id = ?", ["ALPHA", 1])
        assert run(component, tools_config)[0]["title"] == "alpha"

        cache.rotate_version("items_version")
        assert run(component, tools_config)[0]["title"] == "ALPHA"
        assert run(component, books_config, books) == [{"id": 3}, {"id": 4}]
        assert len(queries()) == 4

    def test_without_store(self, database, queries):
        component = VersionedListCache(database)
        config = listed(cache_version_key="items_version")

        assert component.effective_key(config) == "tools_list"
        assert run(component, config) == TOOLS_ROWS
        assert run(component, config) == TOOLS_ROWS
        assert len(queries()) == 2
