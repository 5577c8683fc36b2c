"""Shared fixtures: an in-memory SQLite database seeded with items and tags."""

import pytest

from dbcache.core.cache import CacheService
from dbcache.core.config import Settings
from dbcache.core.database import Database
from dbcache.services.querycache import QueryCacheService

ITEMS = [
    (1, "alpha", "tools", 10),
    (2, "beta", "tools", 20),
    (3, "gamma", "books", 30),
    (4, "delta", "books", 40),
]

TAGS = [
    (1, "red"),
    (1, "blue"),
    (2, "green"),
    (3, "red"),
]


@pytest.fixture
def settings():
    return Settings(_env_file=None, database_url="sqlite://", cache_backend="memory")


@pytest.fixture
def database(settings):
    db = Database(settings)
    db.startup()

    db.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, title TEXT, category TEXT, price INTEGER)")
    db.execute("CREATE TABLE tags (item_id INTEGER, tag TEXT)")
    for row in ITEMS:
        db.execute("INSERT INTO items (id, title, category, price) VALUES (?, ?, ?, ?)", row)
    for row in TAGS:
        db.execute("INSERT INTO tags (item_id, tag) VALUES (?, ?)", row)

    yield db
    db.shutdown()


@pytest.fixture
def cache(settings):
    return CacheService(settings)


@pytest.fixture
def service(database, cache):
    return QueryCacheService(database, cache)


@pytest.fixture
def query_spy(mocker, database):
    """Spy on every statement sent to the database.

    Read a call's statement and values with ``call.args[-2:]``.
    """
    return mocker.spy(database, "fetch_all")


@pytest.fixture
def queries(query_spy):
    """Return a callable listing (sql, values) of every fetch_all call so far."""
    def recorded():
        return [tuple(call.args[-2:]) for call in query_spy.call_args_list]
    return recorded
