"""Dependency injection container for the query cache."""

from dependency_injector import containers, providers

from dbcache.core.config import Settings
from dbcache.core.database import Database
from dbcache.core.cache import CacheService
from dbcache.services.querycache import QueryCacheService


class Container(containers.DeclarativeContainer):
    """Wires settings, the database executor, the cache store and the query cache.

    Example:
        container = Container()
        container.database().startup()
        container.cache().startup()
        items = container.query_cache().fetch_list("SELECT * FROM items", ())
    """

    settings = providers.Singleton(
        Settings,
    )

    # Database (also hosts the sql cache backend table)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    cache = providers.Singleton(
        CacheService,
        settings=settings,
        database=database
    )

    query_cache = providers.Factory(
        QueryCacheService,
        database=database,
        cache=cache
    )


def startup(container: Container) -> None:
    """Start the database then the cache, in dependency order."""
    container.database().startup()
    container.cache().startup()


def shutdown(container: Container) -> None:
    container.cache().shutdown()
    container.database().shutdown()
