"""Synchronous database executor built on SQLAlchemy 2.0 Core."""

import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.elements import TextClause

from dbcache.core.config import Settings
from dbcache.core.exceptions import DatabaseConnectionError, QueryError
from dbcache.core.logging import get_logger, log_query
from dbcache.models.query import ExecuteResult

logger = get_logger(__name__)


def _reason(error: SQLAlchemyError) -> str:
    """Driver message without SQLAlchemy's statement echo."""
    orig = getattr(error, "orig", None)
    return str(orig) if orig is not None else str(error)


def placeholders(count: int) -> str:
    """Positional placeholders for an ``IN (...)`` list: ``placeholders(3) -> "?,?,?"``."""
    return ",".join("?" * count)


def _literal_end(sql: str, start: int, backslash_escapes: bool) -> int:
    """Index just past the quoted literal or identifier opening at ``start``."""
    quote = sql[start]
    pos = start + 1
    while pos < len(sql):
        char = sql[pos]
        if backslash_escapes and char == "\\" and quote != "`":
            pos += 2
            continue
        if char == quote:
            if sql.startswith(quote * 2, pos):
                pos += 2
                continue
            return pos + 1
        pos += 1
    return len(sql)


def _comment_end(sql: str, start: int) -> int:
    """Index just past the ``--`` or ``/* */`` comment opening at ``start``."""
    if sql.startswith("--", start):
        end = sql.find("\n", start)
        return len(sql) if end == -1 else end
    end = sql.find("*/", start + 2)
    return len(sql) if end == -1 else end + 2


def bind_positional(sql: str, values: Sequence[Any],
                    backslash_escapes: bool = False) -> Tuple[TextClause, Dict[str, Any]]:
    """Turn a ``?`` template into a SQLAlchemy text clause with named binds.

    Question marks inside quoted literals, quoted identifiers and comments are
    left alone. With ``backslash_escapes`` (MySQL) a backslash escapes the next
    character inside a literal. Colons are escaped so that they never read as
    named parameters.
    """
    out: List[str] = []
    params: Dict[str, Any] = {}
    index = 0
    pos = 0

    while pos < len(sql):
        char = sql[pos]

        if char in ("'", '"', "`") or sql.startswith(("--", "/*"), pos):
            if char in ("'", '"', "`"):
                end = _literal_end(sql, pos, backslash_escapes)
            else:
                end = _comment_end(sql, pos)
            out.append(sql[pos:end].replace(":", "\\:"))
            pos = end
            continue

        if char == "?":
            if index >= len(values):
                raise QueryError(sql, values, "Not enough bound values for placeholders")
            name = f"p{index}"
            params[name] = values[index]
            out.append(f":{name}")
            index += 1
        elif char == ":":
            out.append("\\:")
        else:
            out.append(char)
        pos += 1

    if index != len(values):
        raise QueryError(sql, values, f"Query has {index} placeholders but {len(values)} values were bound")

    return text("".join(out)), params


class Database:
    """Statement executor over a SQLAlchemy engine.

    Calls made inside ``transaction()`` on the same thread reuse its connection;
    everything else runs on a short-lived connection that commits on success.
    """

    def __init__(self, settings: Settings, engine: Optional[Engine] = None):
        self.settings = settings
        self.engine = engine
        self._local = threading.local()

    def startup(self):
        """Create the engine."""
        if self.engine is not None:
            return

        try:
            if self.settings.is_memory_database:
                # One shared connection, otherwise every checkout sees an empty database
                self.engine = create_engine(
                    self.settings.database_url,
                    echo=self.settings.database_echo,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                )
            else:
                self.engine = create_engine(
                    self.settings.database_url,
                    echo=self.settings.database_echo,
                    pool_size=self.settings.database_pool_size,
                    max_overflow=self.settings.database_max_overflow,
                    pool_pre_ping=True,
                )
            logger.info("Database engine created", dialect=self.engine.dialect.name)

        except (SQLAlchemyError, ImportError) as e:
            logger.error("Database startup failed", error=str(e))
            raise DatabaseConnectionError(f"Failed to create database engine: {e}") from e

    def shutdown(self):
        """Dispose of pooled connections."""
        if self.engine:
            self.engine.dispose()
            self.engine = None
            logger.info("Database connections closed")

    def _require_engine(self) -> Engine:
        if self.engine is None:
            raise DatabaseConnectionError("Database not initialized")
        return self.engine

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        active = getattr(self._local, "connection", None)
        if active is not None:
            yield active
            return

        engine = self._require_engine()
        try:
            conn = engine.connect()
        except SQLAlchemyError as e:
            logger.error("Database connection failed", error=str(e))
            raise DatabaseConnectionError(f"Failed database connection: {e}") from e

        with conn:
            with conn.begin():
                yield conn

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Run the enclosed calls in one transaction."""
        if getattr(self._local, "connection", None) is not None:
            raise RuntimeError("A transaction is already active on this thread")

        engine = self._require_engine()
        try:
            conn = engine.connect()
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(f"Failed database connection: {e}") from e

        with conn:
            trans = conn.begin()
            self._local.connection = conn
            try:
                yield conn
            except Exception:
                trans.rollback()
                logger.info("Transaction rolled back")
                raise
            else:
                trans.commit()
            finally:
                self._local.connection = None

    def _bind(self, sql: str, values: Sequence[Any]) -> Tuple[TextClause, Dict[str, Any]]:
        backslash_escapes = self.engine is not None and self.engine.dialect.name in ("mysql", "mariadb")
        return bind_positional(sql, values, backslash_escapes)

    def quote_identifier(self, name: str) -> str:
        """Quote a column name for the engine's dialect."""
        return self._require_engine().dialect.identifier_preparer.quote(name)

    def fetch_all(self, sql: str, values: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Run a query and return every row as a dict."""
        statement, params = self._bind(sql, values)

        with self._connection() as conn:
            try:
                result = conn.execute(statement, params)
                rows = [dict(row) for row in result.mappings()]
            except SQLAlchemyError as e:
                logger.error("Query failed", sql=sql, error=str(e))
                raise QueryError(sql, values, _reason(e)) from e

        log_query(logger, sql, values, rows=len(rows))
        return rows

    def execute(self, sql: str, values: Sequence[Any] = ()) -> ExecuteResult:
        """Run a statement for its side effect."""
        statement, params = self._bind(sql, values)

        with self._connection() as conn:
            try:
                result = conn.execute(statement, params)
                outcome = ExecuteResult(
                    affected=max(result.rowcount, 0),
                    insert_id=result.lastrowid or None,
                )
            except SQLAlchemyError as e:
                logger.error("Statement failed", sql=sql, error=str(e))
                raise QueryError(sql, values, _reason(e)) from e

        log_query(logger, sql, values, affected=outcome.affected)
        return outcome
