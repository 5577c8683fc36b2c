"""Structured logging for the query cache."""

import sys
import structlog
import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple
from dbcache.core.config import Settings

# Third-party loggers that are chatty below WARNING
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "redis")


def _handlers(settings: Settings, level: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def _renderer_chain(log_format: str) -> Tuple[list, list]:
    """Timestamp, metadata and final renderer for ``json`` or ``console`` output."""
    if log_format == "json":
        head = [structlog.stdlib.add_logger_name, structlog.processors.TimeStamper(fmt="iso")]
        tail = [structlog.processors.JSONRenderer()]
    else:
        head = [structlog.processors.TimeStamper(fmt="%H:%M:%S")]
        tail = [structlog.dev.ConsoleRenderer(
            colors=False,
            pad_event=35,
            exception_formatter=structlog.dev.plain_traceback
        )]
    return head, tail


def configure_logging(settings: Settings) -> None:
    """Route structlog events through stdlib logging at ``settings.log_level``."""
    level = logging.getLevelName(settings.log_level)
    logging.basicConfig(format="%(message)s", level=level, handlers=_handlers(settings, level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    head, tail = _renderer_chain(settings.log_format)
    structlog.configure(
        processors=[
            *head,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            *tail,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def log_cache_operation(logger: structlog.BoundLogger, operation: str,
                        key: Any, hit: Optional[bool] = None, **kwargs) -> None:
    """Log a cache store call.

    ``key`` is a single key or, for multi-key calls, the list of keys.
    """
    event = {"operation": operation, "cache_key": key, **kwargs}
    if hit is not None:
        event["cache_hit"] = hit
    logger.debug("Cache operation", **event)


def log_query(logger: structlog.BoundLogger, sql: str, values: Sequence[Any],
              rows: Optional[int] = None, **kwargs) -> None:
    """Log a statement sent to the backing store."""
    event = {"sql": sql, "bound_values": list(values), **kwargs}
    if rows is not None:
        event["rows"] = rows
    logger.debug("Database query", **event)
