# logging.py

import logging
import os
from logging.handlers import RotatingFileHandler

import structlog
from structlog.contextvars import merge_contextvars

from Zigport.config import Settings

# Chatty libraries whose records should flow through our JSON handlers
_PROPAGATED_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "alembic", "asyncio")


def _level(name: str | None, default: int) -> int | None:
    """Map a handler level name to a logging level; "NONE" disables the handler."""
    if name is None:
        return default
    if name.upper() == "NONE":
        return None
    return getattr(logging, name.upper(), default)


def _json_formatter() -> structlog.stdlib.ProcessorFormatter:
    # Renders structlog events and plain stdlib records alike
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            # session_id and friends bound by the import orchestrator
            merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=[
            structlog.processors.add_log_level,
            merge_contextvars,
        ],
    )


def _handlers(settings: Settings | None, root_level: int) -> list[logging.Handler]:
    formatter = _json_formatter()
    handlers: list[logging.Handler] = []

    console_level = _level(settings.logging_console if settings else None, root_level)
    if console_level is not None:
        console = logging.StreamHandler()
        console.setLevel(console_level)
        console.setFormatter(formatter)
        handlers.append(console)

    file_level = _level(settings.logging_file if settings else "NONE", root_level)
    if file_level is not None and settings is not None:
        path = settings.logging_file_path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        rotating = RotatingFileHandler(
            path,
            maxBytes=settings.logging_max_bytes,
            backupCount=settings.logging_backup_count,
            encoding="utf-8",
        )
        rotating.setLevel(file_level)
        rotating.setFormatter(formatter)
        handlers.append(rotating)
    return handlers


def setup_logging(settings: Settings | None = None) -> None:
    """Route structlog through stdlib logging with JSON output.

    Without settings: INFO to the console only. With settings, the [logging]
    table picks the root level and a level (or "NONE") per handler; the file
    handler rotates at ``logging_max_bytes``.
    """
    if settings is not None and not settings.logging_enabled:
        logging.basicConfig(level=logging.CRITICAL + 1, handlers=[logging.NullHandler()], force=True)
        return

    root_level = _level(settings.logging_level if settings else "INFO", logging.INFO) or logging.INFO
    logging.captureWarnings(True)
    logging.basicConfig(level=root_level, handlers=_handlers(settings, root_level), force=True)

    for name in _PROPAGATED_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def redact_settings(settings: Settings) -> dict:
    """Settings as a dict that is safe to log.

    Fields named like secrets become "[REDACTED]", and so do the credentials in
    ``database_url``.
    """
    data = settings.model_dump()
    for k in list(data):
        if k.endswith(("_token", "_secret", "_key", "_password")):
            data[k] = "[REDACTED]"
    url = data.get("database_url") or ""
    if "@" in url and "://" in url:
        scheme, rest = url.split("://", 1)
        data["database_url"] = f"{scheme}://[REDACTED]@{rest.rsplit('@', 1)[1]}"
    return data
