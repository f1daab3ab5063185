# logging.py

import logging
import os
from logging.handlers import RotatingFileHandler

import structlog
from structlog.contextvars import merge_contextvars

from Recipeweaver.config import Settings

_QUIET = "NONE"
_DEFAULT_FILE = "logs/recipeweaver.jsonl"


def _formatter() -> structlog.stdlib.ProcessorFormatter:
    # One JSON line per event, for structlog and third-party records alike
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=[structlog.processors.add_log_level, merge_contextvars],
    )


def _level(name: str | None, fallback: int) -> int:
    return getattr(logging, (name or "").upper(), fallback)


def _handlers(settings: Settings | None, default_level: int) -> list[logging.Handler]:
    if settings is not None and not settings.logging_enabled:
        return []
    console_name = settings.logging_console if settings is not None else None
    file_name = settings.logging_file if settings is not None else None
    formatter = _formatter()
    handlers: list[logging.Handler] = []

    if (console_name or "").upper() != _QUIET:
        console = logging.StreamHandler()
        console.setLevel(_level(console_name, default_level))
        handlers.append(console)

    if (file_name or "").upper() != _QUIET:
        path = settings.logging_file_path if settings is not None else _DEFAULT_FILE
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        rotating = RotatingFileHandler(
            path,
            maxBytes=settings.logging_max_bytes if settings is not None else 5_000_000,
            backupCount=settings.logging_backup_count if settings is not None else 5,
        )
        rotating.setLevel(_level(file_name, default_level))
        handlers.append(rotating)

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(settings: Settings | None = None) -> None:
    """Route structlog and stdlib logging through JSON handlers.

    ``logging_console`` and ``logging_file`` set per-handler levels; ``NONE``
    drops a handler and ``logging_enabled = false`` drops both. Without
    settings, console and ``logs/recipeweaver.jsonl`` log at INFO.
    """
    level = _level(settings.logging_level if settings is not None else None, logging.INFO)
    logging.captureWarnings(True)
    logging.basicConfig(level=level, handlers=_handlers(settings, level), force=True)

    # Chatty client libraries log through the root handlers only
    for name in ("httpx", "httpcore", "asyncio", "alembic"):
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
    """Settings as a dict with credentials replaced by ``[REDACTED]``."""
    data = settings.model_dump()
    for key in data:
        if key.endswith(("_token", "_secret", "_key", "_password")):
            data[key] = "[REDACTED]"
    return data
