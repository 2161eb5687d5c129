"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path

import structlog

from .errors import AppError, find

LOGGER_NAME = "news_agent"

_LOGGING_INITIALISED = False


def configure_logging(verbose: bool = False, log_file: Path | None = None) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger.

    Records go to ``log_file`` as JSON lines; ``verbose`` adds a console
    handler on stderr at DEBUG level.
    """

    global _LOGGING_INITIALISED
    if not _LOGGING_INITIALISED:
        level = "DEBUG" if verbose else "INFO"
        handlers: dict[str, dict] = {}
        if log_file is not None:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers["agent_file"] = {
                "class": "logging.FileHandler",
                "level": level,
                "filename": str(log_file),
                "encoding": "utf-8",
                "formatter": "json",
            }
        if verbose or log_file is None:
            handlers["console"] = {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json",
            }
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "json": {
                        "()": "pythonjsonlogger.json.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": handlers,
                "loggers": {
                    LOGGER_NAME: {
                        "handlers": list(handlers),
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )

        # structlog 事件字段以 extra 形式交给 JSON formatter
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.render_to_log_kwargs,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger(LOGGER_NAME)


def get_logger(component: str | None = None) -> structlog.BoundLogger:
    logger = structlog.get_logger(LOGGER_NAME)
    if component:
        return logger.bind(component=component)
    return logger


def source_logger(source_name: str) -> structlog.BoundLogger:
    """Return a logger bound to a specific source."""

    return structlog.get_logger(f"{LOGGER_NAME}.source").bind(source=source_name)


def _error_fields(error: BaseException) -> dict[str, object]:
    fields: dict[str, object] = {"error": str(error)}
    app_error = find(error, AppError)
    if app_error is not None:
        fields["kind"] = app_error.kind.value
        fields["retryable"] = app_error.retryable
    return fields


def log_error(operation: str, error: BaseException, logger: structlog.BoundLogger | None = None) -> None:
    (logger or get_logger()).error(operation, **_error_fields(error))


def log_retry(
    operation: str,
    attempt: int,
    error: BaseException,
    logger: structlog.BoundLogger | None = None,
) -> None:
    (logger or get_logger()).warning(
        "retry", operation=operation, attempt=attempt, **_error_fields(error)
    )


__all__ = [
    "LOGGER_NAME",
    "configure_logging",
    "get_logger",
    "log_error",
    "log_retry",
    "source_logger",
]
