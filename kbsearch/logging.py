import logging
import sys
from typing import Literal

import structlog

LogFormat = Literal["console", "json"]

_shared_processors = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]

# Chatty third-party loggers; their warnings still get through
_QUIET_LOGGERS = ("LiteLLM", "httpx", "openai", "anthropic", "aiosqlite")


def _renderer(fmt: LogFormat):
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _processors(fmt: LogFormat) -> list:
    # ConsoleRenderer formats exceptions itself
    if fmt == "json":
        return [*_shared_processors, structlog.processors.format_exc_info, _renderer(fmt)]
    return [*_shared_processors, _renderer(fmt)]


def configure_logging(level: str = "INFO", fmt: LogFormat = "console") -> None:
    structlog.configure(
        processors=_processors(fmt),
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None):
    return structlog.get_logger(name or "kbsearch")


def uvicorn_log_config(fmt: LogFormat = "console") -> dict:
    """dictConfig routing uvicorn's stdlib loggers through the structlog renderer."""
    formatter = {
        "()": structlog.stdlib.ProcessorFormatter,
        "processor": _renderer(fmt),
        "foreign_pre_chain": _shared_processors,
    }
    handler = {"formatter": "structlog", "class": "logging.StreamHandler", "stream": "ext://sys.stderr"}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"structlog": formatter},
        "handlers": {"default": handler},
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"level": "INFO"},
            "uvicorn.access": {"handlers": ["default"], "level": "INFO", "propagate": False},
        },
    }
