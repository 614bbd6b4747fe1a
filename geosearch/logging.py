import logging
import sys

import structlog

from geosearch.core.config import Settings, settings

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _renderers(config: Settings) -> list:
    if config.ENV.lower() == "development":
        return [structlog.dev.ConsoleRenderer()]
    return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]


def configure_logging(config: Settings = settings) -> None:
    """
    Routes stdlib and uvicorn logs through structlog at ``config.LOG_LEVEL``.
    Console rendering in development, one JSON object per line everywhere else.
    Safe to call again; the last call wins.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors + _renderers(config),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = logging.getLevelName(config.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    # basicConfig is a no-op once handlers exist, so the level is applied separately.
    logging.getLogger().setLevel(level)

    # uvicorn installs its own handlers; let its records reach the root logger instead
    for name in UVICORN_LOGGERS:
        uv_logger = logging.getLogger(name)
        uv_logger.handlers = []
        uv_logger.propagate = True
