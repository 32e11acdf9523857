# File: sparkle_api/core/logging_config.py

"""
Logging configuration.

Everything goes through the standard ``logging`` module. ``setup_logging``
installs one console handler on the root logger, formatted either as one
JSON object per line (``LOG_FORMAT=json``) or as a readable line
(``LOG_FORMAT=pretty``). Modules get their logger with ``get_logger(__name__)``.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

# LOG_LEVEL uses the pino-style names; map them onto logging levels.
LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}

PRETTY_FORMAT = "%(levelname)-8s %(name)s - %(message)s"
PRETTY_FORMAT_WITH_TIME = "%(asctime)s " + PRETTY_FORMAT

# Third-party libraries (reduce noise)
MODULE_LOG_LEVELS = {
    "sqlalchemy": "WARNING",
    "sqlalchemy.pool": "WARNING",
    "urllib3": "WARNING",
    "httpx": "WARNING",
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
}

# DATABASE_LOG_LEVEL onto the sqlalchemy.engine logger, which logs every
# statement at INFO and has nothing of its own between INFO and WARNING
DATABASE_LOG_LEVELS = {
    "query": logging.INFO,
    "info": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_STANDARD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def __init__(self, include_timestamp: bool = True) -> None:
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.include_timestamp:
            payload["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        # anything passed through ``extra=``
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def build_formatter(log_format: str, include_timestamp: bool) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter(include_timestamp=include_timestamp)
    fmt = PRETTY_FORMAT_WITH_TIME if include_timestamp else PRETTY_FORMAT
    return logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    include_timestamp: Optional[bool] = None,
) -> None:
    """
    Configure the root logger.

    Args:
        log_level: Override LOG_LEVEL (trace, debug, info, warn, error, fatal)
        log_format: Override LOG_FORMAT (json, pretty)
        include_timestamp: Override LOG_TIMESTAMP
    """
    from sparkle_api.core.config import get_settings

    config = get_settings()
    level_name = (log_level or config.log_level).lower()
    fmt = log_format or config.log_format
    with_time = config.log_timestamp if include_timestamp is None else include_timestamp

    root_logger = logging.getLogger()
    root_logger.setLevel(LEVELS.get(level_name, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(build_formatter(fmt, with_time))
    root_logger.addHandler(console_handler)

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)
    apply_database_log_level(config.database_config.log_level)

    root_logger.debug("Logging configured: level=%s, format=%s", level_name, fmt)


def apply_database_log_level(level_name: str) -> None:
    logging.getLogger("sqlalchemy.engine").setLevel(DATABASE_LOG_LEVELS.get(level_name, logging.ERROR))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
