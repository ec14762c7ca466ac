# forum_bridge/utils/logging_config.py
"""
Logging setup for the Flask app and the importer.

JSON lines in production, human-readable text in development. Importer
modules attach context through ``extra={...}`` (``importer_run_id``,
``importer_entity_kind`` ...); the JSON formatter carries those keys through.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any

_STANDARD_RECORD_ATTRS = frozenset(
    (
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "taskName", "asctime",
    )
)


class JsonFormatter(logging.Formatter):
    """Format log records as JSON for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        # Anything passed via extra= in the log call
        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_ATTRS or value is None:
                continue
            try:
                json.dumps(value)
                log_obj[key] = value
            except (TypeError, ValueError):
                log_obj[key] = str(value)

        return json.dumps(log_obj)


def _create_text_formatter() -> logging.Formatter:
    return logging.Formatter("%(asctime)s %(levelname)-7s [%(name)s] %(message)s")


def setup_logging(app):
    """
    Configure ``app.logger`` from the LOG_* settings.

    Safe to call repeatedly; handlers installed by a previous call are replaced.
    """
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    log_format = str(app.config.get("LOG_FORMAT", "json")).lower()
    formatter = JsonFormatter() if log_format == "json" else _create_text_formatter()

    logger = app.logger
    for handler in list(logger.handlers):
        if getattr(handler, "_forum_bridge_handler", False):
            logger.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = []
    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        handlers.append(logging.StreamHandler(sys.stderr))

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                os.path.join(log_dir, "forum_bridge.log"),
                maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10485760)),
                backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 10)),
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler._forum_bridge_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    logger.setLevel(level)

    # SQL echo is controlled by SQLALCHEMY_ECHO, not the app log level
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return logger
