"""
Structured Logging Setup

Consistent logging configuration across the loader and its watchers.
Uses JSON format for structured logs in production.

Library use logs to stdout. The CLI passes stderr so that stdout carries
only what the command prints (e.g. the --dry-run YAML).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import TextIO

LOGGER_PREFIX = "cfgsync."

# LogRecord attributes that are not user-supplied context
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "service",
    "message", "taskName",
))


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", None) or _component(record.name),
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def _component(logger_name: str) -> str:
    """cfgsync.config.store -> config.store"""
    if logger_name.startswith(LOGGER_PREFIX):
        return logger_name[len(LOGGER_PREFIX):]
    return logger_name


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds service name to all logs"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs.setdefault("extra", {})
        kwargs["extra"]["service"] = self.extra.get("service", "unknown")
        return msg, kwargs


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Set up structured logging for a component.

    Args:
        service_name: Name of the component (e.g., "config.store", "main")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)
        stream: Where records go; defaults to sys.stdout at call time

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"{LOGGER_PREFIX}{service_name}")
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(numeric_level)

    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """
    Get a logger adapter with service context.

    Level and format come from CFGSYNC_LOG_LEVEL and CFGSYNC_LOG_FORMAT.

    Args:
        service_name: Name of the component

    Returns:
        Logger adapter with service name in all logs
    """
    log_level = os.environ.get("CFGSYNC_LOG_LEVEL", "INFO")
    json_format = os.environ.get("CFGSYNC_LOG_FORMAT", "json").lower() == "json"

    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


def configure_all(log_level: str, json_format: bool, stream: TextIO | None = None) -> None:
    """
    Re-apply level, format and stream to every cfgsync logger already created.

    Component loggers are created at import time from the environment;
    the entry point calls this once its flags are parsed.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    manager = logging.Logger.manager

    for name, logger in list(manager.loggerDict.items()):
        if not name.startswith(LOGGER_PREFIX) or not isinstance(logger, logging.Logger):
            continue
        setup_logging(_component(name), log_level, json_format, stream)

    logging.getLogger("cfgsync").setLevel(numeric_level)
