"""
Structured Logging Setup

Consistent logging configuration across the client.
Uses JSON format for structured logs in production.

Configuration payloads end up in log records (a document that fails to
parse is logged with its text), so long string fields are clipped to
MAX_FIELD_CHARS in JSON output.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "service",
    "message", "taskName",
})

MAX_FIELD_CHARS = 2048


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging"""

    def __init__(self, max_field_chars: int = MAX_FIELD_CHARS):
        super().__init__()
        self.max_field_chars = max_field_chars

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = self._clip(value)

        return json.dumps(log_data, default=str)

    def _clip(self, value):
        if isinstance(value, str) and len(value) > self.max_field_chars:
            return f"{value[:self.max_field_chars]}... ({len(value)} chars)"
        return value


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
) -> logging.Logger:
    """
    Set up structured logging for a service.

    Args:
        service_name: Name of the service (e.g., "config.session", "scheduler")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"dynconfig.{service_name}")
    logger.setLevel(numeric_level)

    # Clear existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
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

    Args:
        service_name: Name of the service

    Returns:
        Logger adapter with service name in all logs
    """
    log_level = os.environ.get("DYNCONFIG_LOG_LEVEL", "INFO")
    json_format = os.environ.get("DYNCONFIG_LOG_FORMAT", "json").lower() == "json"

    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


def set_log_level(log_level: str) -> None:
    """Change the level of every dynconfig logger already created (e.g. for --verbose)"""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    for name, logger in logging.root.manager.loggerDict.items():
        if name.startswith("dynconfig.") and isinstance(logger, logging.Logger):
            logger.setLevel(numeric_level)
            for handler in logger.handlers:
                handler.setLevel(numeric_level)
