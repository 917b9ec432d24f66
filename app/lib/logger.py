import logging
import os
from typing import Optional

# Map string log levels to logging constants
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "taskName",
    ]
)

# Short aliases for the extra keys that show up on most lines
_KEY_ALIASES = {
    "event_type": "type",
    "chain_type": "chain",
    "agent_name": "agent",
}


class StructuredFormatter(logging.Formatter):
    """Single-line formatter that appends `extra` fields as key=value pairs."""

    def _format_extra(self, key, value) -> Optional[str]:
        if key == "request" and isinstance(value, dict):
            method = value.get("method", "")
            path = value.get("path", "")
            return f"request={method} {path}" if method and path else None
        if key == "response" and isinstance(value, dict):
            parts = []
            if value.get("status_code"):
                parts.append(f"response={value['status_code']}")
            if value.get("process_time_ms"):
                parts.append(f"time={value['process_time_ms']}ms")
            return " ".join(parts) or None
        if isinstance(value, dict):
            return f"{key}={str(value)[:100]}"
        return f"{_KEY_ALIASES.get(key, key)}={value}"

    def format(self, record):
        timestamp = self.formatTime(record, self.datefmt or "%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)
        logger_name = record.name.split(".")[-1][:20].ljust(20)
        log_line = f"{timestamp} | {level} | {logger_name} | {record.getMessage()}"

        extras = []
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or value is None:
                continue
            rendered = self._format_extra(key, value)
            if rendered:
                extras.append(rendered)

        if extras:
            log_line += f" | {' '.join(extras)}"

        if record.exc_info:
            log_line += f"\n{self.formatException(record.exc_info)}"

        return log_line


def configure_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Configure and return a logger instance with consistent formatting and level.

    Args:
        name (Optional[str]): Logger name. If None, the "sharegate" logger is used

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name if name else "sharegate")

    # Set log level from environment variable, default to INFO if not set
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = LOG_LEVELS.get(log_level_str, logging.INFO)
    logger.setLevel(log_level)

    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(StructuredFormatter())
        logger.addHandler(console_handler)

    return logger


def setup_uvicorn_logging():
    """Configure uvicorn and root loggers to use structured formatting."""
    # Request lines come from LoggingMiddleware
    logging.getLogger("uvicorn.access").disabled = True

    structured_formatter = StructuredFormatter()
    for logger_name in ["uvicorn", "uvicorn.error", "fastapi", ""]:
        for handler in logging.getLogger(logger_name).handlers:
            handler.setFormatter(structured_formatter)
