# PATH: core/logging.py
"""
Structured JSON logging for TRACE.

All contextual fields are passed only via extra={"context": {...}}.
Fields registered with set_global_context() (network, node url) are
merged into every record's context.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

_global_context: Dict[str, Any] = {}


def set_global_context(**fields: Any) -> None:
    """Register context fields attached to every log record."""
    _global_context.update(fields)


def clear_global_context() -> None:
    _global_context.clear()


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    context = dict(_global_context)
    own = getattr(record, "context", None)
    if own:
        context.update(own)
    return context


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Includes context fields from extra={"context": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = _record_context(record)
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    max_context_fields = 4

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        base = f"{timestamp} | {record.levelname:<8} | {record.name} | {record.getMessage()}"

        context = _record_context(record)
        if context:
            items = list(context.items())
            ctx_str = ", ".join(f"{k}={v}" for k, v in items[:self.max_context_fields])
            if len(items) > self.max_context_fields:
                ctx_str += f", ... (+{len(items) - self.max_context_fields} more)"
            base += f" | {ctx_str}"

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)

        return base


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """
    Setup logging configuration.

    Args:
        level: Logging level
        log_file: Optional file path for log output (always JSON)
        json_format: Use JSON format (True) or console format (False)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handlers = []

    # Logs go to stderr so that --json report output on stdout stays parseable
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(
        StructuredFormatter() if json_format else ConsoleFormatter()
    )
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(StructuredFormatter())
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True,
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically module name)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
