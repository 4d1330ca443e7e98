"""
Structured Logging Configuration
Colored console output for development, JSON lines for production and files
"""
import logging
import sys
import time
from typing import Optional
from datetime import datetime, timezone
import json

# Attributes every LogRecord carries; anything else arrived through `extra=`
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for production environments.
    Fields passed with `extra=` (session_id, stage, ...) are emitted as keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """
    Colored log formatter for development environments.
    """

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now().strftime('%H:%M:%S')

        formatted = f"{color}{timestamp} │ {record.levelname:8}{self.RESET} │ {record.name:28} │ {record.getMessage()}"

        session_id = getattr(record, "session_id", None)
        if session_id:
            formatted += f" [session={session_id}]"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    root_logger.handlers.clear()

    formatter = JSONFormatter() if json_format else ColoredFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())  # Always JSON for files
        root_logger.addHandler(file_handler)

    # Quiet noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name (typically __name__)."""
    return logging.getLogger(name)


class PerformanceLogger:
    """
    Context manager for logging operation performance.

    Usage:
        with PerformanceLogger(logger, "chat_turn", session_id=sid) as perf:
            ...
        perf.elapsed_ms
    """

    def __init__(self, logger: logging.Logger, operation: str, threshold_ms: float = 2000, **context):
        self.logger = logger
        self.operation = operation
        self.threshold_ms = threshold_ms
        self.context = context
        self.start_time: Optional[float] = None
        self.elapsed_ms: float = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000

            if self.elapsed_ms > self.threshold_ms:
                self.logger.warning(
                    f"Slow operation: {self.operation} took {self.elapsed_ms:.2f}ms",
                    extra=self.context
                )
            else:
                self.logger.debug(
                    f"{self.operation} completed in {self.elapsed_ms:.2f}ms",
                    extra=self.context
                )

        return False  # Don't suppress exceptions
