"""
Logging module for the CI log migration tool
"""

import json
import logging
from typing import Any, Optional

LOGGER_NAME = "ci_log_migrator"

LOG_FORMAT_CONSOLE = "console"
LOG_FORMAT_JSON = "json"

# Attributes present on every LogRecord; anything else was passed as context
_RESERVED_RECORD_ATTRS = frozenset(
    (
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "id",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    )
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line; context passed through ``extra`` becomes top-level keys."""

    def format(self, record):
        data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        data.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_ATTRS
        )
        if record.exc_info:
            data["error"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class EnhancedFormatter(logging.Formatter):
    """Console formatter that tags lines with the pipeline being migrated.

    Verbose mode also shows the worker thread and the source location, which
    tells concurrent page copies apart.
    """

    def __init__(self, fmt=None, datefmt=None, style="%", verbose=False):
        if verbose:
            fmt = (
                "%(asctime)s %(levelname)-7s [%(threadName)s %(module)s:%(lineno)d] "
                "%(message)s"
            )
        elif not fmt:
            fmt = "%(asctime)s %(levelname)-7s %(message)s"

        super().__init__(fmt, datefmt, style)

    def format(self, record):
        result = super().format(record)

        pipeline = getattr(record, "pipeline", None)
        if pipeline:
            category = getattr(record, "category", None)
            suffix = f"{pipeline}/{category}" if category else pipeline
            result += f" [{suffix}]"

        return result


def setup_logger(
    verbose: bool = False, log_format: str = LOG_FORMAT_CONSOLE
) -> logging.Logger:
    """Install the single console handler of the ``ci_log_migrator`` logger.

    Calling it again replaces the previous handler.

    Args:
        verbose: Show DEBUG records (every API request and page) on the console.
        log_format: ``console`` for human readable lines, ``json`` for one JSON
            object per line.
    """
    logger = logging.getLogger(LOGGER_NAME)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    if log_format == LOG_FORMAT_JSON:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = EnhancedFormatter(verbose=verbose)
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

    return logger


def log_with_context(level: int, message: str, **kwargs: Any) -> None:
    """Log on the ``ci_log_migrator`` logger with context fields.

    Context such as ``pipeline``, ``category`` or ``page_number`` is attached
    to the record; ``None`` values are left out. ``exc_info`` is passed
    through to the logger.
    """
    exc_info = kwargs.pop("exc_info", None)
    extras = {k: v for k, v in kwargs.items() if v is not None}

    logger = logging.getLogger(LOGGER_NAME)
    logger.log(level, message, extra=extras, exc_info=exc_info)


def log_api_request(method: str, url: str, **kwargs: Any) -> None:
    """
    Log an outgoing API request at debug level.

    Args:
        method: HTTP method (GET, POST, etc.)
        url: The API endpoint URL
        **kwargs: Additional context to include in the log record
    """
    log_with_context(
        logging.DEBUG, f"API Request: {method} {url}", method=method, url=url, **kwargs
    )


def log_api_response(
    status_code: int, url: str, response_data: Optional[bytes] = None, **kwargs: Any
) -> None:
    """
    Log an API response at debug level, truncating long bodies.

    Args:
        status_code: HTTP status code
        url: The API endpoint URL
        response_data: Optional raw response body
        **kwargs: Additional context to include in the log record
    """
    log_context = kwargs.copy()

    if response_data:
        response_str = response_data.decode("utf-8", errors="replace")
        if len(response_str) > 1000:
            response_str = response_str[:1000] + "... [truncated]"
        log_context["response"] = response_str

    log_with_context(
        logging.DEBUG,
        f"API Response: {status_code} from {url}",
        status_code=status_code,
        **log_context,
    )


def get_logger():
    """Get the ci_log_migrator logger, creating it with defaults if needed."""
    migrator_logger = logging.getLogger(LOGGER_NAME)
    if not migrator_logger.handlers:
        # If no handlers, set up a basic logger
        migrator_logger.setLevel(logging.INFO)
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(EnhancedFormatter())
        migrator_logger.addHandler(handler)
    return migrator_logger


# Module logger - will be properly initialized when setup_logger is called
logger = get_logger()
