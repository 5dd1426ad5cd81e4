"""
Logging utilities for the asset import pipeline.

Provides console logging (colorized through coloredlogs, or JSON when
LOG_FORMAT=json), an entry/exit decorator for public operations, and a
run-scoped correlation id so every line emitted by one import run can be
grouped together.

Example usage:
    >>> from asset_import.utils.logging import get_logger, log_function_call
    >>> from asset_import.utils.logging import set_correlation_id
    >>>
    >>> logger = get_logger(__name__)
    >>> set_correlation_id("run-3f2a9c")
    >>>
    >>> @log_function_call
    >>> def ensure_category(name: str) -> str:
    >>>     logger.info("Resolving category", extra={"category": name})
    >>>     return name
"""

import functools
import json
import logging
import os
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TypeVar, cast

import coloredlogs

F = TypeVar("F", bound=Callable[..., Any])

# Run id shared by every log record of one import run
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# LogRecord attributes that are not user-supplied "extra" fields
_RESERVED_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
        "asctime",
    ]
)


def get_correlation_id() -> str:
    """
    Get the current correlation id, generating one if none is set.

    Returns:
        Correlation id of the current context
    """
    corr_id = _correlation_id.get()
    if corr_id is None:
        corr_id = str(uuid.uuid4())
        _correlation_id.set(corr_id)
    return corr_id


def set_correlation_id(corr_id: str) -> None:
    """Set the correlation id for the current context (usually the run id)."""
    _correlation_id.set(corr_id)


def clear_correlation_id() -> None:
    """Clear correlation id for current context."""
    _correlation_id.set(None)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Example output:
        {
            "timestamp": "2026-10-19T10:30:15.123456+00:00",
            "level": "WARNING",
            "logger": "asset_import.importer.orchestrator",
            "message": "Skipping file without category",
            "correlation_id": "run-3f2a9c",
            "extra": {"path": "/assets/chair.glb"}
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        log_data["environment"] = {
            "hostname": os.getenv("HOSTNAME", "unknown"),
            "pod_name": os.getenv("POD_NAME", ""),
        }

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", enable_colors: bool = True) -> None:
    """
    Configure the root logger for the pipeline.

    Uses JSON output when the LOG_FORMAT environment variable is "json",
    colorized text through coloredlogs otherwise.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_colors: Use coloredlogs for text output

    Example:
        >>> setup_logging(level="DEBUG")
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    json_output = os.getenv("LOG_FORMAT", "text").lower() == "json"

    if json_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(console_handler)
    elif enable_colors:
        coloredlogs.install(
            level=log_level,
            fmt=LOG_FORMAT,
            datefmt=LOG_DATE_FORMAT,
            logger=root_logger,
        )
    else:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(
            logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        )
        root_logger.addHandler(console_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_function_call(func: F) -> F:
    """
    Decorator that logs function entry and exit at DEBUG level.

    Exceptions are logged with their type and message and re-raised
    unchanged, so decorated operations keep their error contract.

    Example:
        >>> @log_function_call
        >>> def register(descriptor) -> Registration:
        >>>     ...
        >>>
        >>> # DEBUG - ENTER register(descriptor=ResourceDescriptor(...))
        >>> # DEBUG - EXIT register -> Registration(...) (0.004s)
    """
    logger = get_logger(func.__module__)

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        correlation_id = get_correlation_id()

        arg_names = func.__code__.co_varnames[: func.__code__.co_argcount]
        args_repr = [
            f"{name}={value!r}"
            for name, value in zip(arg_names, args)
            if name != "self"
        ]
        kwargs_repr = [f"{key}={value!r}" for key, value in kwargs.items()]
        all_args = ", ".join(args_repr + kwargs_repr)

        logger.debug(
            f"ENTER {func.__qualname__}({all_args})",
            extra={
                "function": func.__qualname__,
                "correlation_id": correlation_id,
                "event": "function_entry",
            },
        )

        start_time = datetime.now()

        try:
            result = func(*args, **kwargs)
        except Exception as error:
            execution_time = (datetime.now() - start_time).total_seconds()
            logger.debug(
                f"ERROR {func.__qualname__} raised {type(error).__name__}: {error}",
                extra={
                    "function": func.__qualname__,
                    "duration_seconds": execution_time,
                    "correlation_id": correlation_id,
                    "event": "function_error",
                    "error_type": type(error).__name__,
                },
            )
            raise

        execution_time = (datetime.now() - start_time).total_seconds()
        logger.debug(
            f"EXIT {func.__qualname__} -> {result!r} ({execution_time:.3f}s)",
            extra={
                "function": func.__qualname__,
                "duration_seconds": execution_time,
                "correlation_id": correlation_id,
                "event": "function_exit",
            },
        )

        return result

    return cast(F, wrapper)
