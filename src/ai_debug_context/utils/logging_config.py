import contextvars
import json
import logging
import sys
import time
import traceback
import uuid
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

from .config_types import Settings

F = TypeVar("F", bound=Callable[..., Any])

# Context variables attached to every structured record
correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)
operation_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "operation", default=None
)


def set_correlation_id(cid: Optional[str] = None) -> str:
    """
    Sets a correlation ID for the current context.

    One ID is set per analysis run so that every record emitted while parsing,
    classifying and generating fixes for that run can be grouped together.

    Args:
        cid: The correlation ID to set. A new one is generated if omitted.

    Returns:
        The correlation ID that was set.
    """
    if cid is None:
        cid = f"run_{uuid.uuid4()}"
    correlation_id_var.set(cid)
    return cid


class JsonFormatter(logging.Formatter):
    """JSON formatter that carries the run correlation ID and operation name."""

    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "correlation_id": correlation_id_var.get(),
            "operation": operation_var.get(),
        }

        if record.exc_info:
            log_record["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            )

        # Extra data passed as extra={"extra_data": {...}}
        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, dict):
            log_record.update(extra_data)

        return json.dumps(log_record, default=str)


def log_performance(
    operation_name: Optional[str] = None,
    min_duration_ms: float = 0.0,
) -> Callable[[F], F]:
    """
    Decorator to log function execution time.

    Args:
        operation_name: Name of the operation (defaults to function name)
        min_duration_ms: Minimum duration in ms to log (filters out fast operations)
    """

    def decorator(func: F) -> F:
        op_name = operation_name or f"{func.__module__}.{func.__name__}"
        logger = logging.getLogger(func.__module__)

        def _report(start_time: float, error: Optional[BaseException]) -> None:
            duration_ms = (time.time() - start_time) * 1000
            data = {"operation": op_name, "duration_ms": round(duration_ms, 2)}
            if error is not None:
                data.update(success=False, error_type=type(error).__name__)
                logger.debug(f"Failed {op_name}", extra={"extra_data": data})
            elif duration_ms >= min_duration_ms:
                data["success"] = True
                logger.debug(f"Completed {op_name}", extra={"extra_data": data})

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            token = operation_var.set(op_name)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _report(start_time, e)
                raise
            finally:
                operation_var.reset(token)
            _report(start_time, None)
            return result

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            token = operation_var.set(op_name)
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _report(start_time, e)
                raise
            finally:
                operation_var.reset(token)
            _report(start_time, None)
            return result

        if hasattr(func, "__code__") and func.__code__.co_flags & 0x80:  # CO_COROUTINE
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator


def configure_logging(
    settings: Settings,
    log_file: Optional[str] = None,
    structured: Optional[bool] = None,
    log_level_override: Optional[str] = None,
    module_levels: Optional[Dict[str, str]] = None,
    log_rotation_config: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Configure the root logger from settings.

    Args:
        settings: Application settings.
        log_file: Optional path to a log file (defaults to ``settings.log_file``).
        structured: If True, logs will be in JSON format
            (defaults to ``settings.structured_logging``).
        log_level_override: Optional log level string to override settings.
        module_levels: Dictionary of module names to log levels.
        log_rotation_config: Configuration for log rotation (maxBytes, backupCount).
    """
    level_str = (log_level_override or settings.log_level or "INFO").upper()
    log_level = getattr(logging, level_str, logging.INFO)
    log_file = log_file or settings.log_file
    if structured is None:
        structured = settings.structured_logging

    rotation_config = log_rotation_config or {}
    max_bytes = rotation_config.get("maxBytes", 10 * 1024 * 1024)  # 10MB
    backup_count = rotation_config.get("backupCount", 5)

    if structured:
        console_formatter: logging.Formatter = JsonFormatter()
        file_formatter: logging.Formatter = JsonFormatter()
    else:
        console_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"
        )
        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - [%(levelname)s] - %(filename)s:%(lineno)d - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicate logs
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stdout carries command output, so diagnostics go to stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count
        )
        file_handler.setFormatter(file_formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    if module_levels:
        for module_name, level_name in module_levels.items():
            logging.getLogger(module_name).setLevel(
                getattr(logging, level_name.upper(), logging.INFO)
            )

    logging.getLogger(__name__).debug(
        "Logging configured",
        extra={
            "extra_data": {
                "level": logging.getLevelName(log_level),
                "structured": structured,
                "file_logging": log_file is not None,
            }
        },
    )
