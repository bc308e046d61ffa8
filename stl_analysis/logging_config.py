"""
Structured logging for the stl_analysis package.

Provides:
- JSON formatter (one object per line) for log collectors
- Console formatter for humans
- Timing helpers (context manager and decorator)
- LogContext to stamp fields such as the upload name onto every record

Usage:
    from stl_analysis.logging_config import setup_logging, get_logger

    setup_logging(level=logging.INFO, json_file="analysis.log.json")

    logger = get_logger(__name__)
    logger.info("Mesh decoded", extra={"file": "part.stl", "faces": 1204})
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar, Union

F = TypeVar('F', bound=Callable[..., Any])

PACKAGE_LOGGER = "stl_analysis"

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_KEYS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'taskName', 'message', 'asctime',
})


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_KEYS}


class JSONFormatter(logging.Formatter):
    """Format records as single-line JSON.

    Output format:
        {"timestamp": "...", "level": "INFO", "logger": "...", "message": "...", ...}
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.levelno >= logging.WARNING or record.levelno <= logging.DEBUG:
            entry["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            for key, value in _extra_fields(record).items():
                try:
                    json.dumps(value)
                    entry[key] = value
                except (TypeError, ValueError):
                    entry[key] = str(value)

        return json.dumps(entry, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter.

    Format: [TIME] LEVEL logger: message [key=value, ...]
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True, show_extra: bool = True):
        super().__init__()
        self.use_colors = use_colors
        self.show_extra = show_extra

    @staticmethod
    def _format_value(key: str, value: Any) -> str:
        if isinstance(value, float):
            return f"{key}={value:.6g}"
        if isinstance(value, (list, tuple)) and len(value) > 3:
            return f"{key}=[...{len(value)} items]"
        return f"{key}={value}"

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level_str = f"{self.COLORS[level]}{level:8}{self.RESET}"
        else:
            level_str = f"{level:8}"

        name = record.name
        if name.startswith(PACKAGE_LOGGER + "."):
            name = name[len(PACKAGE_LOGGER) + 1:]

        extra_str = ""
        if self.show_extra:
            extras = [self._format_value(k, v) for k, v in _extra_fields(record).items()]
            if extras:
                extra_str = " [" + ", ".join(extras) + "]"

        result = f"[{time_str}] {level_str} {name}: {record.getMessage()}{extra_str}"

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result


def _handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: int = logging.INFO,
    json_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    use_colors: bool = True,
    root_logger: bool = False,
) -> logging.Logger:
    """Configure handlers for the package logger.

    Previous handlers are closed first, so calling this again (e.g. once
    the config file has been read) does not duplicate output.

    Args:
        level: Minimum log level
        json_file: Optional path of a JSON-lines log file
        console: Log to stderr
        use_colors: ANSI colours on the console
        root_logger: Configure the root logger instead of stl_analysis

    Returns:
        The configured logger
    """
    logger = logging.getLogger("" if root_logger else PACKAGE_LOGGER)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    handlers: List[logging.Handler] = []
    if console:
        handlers.append(_handler(
            logging.StreamHandler(sys.stderr), level, ConsoleFormatter(use_colors=use_colors),
        ))
    if json_file:
        handlers.append(_handler(
            logging.FileHandler(Path(json_file), encoding='utf-8'), level, JSONFormatter(),
        ))

    logger.setLevel(level)
    for handler in handlers:
        logger.addHandler(handler)
    logger.propagate = root_logger
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (pass __name__)."""
    return logging.getLogger(name)


@contextmanager
def log_timing(
    logger: logging.Logger,
    operation: str,
    level: int = logging.DEBUG,
    **extra_fields: Any
) -> Iterator[Dict[str, Any]]:
    """Log start, completion and failure of an operation with elapsed time.

    The yielded dict can be filled with values that are attached to the
    completion record.

    Example:
        with log_timing(logger, "Decoding STL", file=name) as info:
            mesh = decode_stl(data)
            info["faces"] = mesh.n_faces
    """
    fields = dict(extra_fields, operation=operation)
    results: Dict[str, Any] = {}
    started = time.perf_counter()

    logger.log(level, "Starting: %s", operation, extra=dict(fields, event="start"))
    try:
        yield results
    except Exception as exc:
        elapsed = time.perf_counter() - started
        logger.error(
            "Failed: %s (%.3fs) - %s", operation, elapsed, exc,
            extra=dict(fields, event="error", elapsed_seconds=elapsed, error=str(exc)),
        )
        raise

    results['elapsed_seconds'] = time.perf_counter() - started
    logger.log(
        level, "Completed: %s (%.3fs)", operation, results['elapsed_seconds'],
        extra=dict(fields, event="complete", **results),
    )


def timed(
    logger: Optional[logging.Logger] = None,
    level: int = logging.DEBUG,
    operation: Optional[str] = None,
) -> Callable[[F], F]:
    """Decorator form of log_timing.

    Uses the decorated function's module logger and name by default.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            func_logger = logger or logging.getLogger(func.__module__)
            with log_timing(func_logger, operation or func.__name__, level):
                return func(*args, **kwargs)

        return wrapper  # type: ignore
    return decorator


class _ContextFilter(logging.Filter):
    def __init__(self, fields: Dict[str, Any]):
        super().__init__()
        self.fields = fields

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.fields.items():
            setattr(record, key, value)
        return True


class LogContext:
    """Attach fields to every record emitted through the package handlers.

    Logger filters only see records logged on that exact logger, so the
    filter is installed on the handlers, which also see records propagated
    from child loggers.

    Example:
        with LogContext(upload="bracket.stl"):
            analyze_file(path)  # every record carries upload=...
    """

    _current: Optional['LogContext'] = None

    def __init__(self, **fields: Any):
        self.fields = fields
        self._previous: Optional['LogContext'] = None
        self._filter = _ContextFilter(fields)
        self._handlers: List[logging.Handler] = []

    def __enter__(self) -> 'LogContext':
        self._previous = LogContext._current
        LogContext._current = self

        self._handlers = list(logging.getLogger(PACKAGE_LOGGER).handlers)
        for handler in self._handlers:
            handler.addFilter(self._filter)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        for handler in self._handlers:
            handler.removeFilter(self._filter)
        self._handlers = []
        LogContext._current = self._previous

    @classmethod
    def current(cls) -> Optional['LogContext']:
        return cls._current


def configure_default_logging(verbose: bool = False) -> logging.Logger:
    """Console logging at INFO, or DEBUG when verbose."""
    level = logging.DEBUG if verbose else logging.INFO
    return setup_logging(level=level, console=True, use_colors=True)
