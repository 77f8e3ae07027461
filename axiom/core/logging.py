"""
Rich-based logging system
"""
import logging
from typing import Optional
from pathlib import Path

from rich.logging import RichHandler
from rich.console import Console
from rich.traceback import install as install_traceback


# Streams are resolved at write time so redirected stdout/stderr are honoured
_stdout_console = Console()
_stderr_console = Console(stderr=True)

install_traceback(show_locals=False, width=120)

# Supervisor work happens on the worker and monitor threads; keep their names
_FILE_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"
_TIME_FORMAT = "%H:%M:%S"


def _console_handler(level: int, rich_tracebacks: bool) -> logging.Handler:
    handler = RichHandler(
        console=_stderr_console,
        show_time=True,
        show_path=False,
        log_time_format=_TIME_FORMAT,
        rich_tracebacks=rich_tracebacks,
        markup=False,
    )
    handler.setLevel(level)
    return handler


def _file_handler(log_file: Path, level: int) -> logging.Handler:
    log_file = Path(log_file).expanduser()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    rich_tracebacks: bool = True,
) -> None:
    """
    Route all loggers to stderr through Rich, and optionally to a file.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        rich_tracebacks: Render exceptions with Rich
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(_console_handler(log_level, rich_tracebacks))
    if log_file:
        root_logger.addHandler(_file_handler(log_file, log_level))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_stdout_console() -> Console:
    """Console for user-facing output (tables, event lines)"""
    return _stdout_console


def get_stderr_console() -> Console:
    """Console for errors and log records"""
    return _stderr_console
