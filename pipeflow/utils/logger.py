"""
Logging utilities for Pipeflow.

Pipeflow logs through loguru. Standard library loggers (uvicorn, SQLAlchemy,
httpx) are intercepted and routed to the same sinks.

Log lines emitted while a pipeline runs carry the task they belong to:

    log = task_logger(task_id, step=2)
    log.info("Provider returned")
"""

import inspect
import logging
import sys
from pathlib import Path

from loguru import logger as _logger

from ..settings import settings

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<magenta>{extra[context]}</magenta> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Redirect standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where the logged message originated
        frame, depth = inspect.currentframe(), 0
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _render_context(record) -> None:
    """Collapse bound task/step ids into the ``context`` field used by the format."""
    extra = record["extra"]
    parts = [f"{key}={extra[key]}" for key in ("task", "step") if key in extra]
    extra["context"] = " ".join(parts) or "-"


def setup_logging(
    level: str = "INFO",
    format: str | None = None,
    log_to_file: bool = False,
    log_file: str | Path | None = None,
    rotation: str = "20 MB",
    retention: str = "1 week",
    serialize: bool = False,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Minimum log level to capture
        format: Log message format string; may use ``{extra[context]}``
        log_to_file: Whether to log to a file in addition to console
        log_file: Path to log file
        rotation: When to rotate log files (size or time)
        retention: How long to keep log files
        serialize: Write the file sink as JSON lines, task ids included
    """
    format = format or DEFAULT_FORMAT

    _logger.remove()
    _logger.configure(patcher=_render_context)

    _logger.add(sys.stderr, level=level, format=format, colorize=True, backtrace=True)

    if log_to_file and log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        _logger.add(
            str(log_path),
            level=level,
            format=format,
            rotation=rotation,
            retention=retention,
            compression="zip",
            serialize=serialize,
            backtrace=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for log_name in ["uvicorn", "uvicorn.error", "fastapi", "sqlalchemy", "httpx"]:
        logging.getLogger(log_name).handlers = [InterceptHandler()]


def task_logger(task_id: str, step: int | None = None):
    """Logger bound to a task, and optionally to a 1-based step number."""
    if step is None:
        return _logger.bind(task=task_id)
    return _logger.bind(task=task_id, step=step)


setup_logging(
    level=settings.log_level,
    format=settings.log_format,
    log_to_file=settings.log_to_file,
    log_file=settings.get_log_dir() / "pipeflow.log" if settings.log_to_file else None,
    rotation=settings.log_rotation,
    retention=settings.log_retention,
    serialize=settings.log_serialize,
)

logger = _logger
