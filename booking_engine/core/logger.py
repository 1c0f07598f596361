"""Structured logging with Loguru."""

import contextvars
import logging
import sys
import uuid
from contextlib import contextmanager
from pathlib import Path
from types import FrameType
from typing import Any, Dict, Iterator, Optional, Union

from loguru import logger

# Context variable for request correlation ID
correlation_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)

__all__ = [
    "correlation_id_ctx",
    "correlation_scope",
    "setup_structured_logging",
    "InterceptHandler",
]


def _correlation_patcher(record: Dict[str, Any]) -> None:
    """
    Patch log records with correlation_id from context.

    Called by Loguru for each record to inject the correlation_id from the
    ContextVar into the record's extra fields.
    """
    corr_id = correlation_id_ctx.get()
    if corr_id:
        record["extra"]["correlation_id"] = corr_id


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a correlation ID to every log record emitted inside the block.

    Nested scopes keep the outer ID unless a new one is passed explicitly.

    Args:
        correlation_id: ID to bind (generated when omitted and none is active)

    Yields:
        The active correlation ID
    """
    corr_id = correlation_id or correlation_id_ctx.get() or uuid.uuid4().hex[:16]
    token = correlation_id_ctx.set(corr_id)
    try:
        yield corr_id
    finally:
        correlation_id_ctx.reset(token)


class InterceptHandler(logging.Handler):
    """Route stdlib logging records (asyncpg, tenacity, database module) into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level: Union[str, int] = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame: Optional[FrameType] = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = True,
    logs_dir: Union[str, Path] = "logs",
    diagnose: bool = False,
) -> None:
    """
    Setup Loguru logging with structured output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format for the log file (True for production)
        logs_dir: Directory for log files
        diagnose: Include variable values in tracebacks (development only)
    """
    logger.remove()
    logger.configure(patcher=_correlation_patcher)

    logs_path = Path(logs_dir)
    logs_path.mkdir(parents=True, exist_ok=True)

    # Console handler - human readable
    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )
    logger.add(sys.stdout, format=console_format, level=level, colorize=True)

    if json_format:
        logger.add(
            logs_path / "booking_engine.jsonl",
            format="{message}",
            level=level,
            rotation="10 MB",
            retention="30 days",
            compression="zip",
            serialize=True,
        )
    else:
        logger.add(
            logs_path / "booking_engine.log",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=level,
            rotation="10 MB",
            retention="30 days",
            compression="zip",
        )

    # Error file - separate error logs
    logger.add(
        logs_path / "errors_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} - {message}",
        level="ERROR",
        rotation="10 MB",
        retention="90 days",
        backtrace=True,
        diagnose=diagnose,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    logging.root.setLevel(getattr(logging, level, logging.INFO))

    logger.info(f"Logging initialized (level={level}, json={json_format})")
