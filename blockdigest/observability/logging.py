"""Logging configuration for blockdigest.

blockdigest logs through loguru. The library is disabled on import; a process
entry point (coordinator, worker service or submitter) turns it on with
``setup_logging``. Console output goes through rich, file output is rotated
and gzipped by loguru.

Example:
    from blockdigest.observability.logging import LogConfig, setup_logging

    handler_ids = setup_logging(LogConfig(level="DEBUG", file="digest.log"))
    ...
    teardown_logging(handler_ids)
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, TextIO

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]

LIBRARY_NAME = "blockdigest"

_CONTEXT_KEYS = ("component", "actor", "worker_id", "node_id")

CONSOLE_FORMAT = "{message}{extra[_ctx]}"

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line}{extra[_ctx]} - {message}"
)


def _format_context(record: Any) -> str:
    extra = record.get("extra", {})
    parts = [f"{k}={extra[k]}" for k in _CONTEXT_KEYS if k in extra]
    return f" [{' '.join(parts)}]" if parts else ""


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Logging configuration for a blockdigest process.

    Attributes:
        level: Minimum console log level.
        file: Path to a log file. None disables file output.
        console: Whether to log to stderr through rich.
        rotation: File rotation policy (e.g. "50 MB", "1 day").
        retention: Number of rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10


def _console_sink(stream: TextIO) -> RichHandler:
    return RichHandler(
        console=Console(file=stream),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )


def setup_logging(config: LogConfig, *, stream: TextIO | None = None) -> list[int]:
    """Enable blockdigest logging and return handler IDs for cleanup."""
    # Drop loguru's unfiltered default stderr handler
    logger.remove()
    logger.enable(LIBRARY_NAME)
    logger.configure(patcher=lambda r: r["extra"].update(_ctx=_format_context(r)))

    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(logger.add(
            _console_sink(stream or sys.stderr),
            level=config.level,
            format=CONSOLE_FORMAT,
            filter=LIBRARY_NAME,
        ))

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        # File sink always captures everything
        handler_ids.append(logger.add(
            config.file,
            level="DEBUG",
            format=FILE_FORMAT,
            rotation=config.rotation,
            retention=config.retention,
            compression="gz",
            filter=LIBRARY_NAME,
            diagnose=False,
        ))

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable(LIBRARY_NAME)
