"""Logging setup shared by the CLI, the web API and the scheduler."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

import structlog


_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]

# Chatty at INFO: one line per HTTP request or scheduler firing.
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "watchfiles", "uvicorn.access")


def _build_handlers(log_file: Optional[Union[str, Path]]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    return handlers


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Union[str, Path]] = None,
    quiet: Iterable[str] = QUIET_LOGGERS,
) -> None:
    """Initialise structlog on top of stdlib logging.

    Parameters
    ----------
    level:
        Textual logging level (e.g. ``"DEBUG"``). Defaults to ``"INFO"``.
    json_output:
        Emit one JSON object per line instead of the coloured console format.
    log_file:
        Optional path that receives a copy of every log line.
    quiet:
        Library loggers held at WARNING unless ``level`` is DEBUG. uvicorn is
        started without its own log config, so its records land here too.
    """

    level = level.upper()
    logging.basicConfig(level=level, format="%(message)s", handlers=_build_handlers(log_file), force=True)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[*_SHARED_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    library_level = logging.INFO if level == "DEBUG" else logging.WARNING
    for logger_name in quiet:
        logging.getLogger(logger_name).setLevel(library_level)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
