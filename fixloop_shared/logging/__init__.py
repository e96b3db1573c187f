"""Centralized logging for fixloop.

Implements LoggerProtocol on top of structlog. Every component receives a
logger through its constructor and binds its own component name.

Usage:
    from fixloop_shared.logging import configure_logging, create_logger

    configure_logging("INFO", json_output=False)
    logger = create_logger("supervisor", run_id="run-1")
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Generator, Optional

import structlog

from fixloop_protocols import LoggerProtocol

# Module state
_CONFIGURED = False

# Context variables for run-scoped data
_current_run_id: ContextVar[Optional[str]] = ContextVar(
    "current_run_id",
    default=None
)

_current_logger: ContextVar[Optional[LoggerProtocol]] = ContextVar(
    "current_logger",
    default=None
)


class Logger:
    """LoggerProtocol implementation backed by structlog."""

    def __init__(
        self,
        base_logger: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize logger.

        Args:
            base_logger: Underlying structlog logger (created if None)
            context: Bound context fields
        """
        self._logger = base_logger or structlog.get_logger()
        self._context = context or {}

        if self._context:
            self._logger = self._logger.bind(**self._context)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._logger.debug(msg, **kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._logger.info(msg, **kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._logger.warning(msg, **kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._logger.error(msg, **kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._logger.exception(msg, **kwargs)

    def bind(self, **kwargs: Any) -> "Logger":
        """Create child logger with additional context."""
        return Logger(
            base_logger=structlog.get_logger(),
            context={**self._context, **kwargs},
        )

    @property
    def context(self) -> Dict[str, Any]:
        return dict(self._context)


def configure_logging(
    level: str = "INFO",
    *,
    json_output: bool = True,
    component_levels: Optional[Dict[str, str]] = None,
) -> None:
    """Configure logging for the process.

    Call ONCE at application startup; later calls are no-ops.

    Args:
        level: Default log level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, output JSON; if False, console format
        component_levels: Override levels for specific stdlib loggers
    """
    global _CONFIGURED

    if _CONFIGURED:
        return

    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=sys.stdout,
    )

    # Silence noisy libraries
    for noisy in ["httpx", "httpcore"]:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    overrides = {
        "tool": os.environ.get("TOOL_LOG_LEVEL", "").upper() or level.upper(),
    }
    if component_levels:
        overrides.update(component_levels)

    for component, comp_level in overrides.items():
        logging.getLogger(component).setLevel(
            getattr(logging, comp_level.upper(), log_level)
        )

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    if json_output:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True


def create_logger(
    component: str,
    **context: Any,
) -> LoggerProtocol:
    """Create a logger for dependency injection.

    Args:
        component: Component name (e.g., "supervisor", "github_client")
        **context: Additional context to bind
    """
    return Logger(context={"component": component, **context})


def get_current_logger() -> LoggerProtocol:
    """Get the context-bound logger, or a default one."""
    logger = _current_logger.get()
    if logger is None:
        return Logger()
    return logger


def set_current_logger(logger: LoggerProtocol) -> None:
    _current_logger.set(logger)


def get_current_run_id() -> Optional[str]:
    return _current_run_id.get()


@contextmanager
def run_scope(
    run_id: str,
    logger: LoggerProtocol,
) -> Generator[LoggerProtocol, None, None]:
    """Bind a run id and logger for the duration of a run.

    Also binds ``run_id`` into structlog's contextvars so every log line
    emitted inside the scope carries it.

    Yields:
        The logger bound to the run id
    """
    bound = logger.bind(run_id=run_id)
    token_run = _current_run_id.set(run_id)
    token_log = _current_logger.set(bound)
    tokens = structlog.contextvars.bind_contextvars(run_id=run_id)

    try:
        yield bound
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
        _current_run_id.reset(token_run)
        _current_logger.reset(token_log)


__all__ = [
    # Configuration
    "configure_logging",
    # Logger creation
    "create_logger",
    # Types
    "Logger",
    # Context
    "get_current_logger",
    "set_current_logger",
    "get_current_run_id",
    "run_scope",
]
