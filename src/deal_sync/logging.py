"""
Structured logging configuration for the deal sync pipeline.

Uses structlog for structured, context-aware logging with:
- JSON output for production
- Pretty console output for development
- Stage timing for sync runs
- run_id / sync_type propagation across a sync run
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator

import structlog
from structlog.types import Processor

from .config import config

# Context variables for run-scoped data
_run_id: ContextVar[str | None] = ContextVar('run_id', default=None)
_sync_type: ContextVar[str | None] = ContextVar('sync_type', default=None)


def get_run_id() -> str | None:
    """Get the current sync run ID from context."""
    return _run_id.get()


def get_sync_type() -> str | None:
    """Get the current sync type from context."""
    return _sync_type.get()


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor that adds context variables to log entries."""
    run_id = get_run_id()
    sync_type = get_sync_type()

    if run_id:
        event_dict['run_id'] = run_id
    if sync_type:
        event_dict['sync_type'] = sync_type

    return event_dict


def configure_logging(
    json_output: bool = False,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog for the application.

    Args:
        json_output: If True, output JSON logs (for production).
                    If False, output pretty console logs (for development).
        log_level: Override log level (defaults to config.LOG_LEVEL)
    """
    level = log_level or config.LOG_LEVEL
    level_num = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format='%(message)s',
        stream=sys.stdout,
        level=level_num,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_info,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


@contextmanager
def logging_context(
    run_id: str | None = None,
    sync_type: str | None = None,
) -> Generator[None, None, None]:
    """
    Context manager for setting logging context variables.

    Usage:
        with logging_context(run_id="0190...", sync_type="scheduled"):
            logger.info("sync_pipeline.started")  # Includes run_id and sync_type
    """
    old_run = _run_id.get()
    old_type = _sync_type.get()

    try:
        if run_id is not None:
            _run_id.set(run_id)
        if sync_type is not None:
            _sync_type.set(sync_type)
        yield
    finally:
        _run_id.set(old_run)
        _sync_type.set(old_type)


class PipelineTimer:
    """
    Timer for tracking pipeline stage durations.

    Usage:
        timer = PipelineTimer()
        with timer.stage("fetch"):
            # fetch sources
        with timer.stage("deduplicate"):
            # deduplicate
        print(timer.summary())
    """

    def __init__(self):
        self.stages: dict[str, float] = {}
        self.start_time: float = time.perf_counter()

    @contextmanager
    def stage(self, name: str) -> Generator[None, None, None]:
        """Time a pipeline stage."""
        stage_start = time.perf_counter()
        try:
            yield
        finally:
            self.stages[name] = (time.perf_counter() - stage_start) * 1000

    def record(self, name: str, duration_ms: float) -> None:
        """Manually record a stage duration."""
        self.stages[name] = duration_ms

    @property
    def total_ms(self) -> float:
        """Total elapsed time since timer creation in milliseconds."""
        return (time.perf_counter() - self.start_time) * 1000

    def summary(self) -> dict[str, Any]:
        """Get timing summary as a dictionary."""
        return {
            'total_ms': round(self.total_ms, 2),
            'stages': {k: round(v, 2) for k, v in self.stages.items()},
        }


# Initialize logging on module import (development mode by default)
# Production deployments should call configure_logging(json_output=True)
configure_logging(json_output=False)
