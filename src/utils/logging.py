"""Structured logging configuration for trendscout.

Uses structlog for structured, JSON-capable logging with job correlation.
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import structlog

# Context variable for workflow run correlation
current_job_id: ContextVar[str | None] = ContextVar("current_job_id", default=None)


def add_job_id(_logger, _method_name, event_dict):
    """Structlog processor to inject job_id into all log events."""
    job_id = current_job_id.get()
    if job_id:
        event_dict["job_id"] = job_id
    return event_dict


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, output JSON logs (for production). If False, use colored console output.
    """
    # Shared processors for both structlog and stdlib
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_job_id,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        # JSON output for production/log aggregation
        renderer = structlog.processors.JSONRenderer()
    else:
        # Colored console output for development
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure stdlib logging to use structlog formatting
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    # Suppress noisy third-party loggers
    noisy_loggers = [
        "httpx",
        "google_genai",
        "google_genai.models",
        "httpcore",
        "botocore",
        "boto3",
        "urllib3.connectionpool",
        "aiosqlite",
    ]
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


@contextmanager
def job_context(job_id: str) -> Iterator[None]:
    """Bind a run ID to log records for the duration of a block.

    Restores the previous value on exit, so nested and concurrent runs
    (each in its own task) keep their own IDs.
    """
    token = current_job_id.set(job_id)
    try:
        yield
    finally:
        current_job_id.reset(token)
