"""Structured logging for dumpvault runs.

Every CLI invocation is one *run*. ``configure_logging`` sets up structlog on
top of the standard library (stderr, so progress lines on stdout stay clean)
and binds the run context (run id, command) into contextvars, which means
loggers obtained anywhere through ``get_logger`` carry it without being passed
around.
"""

import logging
import sys
import uuid
from typing import Any, Optional

import structlog

NOISY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def new_run_id() -> str:
    """Short random id identifying one CLI run in the logs."""
    return uuid.uuid4().hex[:12]


def _renderer(log_format: str) -> list[Any]:
    if log_format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    command: Optional[str] = None,
    run_id: Optional[str] = None,
) -> structlog.BoundLogger:
    """Configure structured logging for one run.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: 'console' for humans, 'json' for log shippers
        command: CLI command being run (backup, cleanup, restore, ...)
        run_id: Id tying together the events of this run (generated if omitted)

    Returns:
        Logger bound to the run context
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # force: a second run in the same process must not keep a stale stream
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            *_renderer(log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    bind_run_context(run_id=run_id or new_run_id(), command=command)
    return structlog.get_logger("dumpvault")


def bind_run_context(**values: Any) -> None:
    """Attach key/values to every event logged for the rest of the run.

    ``None`` values are skipped.
    """
    structlog.contextvars.bind_contextvars(
        **{key: value for key, value in values.items() if value is not None}
    )


def quiet_third_party_loggers(level: int = logging.WARNING) -> None:
    """Keep the AWS SDK and HTTP stack out of DEBUG output."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name

    Returns:
        Logger instance
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
