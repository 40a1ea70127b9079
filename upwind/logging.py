from __future__ import annotations

import logging as py_logging
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

from upwind.config import LoggingConfig, app_config

_configured = False


def _renderer(config: LoggingConfig):
    if config.json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure structlog once per process; later calls are no-ops."""

    global _configured
    if _configured:
        return

    config = config or app_config.logging
    level = getattr(py_logging, str(config.level).upper(), py_logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(config),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    py_logging.basicConfig(level=level)
    _configured = True


def get_logger(name: str = __name__):
    if not _configured:
        setup_logging()
    return structlog.get_logger(name)


@contextmanager
def trace(**fields: object) -> Iterator[str]:
    """Bind a trace id (plus any extra fields) to every log line in the block."""

    trace_id = str(fields.pop("trace_id", None) or uuid.uuid4().hex)
    with structlog.contextvars.bound_contextvars(trace_id=trace_id, **fields):
        yield trace_id
