"""Logging configuration for coopflow.

Every module logs through ``logging.getLogger(__name__)``, so all records
flow up the ``coopflow`` logger tree. ``configure_logging`` attaches the
handlers to that tree once, from ``Settings``.

Workflow log lines name the request and actor they concern through
``extra=log_context(...)``; records without that context render ``-``.
"""

import logging
import logging.handlers
import os
from typing import Dict

from coopflow.core.config import Settings

ROOT_LOGGER = "coopflow"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
CONTEXT_FIELDS = ("request_id", "actor_id")

LOG_FORMAT = (
    "%(asctime)s [%(levelname)s] [%(name)s] "
    "[request=%(request_id)s actor=%(actor_id)s] %(message)s"
)
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class WorkflowContextFilter(logging.Filter):
    """Default missing context fields so every record formats."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, "-")
        return True


def log_context(request_id=None, actor_id=None) -> Dict[str, str]:
    """``extra`` mapping tying a log record to a request and an actor."""
    context = {}
    if request_id is not None:
        context["request_id"] = str(request_id)
    if actor_id is not None:
        context["actor_id"] = str(actor_id)
    return context


def _owned(handler: logging.Handler) -> bool:
    return any(isinstance(f, WorkflowContextFilter) for f in handler.filters)


def configure_logging(
    settings: Settings,
    *,
    console: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach handlers to the ``coopflow`` logger tree.

    Uses ``log_level``, ``file_logging`` and ``log_dir`` from settings; the
    log file is ``<log_dir>/<app_name>.log``. Handlers installed by an
    earlier call are replaced, so calling again applies new settings.

    Raises:
        ValueError: Unknown log level
    """
    level = settings.log_level.upper()
    if level not in LEVELS:
        raise ValueError(f"Invalid log level: {settings.log_level}. Must be one of: {', '.join(LEVELS)}")

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level))

    for handler in [h for h in logger.handlers if _owned(h)]:
        logger.removeHandler(handler)
        handler.close()

    handlers = []
    if settings.file_logging:
        os.makedirs(settings.log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(settings.log_dir, f"{settings.app_name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        ))
    if console:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.addFilter(WorkflowContextFilter())
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger

