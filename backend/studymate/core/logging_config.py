"""Structured JSON logging.

One stdout handler on the root logger renders every record as a JSON line
through python-json-logger. Uvicorn's loggers are routed to the same handler
so access logs get the same shape (and the same token redaction filter,
installed later by ``install_token_redaction_logging``).

Records from ``security.*`` loggers (token lifecycle, rejected sessions) are
flagged with ``security: true`` so they can be alerted on separately.
"""

import logging
import sys
from typing import IO

from pythonjsonlogger import jsonlogger

from studymate.core.config import settings

SECURITY_LOGGER_PREFIX = "security."

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


class StudyMateJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding service context to every line."""

    def __init__(self):
        super().__init__(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "time", "levelname": "level", "name": "logger"},
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["service"] = settings.APP_NAME
        log_record["env"] = settings.ENVIRONMENT
        log_record.setdefault("event_type", record.name)
        if record.exc_info:
            log_record["where"] = f"{record.module}:{record.lineno}"


class SecurityLoggerTagger(logging.Filter):
    """Flag records emitted on ``security.*`` loggers."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(SECURITY_LOGGER_PREFIX):
            record.security = True
        return True


def configure_logging(level: int = logging.INFO, stream: IO[str] | None = None) -> None:
    """Install the JSON handler on the root logger. Safe to call repeatedly."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StudyMateJsonFormatter())
    handler.addFilter(SecurityLoggerTagger())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    logging.getLogger(__name__).debug(
        "JSON logging enabled", extra={"event_type": "system.logging_configured"}
    )


def security_event(
    event_type: str,
    user_id: str | None = None,
    material_id: str | None = None,
    **fields,
) -> dict:
    """``extra`` payload for a security log record.

    Usage:
        security_logger.info(
            "Download token redeemed",
            extra=security_event("download.token_redeemed", user_id=..., material_id=...),
        )
    """
    event = {"event_type": f"security.{event_type}", "security": True}
    if user_id:
        event["user_id"] = user_id
    if material_id:
        event["material_id"] = material_id
    event.update(fields)
    return event
