"""JSON logging for the router process."""

import json
import logging
import sys
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, TextIO

from cdc_router import __version__
from cdc_router.common.config import get_settings

if TYPE_CHECKING:
    from cdc_router.routing.envelope import ChangeEvent

SERVICE_NAME = "cdc-router"

# Client libraries that log every reconnect and metadata refresh at INFO
NOISY_LOGGERS = ("kafka", "urllib3")


class JSONFormatter(logging.Formatter):
    """
    Renders each record as one JSON line.

    Every line carries the service name and version so router logs can be
    told apart once shipped alongside the connector's. Structured fields
    passed as ``extra={"extra": {...}}`` are merged into the top level.
    """

    def __init__(self, service: str = SERVICE_NAME, version: str = __version__) -> None:
        super().__init__()
        self.service = service
        self.version = version

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "service": self.service,
            "version": self.version,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            for key, value in fields.items():
                log_data.setdefault(key, value)

        return json.dumps(log_data, default=str)


def event_fields(event: "ChangeEvent") -> Dict[str, Any]:
    """
    Structured log fields identifying a change event and its source position.

    Args:
        event: Parsed change event

    Returns:
        Mapping suitable for ``extra={"extra": ...}``
    """
    return {
        "source_topic": event.source_topic,
        "database": event.database,
        "table": event.table,
        "operation": event.operation.value,
        "partition": event.partition,
        "offset": event.offset,
    }


def setup_logging(
    log_level: Optional[str] = None,
    stream: Optional[TextIO] = None,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> logging.Handler:
    """
    Route all logging through a single JSON handler.

    Args:
        log_level: Logging level name. Defaults to ``APP`` settings; unknown
            names fall back to INFO
        stream: Output stream (stdout by default)
        quiet_loggers: Loggers capped at WARNING

    Returns:
        The installed handler
    """
    if log_level is None:
        log_level = get_settings().app.log_level
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler


def get_logger(name: str) -> logging.Logger:
    """Return the module logger for ``name``."""
    return logging.getLogger(name)
