"""
Structured logging for the Restaurant Directory.

Events are rendered as one JSON object per line on stdout. Every event
carries the service name given to ``configure_logging`` and, while a
request is being handled, the request id bound by ``request_context``.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class ServiceContext:
    """Processor stamping every event with the owning service."""

    def __init__(self, service_name: str):
        self.service_name = service_name

    def __call__(self, logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", self.service_name)
        return event_dict


def add_request_id(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the id of the request being served, if any."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def configure_logging(service_name: str, log_level: str = "info", timestamp_format: str = "iso") -> None:
    """Configure structlog and the stdlib root logger for a service.

    ``timestamp_format`` is passed to ``structlog.processors.TimeStamper``:
    ``"iso"`` for ISO-8601 UTC, ``None`` for epoch seconds.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt=timestamp_format, utc=True),
            ServiceContext(service_name),
            add_request_id,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(level)


@contextmanager
def request_context(request_id: Optional[str] = None) -> Iterator[str]:
    """Bind a request id for the duration of the block.

    A missing id is generated. The previous binding is restored on exit.
    """
    request_id = request_id or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_var.reset(token)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, conventionally named ``<service>.<component>``."""
    return structlog.get_logger(name)
