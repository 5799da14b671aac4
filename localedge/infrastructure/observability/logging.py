"""
Structured logging for the LocalEdge API and worker.

JSON lines on stdout, with request-scoped context merged from contextvars.
Customer phone numbers are masked before rendering; only the last four digits
survive so support can still correlate a call or text with a customer.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

SERVICE_NAME = "localedge-api"

# Event keys that carry customer phone numbers
PHONE_FIELDS = frozenset({"caller", "caller_phone", "to_number", "phone", "phone_number"})

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "twilio.http_client")


def setup_logging(log_level: str = "INFO") -> None:
    """Configure structlog and the stdlib root logger it writes through."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_context,
            mask_phone_numbers,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _add_service_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def mask_phone(value: str) -> str:
    digits = [ch for ch in value if ch.isdigit()]
    if len(digits) <= 4:
        return "***"
    return "***" + "".join(digits[-4:])


def mask_phone_numbers(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in PHONE_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and value:
            event_dict[key] = mask_phone(value)
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_health_check(service: str, healthy: bool, latency_ms: float, error: str = None):
    """Log one dependency check from /health."""
    fields = {"component": service, "healthy": healthy, "latency_ms": latency_ms}
    if error:
        fields["error"] = error

    logger = get_logger("health")
    if healthy:
        logger.info("Health check passed", **fields)
    else:
        logger.error("Health check failed", **fields)


def log_request(
    method: str, path: str, status_code: int, duration_ms: float, request_id: str = None
):
    """Access log line; 4xx and 5xx go out as warnings."""
    fields = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
    }
    if request_id:
        fields["request_id"] = request_id

    logger = get_logger("http")
    if status_code >= 400:
        logger.warning("HTTP request failed", **fields)
    else:
        logger.info("HTTP request completed", **fields)
