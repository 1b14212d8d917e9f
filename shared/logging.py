"""
Shared logging configuration for the GitHub Backend API.
"""

import sys
import structlog
import logging
import uuid
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context variables for correlation IDs
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
auth_method_var: ContextVar[Optional[str]] = ContextVar('auth_method', default=None)

REDACTED = "[REDACTED]"
SECRET_QUERY_PARAMS = frozenset({"password", "api_key"})


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to log events."""
    # Logger names are "<service>.<component>"
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".")[0]

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add correlation context to log events."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    auth_method = auth_method_var.get()
    if auth_method:
        event_dict["auth_method"] = auth_method

    return event_dict


def redact_query(params: Any) -> Dict[str, str]:
    """Copy query parameters for logging with credential values masked."""
    return {
        key: (REDACTED if key in SECRET_QUERY_PARAMS else value)
        for key, value in params.items()
    }


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_auth_method(auth_method: Optional[str]) -> None:
    auth_method_var.set(auth_method)


def clear_context():
    """Clear all context variables."""
    request_id_var.set(None)
    auth_method_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
