"""
Shared logging configuration for the Eligibility Screening platform.

Every module logs through ``get_logger("eligibility.<area>")`` with key-value
events. Request and evaluation context (request id, state, program) is held
in context variables and merged into each event, and applicant financial
fields are masked before rendering.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
state_code_var: ContextVar[Optional[str]] = ContextVar('state_code', default=None)
program_id_var: ContextVar[Optional[str]] = ContextVar('program_id', default=None)

# Applicant amounts never reach the log stream
SENSITIVE_FIELDS = frozenset({
    "monthly_income_cents",
    "annual_income_cents",
    "assets_cents",
    "answers",
})
MASK = "[redacted]"


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured JSON logging for a service."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            mask_sensitive_fields,
            structlog.processors.JSONRenderer(sort_keys=True)
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
    logging.getLogger(service_name).debug("Logging configured")


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Derive the service and area from names like ``eligibility.rule_engine``."""
    logger_name = event_dict.get("logger", "")
    service, _, area = logger_name.partition(".")
    if area:
        event_dict["service"] = service
        event_dict["area"] = area
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request and evaluation context to log events."""
    for key, var in (("request_id", request_id_var),
                     ("state_code", state_code_var),
                     ("program_id", program_id_var)):
        value = var.get()
        if value and key not in event_dict:
            event_dict[key] = value
    return event_dict


def mask_sensitive_fields(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key in SENSITIVE_FIELDS.intersection(event_dict):
        event_dict[key] = MASK
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_state_context(state_code: Optional[str] = None, program_id: Optional[str] = None):
    """Set the state and program being evaluated in logging context."""
    if state_code:
        state_code_var.set(state_code.upper())
    if program_id:
        program_id_var.set(program_id)


def clear_context():
    """Clear all context variables."""
    request_id_var.set(None)
    state_code_var.set(None)
    program_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
