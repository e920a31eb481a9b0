"""
Shared error handling for the Eligibility Screening platform.
"""

from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class EligibilityException(Exception):
    """Base exception for eligibility services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(EligibilityException):
    """Validation-related errors."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class MalformedExpression(EligibilityException):
    """Rule or condition text that cannot be parsed."""

    status_code = 422

    def __init__(self, message: str, expression: Optional[str] = None, position: Optional[int] = None):
        details: Dict[str, Any] = {}
        if expression is not None:
            details["expression"] = expression
        if position is not None:
            details["position"] = position
        super().__init__("MALFORMED_EXPRESSION", message, details)
        self.expression = expression
        self.position = position


class ReferenceIntegrityError(EligibilityException):
    """A definition references a rule, question or program that does not exist."""

    status_code = 422

    def __init__(self, problems: List[Dict[str, Any]], message: str = "Reference integrity check failed"):
        super().__init__("REFERENCE_INTEGRITY_ERROR", message, {"problems": problems})
        self.problems = problems


class CircularDependencyError(EligibilityException):
    """Visibility rules depend on themselves, directly or transitively."""

    status_code = 422

    def __init__(self, question_ids: List[str], message: str = "Circular conditional rules detected."):
        super().__init__("CIRCULAR_DEPENDENCY", message, {"question_ids": question_ids})
        self.question_ids = question_ids


class ReferenceDataMissing(EligibilityException):
    """Reference data (e.g. an FPL row) required for a computation is absent."""

    status_code = 422

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("REFERENCE_DATA_MISSING", message, details)


class NoActiveRule(EligibilityException):
    """A program has no rule version active at the requested instant."""

    status_code = 404

    def __init__(self, state_code: str, program_id: str, as_of: Optional[str] = None):
        super().__init__(
            "NO_ACTIVE_RULE",
            f"No active rule for program '{program_id}' in {state_code}",
            {"state_code": state_code, "program_id": program_id, "as_of": as_of}
        )
        self.state_code = state_code
        self.program_id = program_id


class NotFoundError(EligibilityException):
    """Requested resource does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ServiceError(EligibilityException):
    """Service-related errors."""

    status_code = 503

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)
