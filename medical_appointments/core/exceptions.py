"""Custom application exceptions."""

from datetime import UTC, datetime
from typing import Any


class AppException(Exception):
    """Base application exception."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        self.timestamp = datetime.now(UTC)
        super().__init__(self.message)

    def details(self) -> dict[str, Any]:
        """Error-specific fields added to the response body."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the exception for structured logs and error bodies."""
        return {
            "statusCode": self.status_code,
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            **self.details(),
        }


class ValidationError(AppException):
    """Input failed a business validation rule."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation error",
        field: str | None = None,
        constraints: list[str] | None = None,
    ):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)
        self.field = field
        self.constraints = constraints or []

    def details(self) -> dict[str, Any]:
        return {"field": self.field, "constraints": self.constraints}


class NotFoundError(AppException):
    """Resource not found exception."""

    code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str):
        """Initialize with 404 status code."""
        super().__init__(f"{resource_type} with ID '{resource_id}' not found", status_code=404)
        self.resource_type = resource_type
        self.resource_id = resource_id

    def details(self) -> dict[str, Any]:
        return {"resourceType": self.resource_type, "resourceId": self.resource_id}


class BusinessRuleViolation(AppException):
    """An operation broke a domain rule."""

    code = "BUSINESS_RULE_VIOLATION"

    def __init__(self, rule_name: str, message: str):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)
        self.rule_name = rule_name

    def details(self) -> dict[str, Any]:
        return {"ruleName": self.rule_name}


class InvalidStateTransition(BusinessRuleViolation):
    """Status change outside the transition table."""

    def __init__(self, current: str, target: str, allowed: list[str]):
        allowed_text = ", ".join(allowed) or "none"
        super().__init__(
            "InvalidStateTransition",
            f"Cannot change status from '{current}' to '{target}'. "
            f"Allowed transitions: {allowed_text}",
        )
        self.current = current
        self.target = target


class MisroutedMessageError(BusinessRuleViolation):
    """A country queue received a message for another country."""

    def __init__(self, expected: str, received: str, appointment_id: str | None = None):
        super().__init__(
            "CountryMismatch",
            f"Processor for '{expected}' received appointment "
            f"'{appointment_id}' for country '{received}'",
        )
        self.expected = expected
        self.received = received
        self.appointment_id = appointment_id


class InfrastructureError(AppException):
    """A store or the messaging layer is unavailable."""

    code = "INFRASTRUCTURE_ERROR"

    def __init__(self, service: str, message: str, original_error: Exception | None = None):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)
        self.service = service
        self.original_error = original_error

    def details(self) -> dict[str, Any]:
        return {"service": self.service}
