"""
Custom exception hierarchy for centralized error handling.
All exceptions map to appropriate HTTP status codes.
"""
from typing import Any, Dict, Iterable, Optional


class AppException(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(AppException):
    """Invalid input data."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=details,
        )


class MalformedEventError(AppException):
    """Experiment event failed schema validation."""

    def __init__(self, errors: Iterable[Dict[str, Any]]) -> None:
        super().__init__(
            message="Malformed experiment event",
            status_code=400,
            error_code="MALFORMED_EVENT",
            details={"errors": list(errors)},
        )


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, "identifier": identifier},
        )


class NoCandidatesAvailableError(AppException):
    """Candidate pool was empty after exclusion and diversity filtering."""

    def __init__(self, user_id: str, excluded: int = 0) -> None:
        super().__init__(
            message="No discoveries available",
            status_code=404,
            error_code="NO_CANDIDATES",
            details={"user_id": user_id, "excluded": excluded},
        )


class InvalidExperimentStateError(AppException):
    """Lifecycle transition not allowed from the experiment's current status."""

    def __init__(self, experiment_id: str, current: str, action: str) -> None:
        super().__init__(
            message=f"Cannot {action} experiment {experiment_id} in status '{current}'",
            status_code=409,
            error_code="INVALID_EXPERIMENT_STATE",
            details={
                "experiment_id": experiment_id,
                "status": current,
                "action": action,
            },
        )


class StoreUnavailableError(AppException):
    """Content/interaction store is unavailable."""

    def __init__(self, operation: str, reason: str = "Unknown") -> None:
        super().__init__(
            message=f"Store unavailable during {operation}: {reason}",
            status_code=503,
            error_code="STORE_UNAVAILABLE",
            details={"operation": operation, "reason": reason},
        )


class CircuitBreakerOpenError(AppException):
    """Circuit breaker is open - service calls blocked."""

    def __init__(self, service_name: str) -> None:
        super().__init__(
            message=f"Circuit breaker open for: {service_name}",
            status_code=503,
            error_code="CIRCUIT_BREAKER_OPEN",
            details={"service": service_name},
        )


class AssignmentConflictError(AppException):
    """A (user, experiment) assignment already exists in the store."""

    def __init__(self, user_id: str, experiment_id: str) -> None:
        super().__init__(
            message=f"Assignment already exists for user {user_id} in {experiment_id}",
            status_code=409,
            error_code="ASSIGNMENT_CONFLICT",
            details={"user_id": user_id, "experiment_id": experiment_id},
        )
