"""Core infrastructure components."""
from .cache import TTLCache
from .circuit_breaker import CircuitBreaker, CircuitState
from .exceptions import (
    AppException,
    AssignmentConflictError,
    CircuitBreakerOpenError,
    InvalidExperimentStateError,
    MalformedEventError,
    NoCandidatesAvailableError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)

__all__ = [
    "AppException",
    "AssignmentConflictError",
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "InvalidExperimentStateError",
    "MalformedEventError",
    "NoCandidatesAvailableError",
    "NotFoundError",
    "StoreUnavailableError",
    "TTLCache",
    "ValidationError",
]
