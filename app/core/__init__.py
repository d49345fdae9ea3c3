"""Core utilities: exceptions, idempotency keys, middleware."""

from app.core.exceptions import (
    AppException,
    ConflictError,
    DependencyUnavailable,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    TerminalStateError,
    ValidationError,
    VersionConflictError,
)
from app.core.idempotency import generate_idempotency_key, generate_intent_id

__all__ = [
    "AppException",
    "ConflictError",
    "DependencyUnavailable",
    "ForbiddenError",
    "InvalidTransitionError",
    "NotFoundError",
    "TerminalStateError",
    "ValidationError",
    "VersionConflictError",
    "generate_idempotency_key",
    "generate_intent_id",
]
