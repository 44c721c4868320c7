"""
Typed failures raised by the evaluation engine.

Every public operation either returns a value or raises one of these.
Callers (controllers, report renderers, management commands) map
`error_code` to user-facing messages.
"""
from typing import Any, Dict, Optional


class EvaluationEngineError(Exception):
    """Base error for the evaluation engine"""

    error_code = "ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.extra = extra or {}

    def as_dict(self) -> Dict[str, Any]:
        return {"error_code": self.error_code, "message": self.message, **self.extra}


class ValidationError(EvaluationEngineError):
    """Malformed input, rejected before touching any store"""

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Invalid input", detail: Optional[Dict[str, Any]] = None):
        super().__init__(message, extra={"detail": detail or {}})
        self.detail = detail or {}


class ConflictError(EvaluationEngineError):
    """
    The operation would break a uniqueness / eligibility rule.

    Codes: DUPLICATE_INSTANCE, DUPLICATE_ASSIGNMENT, SELF_EVALUATION,
    ALREADY_EVALUATED, STALE_DATE, INVALID_TIME_RANGE.
    """

    def __init__(self, code: str, message: str, **extra: Any):
        super().__init__(message, error_code=code, extra=extra)

    @property
    def code(self) -> str:
        return self.error_code


class NotFoundError(EvaluationEngineError):
    """Referenced teacher / period / instance / assignment does not exist"""

    error_code = "NOT_FOUND"

    def __init__(self, entity: str, identifier: Any):
        super().__init__(
            f"{entity} '{identifier}' not found",
            extra={"entity": entity, "identifier": identifier}
        )
        self.entity = entity
        self.identifier = identifier


class StoreError(EvaluationEngineError):
    """A data-store round trip failed. Never retried by the engine."""

    error_code = "STORE_ERROR"

    def __init__(self, operation: str, details: Optional[str] = None):
        super().__init__(
            f"Data store operation failed: {operation}",
            extra={"operation": operation, "details": details}
        )
        self.operation = operation
