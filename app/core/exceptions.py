from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppException):
    """Malformed or out-of-range input, raised before anything is mutated."""
    def __init__(self, message: str, field: Optional[str] = None, **details: Any):
        if field is not None:
            details["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=details
        )

class OverlapError(AppException):
    def __init__(self, message: str, conflicting_id: Optional[int] = None, **details: Any):
        super().__init__(
            message=message,
            status_code=409,
            error_code="LEAVE_OVERLAP",
            details={"conflicting_id": conflicting_id, **details}
        )

class DuplicatePeriodError(AppException):
    def __init__(self, message: str, conflicting_id: Optional[int] = None, **details: Any):
        super().__init__(
            message=message,
            status_code=409,
            error_code="DUPLICATE_PERIOD",
            details={"conflicting_id": conflicting_id, **details}
        )

class AlreadyCheckedInError(AppException):
    def __init__(self, message: str = "Already checked in for today", **details: Any):
        super().__init__(
            message=message,
            status_code=409,
            error_code="ALREADY_CHECKED_IN",
            details=details
        )

class NotCheckedInError(AppException):
    def __init__(self, message: str = "No open check-in found for today", **details: Any):
        super().__init__(
            message=message,
            status_code=409,
            error_code="NOT_CHECKED_IN",
            details=details
        )

class InvalidOrderError(AppException):
    def __init__(self, message: str = "Check-out must be after check-in", **details: Any):
        super().__init__(
            message=message,
            status_code=422,
            error_code="INVALID_ORDER",
            details=details
        )

class InvalidStateError(AppException):
    def __init__(self, message: str, current_state: Optional[str] = None, **details: Any):
        super().__init__(
            message=message,
            status_code=409,
            error_code="INVALID_STATE",
            details={"current_state": current_state, **details}
        )

class InsufficientBalanceError(AppException):
    def __init__(self, leave_type: str, remaining: float, requested: float):
        super().__init__(
            message=f"Remaining {leave_type} balance is {remaining:.1f}, requested {requested:.1f}",
            status_code=409,
            error_code="INSUFFICIENT_BALANCE",
            details={"leave_type": leave_type, "remaining": remaining, "requested": requested}
        )

class ImmutableRecordError(AppException):
    def __init__(self, message: str, current_state: Optional[str] = None, **details: Any):
        super().__init__(
            message=message,
            status_code=409,
            error_code="IMMUTABLE_RECORD",
            details={"current_state": current_state, **details}
        )

class NotFoundError(AppException):
    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            message=f"{resource} {resource_id} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, "id": resource_id}
        )

class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )

class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )
