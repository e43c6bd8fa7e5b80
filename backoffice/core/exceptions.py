from fastapi import HTTPException, status
from typing import Optional, Dict, Any

class BaseAPIException(HTTPException):
    """Base exception for API errors"""
    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={
                "success": False,
                "error": {
                    "code": error_code,
                    "message": message,
                    "details": self.details
                }
            }
        )

    def __str__(self) -> str:  # Ensure str(e) returns the human message
        return self.message

class AuthenticationError(BaseAPIException):
    """Authentication related errors"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTH_FAILED",
            message=message,
            details=details
        )

class AuthorizationError(BaseAPIException):
    """Authorization related errors"""
    def __init__(self, message: str = "Access forbidden", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="FORBIDDEN",
            message=message,
            details=details
        )

class ValidationError(BaseAPIException):
    """Malformed or out-of-range input"""
    def __init__(self, message: str = "Validation failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="INVALID_ARGUMENT",
            message=message,
            details=details
        )

class NotFoundError(BaseAPIException):
    """Resource not found errors"""
    def __init__(self, message: str = "Resource not found", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
            message=message,
            details=details
        )

class IneligibleError(BaseAPIException):
    """Business rule gate failed (inactive / expired / not-yet-valid / exhausted ...)"""
    def __init__(self, reason: str, message: Optional[str] = None, details: Optional[Dict] = None):
        self.reason = reason
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="INELIGIBLE",
            message=message or f"Not eligible: {reason}",
            details={"reason": reason, **(details or {})}
        )

class AlreadyRedeemedError(BaseAPIException):
    """Per-user redemption limit reached"""
    def __init__(self, message: str = "Code already redeemed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="ALREADY_REDEEMED",
            message=message,
            details=details
        )

class ConflictError(BaseAPIException):
    """Resource conflict errors"""
    def __init__(self, message: str = "Resource conflict", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT",
            message=message,
            details=details
        )

class InsufficientBalanceError(BaseAPIException):
    """Insufficient balance errors"""
    def __init__(self, message: str = "Insufficient balance", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="INSUFFICIENT_FUNDS",
            message=message,
            details=details
        )

class LimitExceededError(BaseAPIException):
    """Purchase cap reached"""
    def __init__(self, message: str = "Purchase limit exceeded", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="LIMIT_EXCEEDED",
            message=message,
            details=details
        )

class InvalidStateError(BaseAPIException):
    """Illegal state transition"""
    def __init__(self, message: str = "Invalid state transition", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_STATE",
            message=message,
            details=details
        )

class UpstreamFailureError(BaseAPIException):
    """Fulfillment collaborator failed"""
    def __init__(self, message: str = "Upstream delivery failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="UPSTREAM_FAILURE",
            message=message,
            details=details
        )

class InternalServerError(BaseAPIException):
    """Internal server errors"""
    def __init__(self, message: str = "Internal server error", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="INTERNAL",
            message=message,
            details=details
        )
