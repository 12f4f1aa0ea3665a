"""
Custom Exception Hierarchy

Structured exceptions shared by the API layer, the conversation engine and
the outbound integrations.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    NOT_FOUND = "ERR_1002"
    RATE_LIMITED = "ERR_1006"

    # Driver errors (3xxx)
    DRIVER_NOT_FOUND = "ERR_3001"

    # External service errors (5xxx)
    TELEGRAM_ERROR = "ERR_5001"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    EXTERNAL_SERVICE_TIMEOUT = "ERR_5004"
    DOCUMENT_STORAGE_ERROR = "ERR_5005"
    DOCUMENT_ANALYSIS_ERROR = "ERR_5006"

    # Conversation / session errors (6xxx)
    INVALID_STATE = "ERR_6003"
    DUPLICATE_ACTIVE_SESSION = "ERR_6004"
    INVALID_SESSION_PAYLOAD = "ERR_6005"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class DriverNotFoundError(NotFoundException):
    """Raised when a driver id does not resolve to a row"""

    def __init__(self, driver_id: int | str):
        super().__init__("Driver", driver_id, error_code=ErrorCode.DRIVER_NOT_FOUND)
        self.driver_id = driver_id


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.details["service"] = service_name


class TelegramError(ExternalServiceException):
    """Raised when the Telegram Bot API fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="telegram",
            message=f"Telegram API error: {message}",
            error_code=ErrorCode.TELEGRAM_ERROR,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "TelegramError":
        """
        Build a TelegramError from an HTTP response.

        Args:
            operation: Bot API method name (sendMessage, getFile, ...)
            response: response object (httpx.Response)
            message: custom message; built from the status code when omitted
            max_response_chars: cap on the stored response body
        """
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            message=message or f"{operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class DocumentStorageError(ExternalServiceException):
    """Raised when a document cannot be stored or removed"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="document_storage",
            message=message,
            error_code=ErrorCode.DOCUMENT_STORAGE_ERROR,
            details=details
        )


class DocumentAnalysisError(ExternalServiceException):
    """Raised when the classification service call fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="openai",
            message=f"Document analysis failed: {message}",
            error_code=ErrorCode.DOCUMENT_ANALYSIS_ERROR,
            details=details
        )


class ServiceTimeoutError(ExternalServiceException):
    """Raised when external service times out"""

    def __init__(self, service_name: str, timeout_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} request timed out after {timeout_seconds}s",
            error_code=ErrorCode.EXTERNAL_SERVICE_TIMEOUT,
            details={"timeout_seconds": timeout_seconds}
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds}
        )


class StateMachineException(AppException):
    """Base exception for conversation/session errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )


class DuplicateActiveSessionError(StateMachineException):
    """Raised when a live session already exists and replacement was not requested"""

    def __init__(self, telegram_id: int, kind: str):
        super().__init__(
            message=f"User {telegram_id} already has an active '{kind}' session",
            error_code=ErrorCode.DUPLICATE_ACTIVE_SESSION,
            details={"telegram_id": telegram_id, "kind": kind}
        )


class InvalidSessionPayloadError(StateMachineException):
    """Raised when a stored session payload does not decode for its kind"""

    def __init__(self, kind: str, reason: str):
        super().__init__(
            message=f"Invalid '{kind}' session payload: {reason}",
            error_code=ErrorCode.INVALID_SESSION_PAYLOAD,
            details={"kind": kind, "reason": reason}
        )
        self.kind = kind
