"""
Custom exception classes for the Messaging Delivery Engine.
"""
from typing import Optional, Any, Dict, List
import uuid
from fastapi import HTTPException, status


class BaseAPIException(HTTPException):
    """Base exception for API errors."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.context = context or {}

    def __str__(self) -> str:
        return self.detail

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.detail,
            "correlation_id": self.correlation_id,
            "context": self.context,
        }


class ValidationError(BaseAPIException):
    """Exception for malformed input (missing entity id, unknown level, bad phone)."""

    def __init__(
        self,
        detail: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        reason_code: Optional[str] = None,
        **context
    ):
        if field:
            detail = f"Validation failed for field '{field}': {detail}"

        context_dict = {"field": field, "value": value, "reason_code": reason_code, **context}

        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code="VALIDATION_ERROR",
            context=context_dict,
        )
        self.field = field
        self.reason_code = reason_code


class UnauthorizedError(BaseAPIException):
    """Exception for a missing or invalid caller identity."""

    def __init__(self, detail: str = "Caller identity is required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
        )


class ForbiddenError(BaseAPIException):
    """Exception for an authenticated caller without the required entitlement."""

    def __init__(
        self,
        detail: str,
        level: Optional[str] = None,
        entity_id: Optional[str] = None,
        **context
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="INSUFFICIENT_PERMISSIONS",
            context={"level": level, "entity_id": entity_id, **context},
        )


class NotConfiguredError(BaseAPIException):
    """Exception for missing carrier configuration at every hierarchy tier."""

    def __init__(self, detail: str, **context):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code="NOT_CONFIGURED",
            context=context,
        )


class DecryptFailedError(BaseAPIException):
    """Exception for a stored secret that cannot be decrypted."""

    def __init__(
        self,
        detail: str = "Stored carrier secret could not be decrypted",
        level: Optional[str] = None,
        entity_id: Optional[str] = None,
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="DECRYPT_FAILED",
            context={"level": level, "entity_id": entity_id},
        )


class WebhookConfigError(BaseAPIException):
    """Exception for carrier phone-number lookup or update failures."""

    def __init__(self, detail: str, phone_number: Optional[str] = None, **context):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
            error_code="WEBHOOK_CONFIG_FAILED",
            context={"phone_number": phone_number, **context},
        )


class CredentialTestFailedError(BaseAPIException):
    """Exception for carrier credentials the carrier would not accept."""

    def __init__(self, detail: str, reason_code: Optional[str] = None, **context):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="CREDENTIAL_TEST_FAILED",
            context={"reason_code": reason_code, **context},
        )
        self.reason_code = reason_code


class VersionConflictError(BaseAPIException):
    """Exception for a write based on a stale configuration version."""

    def __init__(self, detail: str, current_version: Optional[int] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="VERSION_CONFLICT",
            context={"current_version": current_version},
        )


class RateLimitedError(BaseAPIException):
    """Exception for a caller over the per-minute attempt limit."""

    def __init__(self, detail: str = "Too many attempts. Please wait a moment and try again.",
                 retry_after: Optional[int] = None):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            error_code="RATE_LIMITED",
            headers={"Retry-After": str(retry_after)} if retry_after else None,
        )


class SMSDeliveryError(BaseAPIException):
    """Exception for a send that exhausted every usable provider."""

    def __init__(
        self,
        detail: str,
        attempts: Optional[List[Dict[str, Any]]] = None,
        not_configured: bool = False,
    ):
        super().__init__(
            status_code=(
                status.HTTP_503_SERVICE_UNAVAILABLE
                if not_configured
                else status.HTTP_502_BAD_GATEWAY
            ),
            detail=detail,
            error_code="NOT_CONFIGURED" if not_configured else "SMS_ERROR",
            context={"attempts": attempts or []},
        )


# Database Exceptions
class DatabaseError(Exception):
    """Exception for database-related errors."""

    error_code = "DATABASE_ERROR"

    def __init__(self, detail: str, operation: Optional[str] = None, **context):
        self.operation = operation
        if operation:
            context["operation"] = operation
        self.context = context
        super().__init__(detail)


class EncryptionError(Exception):
    """Exception for secret encryption and decryption failures."""

    pass


def get_user_friendly_error_message(error_code: str) -> str:
    """Get user-friendly error message for error code."""
    error_messages = {
        "VALIDATION_ERROR": "Validation failed. Please check your input.",
        "UNAUTHORIZED": "Please sign in and try again.",
        "INSUFFICIENT_PERMISSIONS": "You do not have permission to perform this action.",
        "NOT_CONFIGURED": "Messaging is not configured for this account.",
        "DECRYPT_FAILED": "Stored messaging credentials are damaged. Please re-enter them.",
        "WEBHOOK_CONFIG_FAILED": "The phone number could not be configured. Please try again later.",
        "CREDENTIAL_TEST_FAILED": "The carrier rejected these credentials. Please check them and try again.",
        "VERSION_CONFLICT": "This configuration was changed by someone else. Please reload and try again.",
        "RATE_LIMITED": "Too many attempts. Please wait a moment and try again.",
        "SMS_ERROR": "The message could not be delivered. Please try again later.",
        "DATABASE_ERROR": "A storage error occurred. Please try again later.",
    }
    return error_messages.get(error_code, "An error occurred. Please try again.")
