"""Standard error codes for the payment reconciliation backend.

All services raise ReconciliationError with one of these codes so the API
layer can map them to consistent HTTP responses.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes."""

    # Payment error codes (ERR_PAY_001-ERR_PAY_002)
    PLANTATION_NOT_FOUND = "ERR_PAY_001"
    STORAGE_UNAVAILABLE = "ERR_PAY_002"

    # Webhook error codes (ERR_WEBHOOK_001-ERR_WEBHOOK_002)
    INVALID_WEBHOOK_SIGNATURE = "ERR_WEBHOOK_001"
    EVENT_NOT_RECORDED = "ERR_WEBHOOK_002"

    # Provider error codes (ERR_PROVIDER_001-ERR_PROVIDER_003)
    UNKNOWN_PROVIDER = "ERR_PROVIDER_001"
    PROVIDER_NOT_CONFIGURED = "ERR_PROVIDER_002"
    PROVIDER_UNAVAILABLE = "ERR_PROVIDER_003"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.PLANTATION_NOT_FOUND: "Plantation not found",
    ErrorCode.STORAGE_UNAVAILABLE: "Payment storage is unavailable",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    ErrorCode.EVENT_NOT_RECORDED: "Webhook event could not be recorded",
    ErrorCode.UNKNOWN_PROVIDER: "Unknown payment provider",
    ErrorCode.PROVIDER_NOT_CONFIGURED: "Payment provider credentials are not configured",
    ErrorCode.PROVIDER_UNAVAILABLE: "Payment provider could not be reached",
}

# Recovery suggestions returned alongside the message
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.PLANTATION_NOT_FOUND: "Verify the plantation linked to the payment",
    ErrorCode.STORAGE_UNAVAILABLE: "Try again later",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Verify webhook secret configuration",
    ErrorCode.EVENT_NOT_RECORDED: "The provider will re-deliver the event",
    ErrorCode.UNKNOWN_PROVIDER: "Use one of: kkiapay, fedapay",
    ErrorCode.PROVIDER_NOT_CONFIGURED: "Set the provider keys in SSM Parameter Store",
    ErrorCode.PROVIDER_UNAVAILABLE: "Try again or refresh the payment status later",
}


class ErrorResponse(BaseModel):
    """Standard error response body."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class ReconciliationError(Exception):
    """Exception raised by reconciliation operations.

    Converted to an ErrorResponse by the API exception handlers.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details)


class ProviderVerificationError(Exception):
    """Raised when a provider lookup gives no usable answer.

    Timeouts, transport errors, non-2xx responses and unparseable bodies all
    end up here. Callers treat it as an indeterminate outcome.
    """

    def __init__(self, message: str, provider: str, status_code: int | None = None) -> None:
        """Initialize with message, provider name and optional HTTP status.

        Args:
            message: Human-readable error message.
            provider: Provider that failed.
            status_code: HTTP status returned by the provider, if any.
        """
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
