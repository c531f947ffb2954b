"""Pydantic models for AgriCapital payment reconciliation."""

from .enums import (
    TERMINAL_PAYMENT_STATUSES,
    ActivationStatus,
    EventClassification,
    PaymentProvider,
    PaymentStatus,
    PaymentType,
    ReturnState,
    VerificationOutcome,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    ErrorCode,
    ErrorResponse,
    ProviderVerificationError,
    ReconciliationError,
)
from .payment import Payment, PaymentMetadata, PaymentSettlement
from .plantation import ActivationResult, Plantation
from .provider_event import ProviderEvent, WebhookResult
from .verification import (
    FedapayVerification,
    KkiapayVerification,
    ProviderVerification,
    normalize_status,
)

__all__ = [
    # Enums
    "ActivationStatus",
    "EventClassification",
    "PaymentProvider",
    "PaymentStatus",
    "PaymentType",
    "ReturnState",
    "TERMINAL_PAYMENT_STATUSES",
    "VerificationOutcome",
    # Errors
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "ErrorCode",
    "ErrorResponse",
    "ProviderVerificationError",
    "ReconciliationError",
    # Payment
    "Payment",
    "PaymentMetadata",
    "PaymentSettlement",
    # Plantation
    "ActivationResult",
    "Plantation",
    # Webhook audit
    "ProviderEvent",
    "WebhookResult",
    # Verification
    "FedapayVerification",
    "KkiapayVerification",
    "ProviderVerification",
    "normalize_status",
]
