"""Enumeration types for AgriCapital payment reconciliation models."""

from enum import Enum


class PaymentStatus(str, Enum):
    """Status of a payment record (persisted as `statut`)."""

    PENDING = "en_attente"
    VALID = "valide"
    FAILED = "echec"
    REJECTED = "rejete"

    @property
    def is_terminal(self) -> bool:
        """Whether no further provider event may alter this status."""
        return self in TERMINAL_PAYMENT_STATUSES


TERMINAL_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.VALID, PaymentStatus.FAILED, PaymentStatus.REJECTED}
)


class PaymentType(str, Enum):
    """Kind of payment obligation (persisted as `type_paiement`)."""

    ACCESS_RIGHT = "DA"
    RECURRING_FEE = "REDEVANCE"


class ActivationStatus(str, Enum):
    """Activation state of a plantation (persisted as `statut_global`)."""

    UNACTIVATED = "en_attente_da"
    PARTIALLY_ACTIVATED = "da_partiel"
    ACTIVE = "actif"


class PaymentProvider(str, Enum):
    """Payment providers integrated with the platform."""

    KKIAPAY = "kkiapay"
    FEDAPAY = "fedapay"


class VerificationOutcome(str, Enum):
    """Normalized outcome of a provider transaction lookup."""

    APPROVED = "approved"
    DECLINED = "declined"
    INDETERMINATE = "indeterminate"


class EventClassification(str, Enum):
    """Classification of an inbound webhook event."""

    APPROVED = "approved"
    FAILED = "failed"
    OTHER = "other"


class ReturnState(str, Enum):
    """State of the payer-facing return flow."""

    CHECKING = "checking"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    AWAITING_CONFIRMATION = "awaiting-confirmation"
