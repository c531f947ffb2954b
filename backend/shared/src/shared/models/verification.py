"""Provider verification results.

Each provider adapter returns its own tagged result. Both normalize to a
VerificationOutcome before the reconciliation logic looks at them.
"""

from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .enums import PaymentProvider, VerificationOutcome

APPROVED_STATUSES = frozenset({"success", "approved"})
DECLINED_STATUSES = frozenset({"failed", "declined", "canceled", "cancelled", "refused"})


def normalize_status(status: str | None, is_successful: bool | None = None) -> VerificationOutcome:
    """Map a provider status word onto the approved/declined/indeterminate tri-state."""
    word = (status or "").strip().lower()
    if is_successful or word in APPROVED_STATUSES:
        return VerificationOutcome.APPROVED
    if word in DECLINED_STATUSES:
        return VerificationOutcome.DECLINED
    return VerificationOutcome.INDETERMINATE


class _VerificationBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    status: str = Field(default="", description="Provider status, lower-cased")
    amount: Decimal | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class KkiapayVerification(_VerificationBase):
    """Transaction status returned by KKiaPay."""

    provider: Literal[PaymentProvider.KKIAPAY] = PaymentProvider.KKIAPAY
    is_payment_successful: bool | None = None

    @property
    def outcome(self) -> VerificationOutcome:
        return normalize_status(self.status, self.is_payment_successful)


class FedapayVerification(_VerificationBase):
    """Transaction returned by FedaPay."""

    provider: Literal[PaymentProvider.FEDAPAY] = PaymentProvider.FEDAPAY

    @property
    def is_payment_successful(self) -> bool:
        return self.status == "approved"

    @property
    def outcome(self) -> VerificationOutcome:
        return normalize_status(self.status, self.is_payment_successful)


ProviderVerification = Annotated[
    Union[KkiapayVerification, FedapayVerification],
    Field(discriminator="provider"),
]
