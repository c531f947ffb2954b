"""Payment model for subscriber payment records."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import PaymentProvider, PaymentStatus, PaymentType

# Keys of the persisted metadata map that the reconciliation logic owns.
# Everything else is carried through untouched in PaymentMetadata.extra.
_METADATA_KEYS = ("payment_provider", "verified_provider", "verified_at")


class PaymentMetadata(BaseModel):
    """Closed view over the persisted `metadata` map of a payment.

    Provider-raw fields written by other parts of the platform are kept in
    `extra` and written back unchanged.
    """

    payment_provider: PaymentProvider | None = Field(
        default=None,
        description="Provider chosen when the payment was initiated",
    )
    verified_provider: PaymentProvider | None = Field(
        default=None,
        description="Provider that confirmed the terminal status",
    )
    verified_at: datetime | None = Field(
        default=None,
        description="When the terminal status was confirmed",
    )
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_item(cls, raw: dict[str, Any] | None) -> "PaymentMetadata":
        """Build from the stored map, tolerating unknown provider names."""
        raw = dict(raw or {})
        extra = {k: v for k, v in raw.items() if k not in _METADATA_KEYS}

        def _provider(value: Any) -> PaymentProvider | None:
            try:
                return PaymentProvider(str(value).lower()) if value else None
            except ValueError:
                return None

        verified_at = raw.get("verified_at")
        return cls(
            payment_provider=_provider(raw.get("payment_provider")),
            verified_provider=_provider(raw.get("verified_provider")),
            verified_at=datetime.fromisoformat(verified_at) if verified_at else None,
            extra=extra,
        )

    def to_item(self) -> dict[str, Any]:
        """Flatten back into the stored map shape."""
        item: dict[str, Any] = dict(self.extra)
        if self.payment_provider:
            item["payment_provider"] = self.payment_provider.value
        if self.verified_provider:
            item["verified_provider"] = self.verified_provider.value
        if self.verified_at:
            item["verified_at"] = self.verified_at.isoformat()
        return item


class Payment(BaseModel):
    """A payment obligation raised for a subscriber.

    Amounts are stored in F CFA.
    """

    payment_id: str = Field(..., description="Internal payment ID")
    reference: str = Field(..., description="Application reference, unique")
    payment_type: PaymentType = Field(..., description="DA or recurring fee")
    status: PaymentStatus = Field(..., description="Payment status")
    amount_due: Decimal = Field(..., ge=0, description="Amount due in F CFA")
    amount_paid: Decimal | None = Field(
        default=None, ge=0, description="Amount paid, set on settlement"
    )
    paid_at: datetime | None = Field(default=None, description="Settlement timestamp")
    transaction_id: str | None = Field(
        default=None,
        description="Provider transaction ID",
        examples=["104857"],
    )
    plantation_id: str | None = Field(default=None, description="Linked plantation")
    metadata: PaymentMetadata = Field(default_factory=PaymentMetadata)
    created_at: datetime | None = Field(default=None, description="Creation timestamp")

    @property
    def is_terminal(self) -> bool:
        """Whether the payment already reached a terminal status."""
        return self.status.is_terminal


class PaymentSettlement(BaseModel):
    """Terminal status change applied to a pending payment."""

    model_config = ConfigDict(frozen=True)

    status: PaymentStatus
    transaction_id: str | None = None
    amount_paid: Decimal | None = Field(default=None, ge=0, allow_inf_nan=False)
    paid_at: datetime | None = None
    verified_provider: PaymentProvider | None = None
    verified_at: datetime | None = None
