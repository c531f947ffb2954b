"""API models for payment return and verification endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from shared.models import Payment, PaymentStatus, PaymentType, ReturnState

PAYMENT_TYPE_LABELS: dict[PaymentType, str] = {
    PaymentType.ACCESS_RIGHT: "Droit d'accès",
    PaymentType.RECURRING_FEE: "Redevance",
}


class PaymentSummary(BaseModel):
    """Payment details shown to a returning payer."""

    payment_id: str
    reference: str
    status: PaymentStatus
    payment_type: PaymentType
    type_label: str
    amount_due: Decimal
    amount_paid: Decimal | None = None
    paid_at: datetime | None = None
    plantation_id: str | None = None

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentSummary":
        return cls(
            payment_id=payment.payment_id,
            reference=payment.reference,
            status=payment.status,
            payment_type=payment.payment_type,
            type_label=PAYMENT_TYPE_LABELS[payment.payment_type],
            amount_due=payment.amount_due,
            amount_paid=payment.amount_paid,
            paid_at=payment.paid_at,
            plantation_id=payment.plantation_id,
        )


class ReturnCheckResponse(BaseModel):
    """Result of one return-flow check."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "state": "awaiting-confirmation",
                    "payment": None,
                    "retry_after_seconds": 2.5,
                    "max_retries": 10,
                }
            ]
        },
    )

    state: ReturnState
    payment: PaymentSummary | None = None
    retry_after_seconds: float | None = Field(
        default=None,
        description="Suggested delay before re-checking; null once the outcome is final",
    )
    max_retries: int = Field(..., description="Automatic re-checks a client should attempt")


class VerifyTransactionRequest(BaseModel):
    """Request to look up a provider transaction."""

    model_config = ConfigDict(
        strict=True,
        populate_by_name=True,
        json_schema_extra={"examples": [{"transactionId": "104567"}]},
    )

    transaction_id: str = Field(..., alias="transactionId", min_length=1)


class VerifiedTransaction(BaseModel):
    """Normalized view of a provider transaction."""

    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str = Field(..., alias="transactionId")
    status: str
    amount: Decimal | None = None
    is_payment_successful: bool = Field(..., alias="isPaymentSuccessful")
    outcome: str


class VerifyTransactionResponse(BaseModel):
    """Provider verification response."""

    success: bool = True
    provider: str
    transaction: VerifiedTransaction
