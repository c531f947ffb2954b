"""Provider webhook event model for auditing."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class ProviderEvent(BaseModel):
    """Log of a received payment-provider webhook call.

    Used for:
    - Auditing: every delivery is kept verbatim, duplicates included
    - Linking: the event points at the payment it settled
    - Debugging: investigate payment issues
    """

    record_id: str = Field(..., description="Audit row ID")
    event_id: str = Field(
        ...,
        description="Provider event ID, or a generated evt_<ms> when absent",
        examples=["evt_1718000000000"],
    )
    event_type: str | None = Field(
        default=None,
        description="Provider event name",
        examples=["transaction.approved", "transaction.declined"],
    )
    transaction_id: str | None = Field(default=None, description="Provider transaction ID")
    reference: str | None = Field(default=None, description="Payment reference")
    status: str | None = Field(default=None, description="Transaction status in payload")
    amount: Decimal | None = Field(default=None, description="Transaction amount")
    customer_email: str | None = Field(default=None)
    customer_phone: str | None = Field(default=None)
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(..., description="When the call was received")
    processed: bool = Field(default=False)
    processed_at: datetime | None = Field(default=None)
    payment_id: str | None = Field(
        default=None,
        description="Payment linked once the event was processed",
    )


class WebhookResult(BaseModel):
    """Outcome of handling one webhook call."""

    record_id: str = Field(..., description="Audit row written for the call")
    event_id: str
    event_type: str | None = None
    processing_result: str = Field(
        ...,
        description="settled, duplicate, ignored, malformed or error",
    )
    payment_id: str | None = None
    message: str | None = None
