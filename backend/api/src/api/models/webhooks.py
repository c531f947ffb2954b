"""API models for webhook endpoints."""

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the provider."""

    success: bool = True
    received: bool = True
    record_id: str
    event_id: str
    event_type: str | None = None
    processing_result: str  # "settled", "duplicate", "ignored", "malformed", "error"
    payment_id: str | None = None
    message: str | None = None


class WebhookErrorResponse(BaseModel):
    """Error response for rejected webhook calls."""

    success: bool = False
    error_code: str
    message: str
    recovery: str | None = None
