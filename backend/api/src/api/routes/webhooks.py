"""Webhook endpoints for payment provider integrations.

Provides endpoints for:
- FedaPay transaction events (transaction.approved, transaction.declined, ...)

These endpoints do not require authentication; the payload is signed with
the shared webhook secret instead.
"""

from fastapi import APIRouter, Depends, Request, Response
from starlette.status import HTTP_200_OK

from api.dependencies import get_webhook_handler
from api.models.webhooks import WebhookErrorResponse, WebhookResponse
from shared.services.webhook_handler import WebhookHandler
from shared.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADER = "X-FedaPay-Signature"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": (
        "authorization, x-client-info, apikey, content-type, x-fedapay-signature"
    ),
}


@router.options("/webhooks/fedapay", include_in_schema=False)
async def fedapay_webhook_preflight() -> Response:
    """OPTIONS without CORS request headers.

    Browser preflights (Origin plus Access-Control-Request-Method) are
    answered by the CORS middleware before reaching this route.
    """
    return Response(status_code=HTTP_200_OK, headers=CORS_HEADERS)


@router.post(
    "/webhooks/fedapay",
    summary="Handle FedaPay webhook",
    description="""
Receive and process FedaPay transaction events.

**Signature verification**: when a webhook secret is configured, the
`X-FedaPay-Signature` header must carry the hex HMAC-SHA256 of the raw body.

**Handled events:**
- `transaction.approved`, `transaction.completed`: payment becomes valid and
  DA payments activate plantation surface
- `transaction.declined`, `transaction.failed`: payment becomes failed

Every call is recorded in the audit log before processing. Once recorded,
the call is acknowledged with 200 even if processing fails. Duplicate events
are acknowledged without changing the payment.
""",
    response_model=WebhookResponse,
    responses={
        200: {
            "description": "Event recorded (and processed where applicable)",
            "model": WebhookResponse,
        },
        401: {
            "description": "Missing or invalid signature",
            "model": WebhookErrorResponse,
        },
        500: {
            "description": "Event could not be recorded; the provider should retry",
            "model": WebhookErrorResponse,
        },
    },
)
async def handle_fedapay_webhook(
    request: Request,
    response: Response,
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> WebhookResponse:
    """Handle an incoming FedaPay webhook call."""
    payload = await request.body()
    result = handler.handle(payload, request.headers.get(SIGNATURE_HEADER))

    response.headers["Access-Control-Allow-Origin"] = "*"
    return WebhookResponse(
        record_id=result.record_id,
        event_id=result.event_id,
        event_type=result.event_type,
        processing_result=result.processing_result,
        payment_id=result.payment_id,
        message=result.message,
    )
