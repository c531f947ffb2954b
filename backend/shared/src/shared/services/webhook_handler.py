"""Webhook handler for FedaPay transaction events.

Business logic for inbound provider events, kept apart from HTTP routing:
- Signature check against the shared secret
- Verbatim audit row for every call, written before any processing
- Conditional settlement of the matching payment and activation cascade

Once the signature is accepted and the audit row is stored, processing
errors are logged and never surfaced, so the provider does not re-deliver
an event that was already recorded.
"""

import datetime as dt
import json
import time
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any

from botocore.exceptions import ClientError
from pydantic import ValidationError

from shared.models import (
    ErrorCode,
    EventClassification,
    PaymentProvider,
    ProviderEvent,
    ReconciliationError,
    WebhookResult,
)
from shared.utils.logging import get_logger, log_webhook_event
from shared.utils.signature import compute_payload_hash, verify_signature

from .dynamodb import DynamoDBService
from .payment_service import PaymentService
from .reconciliation import Reconciler

logger = get_logger(__name__)

APPROVED_EVENTS = frozenset({"transaction.approved", "transaction.completed"})
FAILED_EVENTS = frozenset({"transaction.declined", "transaction.failed"})


def classify_event(event_type: str | None) -> EventClassification:
    """Classify a provider event name as approved, failed or other."""
    if event_type in APPROVED_EVENTS:
        return EventClassification.APPROVED
    if event_type in FAILED_EVENTS:
        return EventClassification.FAILED
    return EventClassification.OTHER


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _to_text(value: Any) -> str | None:
    # Containers are kept in raw_payload only
    if value is None or value == "" or isinstance(value, (dict, list)):
        return None
    return str(value)


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def parse_event(body: dict[str, Any]) -> dict[str, Any]:
    """Extract the fields the audit log and settlement need from an envelope.

    Accepts both `{event, entity}` and `{name, object}` envelopes, and a bare
    transaction object.

    Args:
        body: Parsed JSON body

    Returns:
        Dict with event_id, event_type, transaction_id, reference, status,
        amount, customer_email and customer_phone (values may be None)
    """
    entity: dict[str, Any] = body
    for candidate in (body.get("entity"), body.get("object")):
        if isinstance(candidate, dict):
            entity = candidate
            break

    customer = _as_dict(entity.get("customer"))

    return {
        "event_id": _to_text(body.get("id")) or f"evt_{int(time.time() * 1000)}",
        "event_type": _to_text(body.get("event") or body.get("name")),
        "transaction_id": _to_text(entity.get("id")),
        "reference": _to_text(
            entity.get("reference")
            or _as_dict(entity.get("custom_metadata")).get("reference")
        ),
        "status": _to_text(entity.get("status")),
        "amount": _to_decimal(entity.get("amount")),
        "customer_email": _to_text(customer.get("email")),
        "customer_phone": _to_text(_as_dict(customer.get("phone_number")).get("number")),
    }


class WebhookHandler:
    """Handler for FedaPay webhook calls."""

    EVENTS_TABLE = "provider-events"

    def __init__(
        self,
        db: DynamoDBService,
        payments: PaymentService,
        reconciler: Reconciler,
        webhook_secret: str | None,
    ) -> None:
        """Initialize webhook handler.

        Args:
            db: DynamoDB service for the audit table
            payments: Payment lookups
            reconciler: Settlement and activation cascade
            webhook_secret: Shared signing secret; None disables the check
        """
        self._db = db
        self._payments = payments
        self._reconciler = reconciler
        self._webhook_secret = webhook_secret

    def check_signature(self, raw_body: bytes, signature: str | None) -> None:
        """Reject the call unless it carries a valid signature.

        Args:
            raw_body: Raw request body
            signature: X-FedaPay-Signature header value

        Raises:
            ReconciliationError: INVALID_WEBHOOK_SIGNATURE when a secret is
                configured and the signature is missing or wrong
        """
        if not self._webhook_secret:
            logger.warning("Webhook secret not configured - signature verification skipped")
            return

        if not signature:
            logger.warning("Webhook request missing signature header")
            raise ReconciliationError(
                code=ErrorCode.INVALID_WEBHOOK_SIGNATURE,
                details={"message": "Missing signature"},
            )

        if not verify_signature(raw_body, signature, self._webhook_secret):
            logger.warning(
                "Invalid webhook signature (payload_hash=%s)",
                compute_payload_hash(raw_body),
            )
            raise ReconciliationError(
                code=ErrorCode.INVALID_WEBHOOK_SIGNATURE,
                details={"message": "Invalid signature"},
            )

    def record_event(self, fields: dict[str, Any], raw_payload: dict[str, Any]) -> ProviderEvent:
        """Append the call to the audit table.

        Args:
            fields: Output of parse_event (or a minimal dict for bad bodies)
            raw_payload: Body to store verbatim

        Returns:
            The stored ProviderEvent

        Raises:
            ReconciliationError: EVENT_NOT_RECORDED if the write fails
        """
        event = ProviderEvent(
            record_id=f"EVT-{uuid.uuid4().hex[:16].upper()}",
            event_id=fields["event_id"],
            event_type=fields.get("event_type"),
            transaction_id=fields.get("transaction_id"),
            reference=fields.get("reference"),
            status=fields.get("status"),
            amount=fields.get("amount"),
            customer_email=fields.get("customer_email"),
            customer_phone=fields.get("customer_phone"),
            raw_payload=raw_payload,
            received_at=dt.datetime.now(dt.UTC),
        )

        item: dict[str, Any] = {
            "record_id": event.record_id,
            "event_id": event.event_id,
            "raw_payload": event.raw_payload,
            "processed": False,
            "received_at": event.received_at.isoformat(),
        }
        optional = {
            "event_type": event.event_type,
            "transaction_id": event.transaction_id,
            "transaction_reference": event.reference,
            "status": event.status,
            "amount": event.amount,
            "customer_email": event.customer_email,
            "customer_phone": event.customer_phone,
        }
        item.update({k: v for k, v in optional.items() if v is not None})

        try:
            self._db.put_item(
                self.EVENTS_TABLE, item, condition_expression="attribute_not_exists(record_id)"
            )
        except ClientError as e:
            logger.error("Failed to record webhook event %s: %s", event.event_id, e)
            raise ReconciliationError(
                code=ErrorCode.EVENT_NOT_RECORDED,
                details={"event_id": event.event_id},
            ) from e
        return event

    def mark_processed(self, event: ProviderEvent, payment_id: str) -> None:
        """Flag an audit row as processed and link it to its payment."""
        self._db.update_item(
            self.EVENTS_TABLE,
            {"record_id": event.record_id},
            "SET processed = :true, processed_at = :now, paiement_id = :payment_id",
            {
                ":true": True,
                ":false": False,
                ":now": dt.datetime.now(dt.UTC).isoformat(),
                ":payment_id": payment_id,
            },
            condition_expression="attribute_exists(record_id) AND processed = :false",
        )

    def handle(self, raw_body: bytes, signature: str | None) -> WebhookResult:
        """Handle one webhook call end to end.

        Args:
            raw_body: Raw request body, exactly as received
            signature: X-FedaPay-Signature header value

        Returns:
            WebhookResult describing what happened

        Raises:
            ReconciliationError: INVALID_WEBHOOK_SIGNATURE (no side effects)
                or EVENT_NOT_RECORDED (audit write failed)
        """
        self.check_signature(raw_body, signature)

        try:
            body = json.loads(raw_body, parse_float=Decimal, parse_constant=str)
        except ValueError:
            body = None

        event = None
        if isinstance(body, dict):
            try:
                event = self.record_event(parse_event(body), body)
            except (ValidationError, TypeError, ArithmeticError) as e:
                # Body does not fit an audit row as parsed; keep it as text
                logger.warning("Webhook body not storable as parsed: %s", e)

        if event is None:
            event = self.record_event(
                {"event_id": f"evt_{int(time.time() * 1000)}"},
                {"raw": raw_body.decode("utf-8", errors="replace")},
            )
            log_webhook_event(logger, None, event.event_id, result="malformed")
            return WebhookResult(
                record_id=event.record_id,
                event_id=event.event_id,
                processing_result="malformed",
                message="Body is not a usable JSON object",
            )

        log_webhook_event(
            logger,
            event.event_type,
            event.event_id,
            reference=event.reference,
            result="received",
        )

        try:
            return self._process(event)
        except Exception as e:
            logger.exception("Failed to process webhook event %s", event.event_id)
            log_webhook_event(
                logger,
                event.event_type,
                event.event_id,
                reference=event.reference,
                result="error",
                error=str(e),
            )
            return WebhookResult(
                record_id=event.record_id,
                event_id=event.event_id,
                event_type=event.event_type,
                processing_result="error",
                message="Event recorded; processing failed",
            )

    def _process(self, event: ProviderEvent) -> WebhookResult:
        classification = classify_event(event.event_type)

        def _result(processing_result: str, payment_id: str | None = None, message: str | None = None) -> WebhookResult:
            return WebhookResult(
                record_id=event.record_id,
                event_id=event.event_id,
                event_type=event.event_type,
                processing_result=processing_result,
                payment_id=payment_id,
                message=message,
            )

        if classification == EventClassification.OTHER:
            log_webhook_event(logger, event.event_type, event.event_id, result="ignored")
            return _result("ignored", message=f"Event type '{event.event_type}' not handled")

        if not event.reference:
            log_webhook_event(
                logger, event.event_type, event.event_id, result="ignored", reason="no reference"
            )
            return _result("ignored", message="No payment reference in event")

        payment = self._payments.get_payment_by_reference(event.reference)
        if payment is None:
            log_webhook_event(
                logger,
                event.event_type,
                event.event_id,
                reference=event.reference,
                result="ignored",
                reason="no matching payment",
            )
            return _result("ignored", message=f"No payment with reference {event.reference}")

        approved = classification == EventClassification.APPROVED
        settled = None
        if not payment.is_terminal:
            settled = self._reconciler.settle(
                payment,
                approved=approved,
                transaction_id=event.transaction_id,
                amount_paid=event.amount if approved else None,
                verified_provider=PaymentProvider.FEDAPAY,
            )

        self.mark_processed(event, payment.payment_id)

        if settled is None:
            log_webhook_event(
                logger,
                event.event_type,
                event.event_id,
                reference=event.reference,
                payment_id=payment.payment_id,
                result="duplicate",
            )
            return _result("duplicate", payment.payment_id, "Payment already settled")

        log_webhook_event(
            logger,
            event.event_type,
            event.event_id,
            reference=event.reference,
            payment_id=settled.payment_id,
            result="settled",
            status=settled.status.value,
        )
        return _result("settled", settled.payment_id)
