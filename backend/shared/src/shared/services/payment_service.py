"""Payment service for subscriber payment records.

Owns the `payments` table: creation of pending payments, lookups by
reference or provider transaction ID, and the conditional settlement that
both reconciliation paths go through.
"""

import datetime as dt
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from shared.models import (
    Payment,
    PaymentMetadata,
    PaymentProvider,
    PaymentSettlement,
    PaymentStatus,
    PaymentType,
)
from shared.utils.logging import get_logger, log_payment_operation

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)

# Settlement only applies while none of these is the current status
_TERMINAL_CONDITION = (
    "attribute_exists(payment_id) AND #statut <> :valide "
    "AND #statut <> :echec AND #statut <> :rejete"
)


def _parse_datetime(value: Any) -> dt.datetime | None:
    if not value:
        return None
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return dt.datetime.fromisoformat(text)


class PaymentService:
    """Service for reading and settling payment records."""

    PAYMENTS_TABLE = "payments"
    REFERENCE_INDEX = "reference-index"
    TRANSACTION_INDEX = "transaction-index"

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize payment service.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def _generate_payment_id(self, prefix: str = "PAY") -> str:
        """Generate a unique payment ID like PAY-ABC123DEF456."""
        return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"

    def create_pending_payment(
        self,
        *,
        reference: str,
        payment_type: PaymentType,
        amount_due: Decimal,
        plantation_id: str | None = None,
        payment_provider: PaymentProvider | None = None,
    ) -> Payment:
        """Create a payment in pending status when a subscriber starts paying.

        Args:
            reference: Application reference sent to the provider
            payment_type: DA or recurring fee
            amount_due: Amount due in F CFA
            plantation_id: Plantation the payment is for
            payment_provider: Provider the subscriber was sent to, if known

        Returns:
            Created Payment record with PENDING status
        """
        payment = Payment(
            payment_id=self._generate_payment_id(),
            reference=reference,
            payment_type=payment_type,
            status=PaymentStatus.PENDING,
            amount_due=amount_due,
            plantation_id=plantation_id,
            metadata=PaymentMetadata(payment_provider=payment_provider),
            created_at=dt.datetime.now(dt.UTC),
        )

        self.db.put_item(
            self.PAYMENTS_TABLE,
            self._payment_to_item(payment),
            condition_expression="attribute_not_exists(payment_id)",
        )
        log_payment_operation(
            logger,
            "create_pending_payment",
            payment_id=payment.payment_id,
            reference=reference,
            status=payment.status.value,
        )
        return payment

    def get_payment(self, payment_id: str) -> Payment | None:
        """Get a payment by internal ID."""
        item = self.db.get_item(self.PAYMENTS_TABLE, {"payment_id": payment_id})
        return self._item_to_payment(item) if item else None

    def get_payment_by_reference(self, reference: str) -> Payment | None:
        """Get a payment by its application reference."""
        items = self.db.query_by_gsi(
            self.PAYMENTS_TABLE, self.REFERENCE_INDEX, "reference", reference
        )
        if not items:
            return None
        if len(items) > 1:
            logger.warning("Reference %s matches %d payments, using the first", reference, len(items))
        # GSI reads are eventually consistent; re-read the base item
        return self.get_payment(items[0]["payment_id"])

    def get_payment_by_transaction_id(self, transaction_id: str) -> Payment | None:
        """Get a payment by the provider transaction ID recorded on it."""
        items = self.db.query_by_gsi(
            self.PAYMENTS_TABLE,
            self.TRANSACTION_INDEX,
            "fedapay_transaction_id",
            transaction_id,
        )
        if not items:
            return None
        return self.get_payment(items[0]["payment_id"])

    def find_payment(
        self,
        reference: str | None = None,
        transaction_id: str | None = None,
    ) -> Payment | None:
        """Look up a payment by reference, falling back to transaction ID.

        Args:
            reference: Application reference
            transaction_id: Provider transaction ID

        Returns:
            Payment or None if neither identifier matches
        """
        payment = self.get_payment_by_reference(reference) if reference else None
        if payment is None and transaction_id:
            payment = self.get_payment_by_transaction_id(transaction_id)
        return payment

    def settle(self, payment: Payment, settlement: PaymentSettlement) -> Payment | None:
        """Move a payment to a terminal status, once.

        The write is conditional on the stored status not being terminal, so
        concurrent webhook and return-flow settlements cannot both apply.

        Args:
            payment: Payment as last read (its metadata is merged, not replaced)
            settlement: Terminal status and settlement fields

        Returns:
            The updated Payment, or None if the record was already terminal
            (or no longer exists).
        """
        metadata = payment.metadata.model_copy(
            update={
                "verified_provider": settlement.verified_provider
                or payment.metadata.verified_provider,
                "verified_at": settlement.verified_at or payment.metadata.verified_at,
            }
        )

        assignments = ["#statut = :statut", "#metadata = :metadata", "updated_at = :now"]
        values: dict[str, Any] = {
            ":statut": settlement.status.value,
            ":metadata": metadata.to_item(),
            ":now": dt.datetime.now(dt.UTC).isoformat(),
            ":valide": PaymentStatus.VALID.value,
            ":echec": PaymentStatus.FAILED.value,
            ":rejete": PaymentStatus.REJECTED.value,
        }
        if settlement.transaction_id:
            assignments.append("fedapay_transaction_id = :tid")
            values[":tid"] = settlement.transaction_id
        if settlement.amount_paid is not None:
            assignments.append("montant_paye = :paid")
            values[":paid"] = settlement.amount_paid
        if settlement.paid_at is not None:
            assignments.append("date_paiement = :paid_at")
            values[":paid_at"] = settlement.paid_at.isoformat()

        write = self.db.update_item(
            self.PAYMENTS_TABLE,
            {"payment_id": payment.payment_id},
            "SET " + ", ".join(assignments),
            values,
            {"#statut": "statut", "#metadata": "metadata"},
            condition_expression=_TERMINAL_CONDITION,
        )
        if not write.applied:
            log_payment_operation(
                logger,
                "settle_skipped",
                payment_id=payment.payment_id,
                reference=payment.reference,
                status=settlement.status.value,
                reason="no longer exists" if write.missing else "already terminal",
            )
            return None

        log_payment_operation(
            logger,
            "settle",
            payment_id=payment.payment_id,
            reference=payment.reference,
            status=settlement.status.value,
            transaction_id=settlement.transaction_id,
            verified_provider=settlement.verified_provider.value
            if settlement.verified_provider
            else None,
        )
        return self._item_to_payment(write.item)

    def _payment_to_item(self, payment: Payment) -> dict[str, Any]:
        """Convert a Payment model to a DynamoDB item."""
        item: dict[str, Any] = {
            "payment_id": payment.payment_id,
            "reference": payment.reference,
            "type_paiement": payment.payment_type.value,
            "statut": payment.status.value,
            "montant": payment.amount_due,
            "metadata": payment.metadata.to_item(),
        }
        # Key attributes of sparse indexes must be absent rather than null
        if payment.transaction_id:
            item["fedapay_transaction_id"] = payment.transaction_id
        if payment.plantation_id:
            item["plantation_id"] = payment.plantation_id
        if payment.amount_paid is not None:
            item["montant_paye"] = payment.amount_paid
        if payment.paid_at:
            item["date_paiement"] = payment.paid_at.isoformat()
        if payment.created_at:
            item["created_at"] = payment.created_at.isoformat()
        return item

    def _item_to_payment(self, item: dict[str, Any]) -> Payment:
        """Convert a DynamoDB item to a Payment model."""
        amount_paid = item.get("montant_paye")
        return Payment(
            payment_id=item["payment_id"],
            reference=item["reference"],
            payment_type=PaymentType(item.get("type_paiement", PaymentType.RECURRING_FEE.value)),
            status=PaymentStatus(item.get("statut", PaymentStatus.PENDING.value)),
            amount_due=Decimal(str(item.get("montant", 0))),
            amount_paid=Decimal(str(amount_paid)) if amount_paid is not None else None,
            paid_at=_parse_datetime(item.get("date_paiement")),
            transaction_id=item.get("fedapay_transaction_id"),
            plantation_id=item.get("plantation_id"),
            metadata=PaymentMetadata.from_item(item.get("metadata")),
            created_at=_parse_datetime(item.get("created_at")),
        )
