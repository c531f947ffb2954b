"""Settlement step shared by the webhook and return-flow paths.

Whichever path observes a terminal provider outcome first settles the
payment; the loser's conditional write is a no-op. The activation cascade
runs only for the winner, which is what keeps a DA payment from being
counted twice.
"""

import datetime as dt
from decimal import Decimal

from botocore.exceptions import ClientError

from shared.models import (
    Payment,
    PaymentProvider,
    PaymentSettlement,
    PaymentStatus,
    PaymentType,
    ReconciliationError,
)
from shared.utils.logging import get_logger, log_payment_operation

from .activation import ActivationCascade
from .payment_service import PaymentService

logger = get_logger(__name__)


class Reconciler:
    """Settles payments and triggers the activation cascade."""

    def __init__(self, payments: PaymentService, cascade: ActivationCascade) -> None:
        """Initialize the reconciler.

        Args:
            payments: Payment service owning the conditional settlement
            cascade: Activation cascade for DA payments
        """
        self.payments = payments
        self.cascade = cascade

    def settle(
        self,
        payment: Payment,
        *,
        approved: bool,
        transaction_id: str | None = None,
        amount_paid: Decimal | None = None,
        verified_provider: PaymentProvider | None = None,
    ) -> Payment | None:
        """Apply a terminal provider outcome to a payment.

        An approved settlement always records an amount: a missing, negative
        or non-finite provider amount is replaced by the amount due.

        Args:
            payment: Payment as last read
            approved: True for an approved transaction, False for a declined one
            transaction_id: Provider transaction ID to record
            amount_paid: Amount reported by the provider, if any
            verified_provider: Provider that reported the outcome

        Returns:
            The settled payment, or None if another path settled it first

        Raises:
            ClientError: If the payment write itself fails
        """
        if amount_paid is not None and not (amount_paid.is_finite() and amount_paid >= 0):
            logger.warning(
                "Ignoring unusable amount %s reported for payment %s",
                amount_paid,
                payment.reference,
            )
            amount_paid = None
        if approved and amount_paid is None:
            amount_paid = payment.amount_due

        now = dt.datetime.now(dt.UTC)
        settlement = PaymentSettlement(
            status=PaymentStatus.VALID if approved else PaymentStatus.FAILED,
            transaction_id=transaction_id,
            amount_paid=amount_paid,
            paid_at=now if approved else None,
            verified_provider=verified_provider,
            verified_at=now if verified_provider else None,
        )

        settled = self.payments.settle(payment, settlement)
        if settled is None:
            return None

        if approved and settled.payment_type == PaymentType.ACCESS_RIGHT and settled.plantation_id:
            self._cascade(settled)
        return settled

    def _cascade(self, payment: Payment) -> None:
        # The payment is already valid at this point; a failed cascade is
        # logged for manual follow-up rather than undoing the settlement.
        try:
            self.cascade.apply(payment)
        except (ReconciliationError, ClientError) as e:
            log_payment_operation(
                logger,
                "activation_cascade",
                payment_id=payment.payment_id,
                reference=payment.reference,
                plantation_id=payment.plantation_id,
                error=str(e),
            )
