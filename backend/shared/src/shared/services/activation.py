"""Activation cascade for access-right (DA) payments.

A settled DA payment unlocks part of a plantation's subscribed surface, in
proportion to the amount paid:

    surface_paid = amount_paid / unit_price_per_ha
    new_activated = max(previous_activated,
                        min(surface_subscribed, previous_activated + surface_paid))

The plantation write is a compare-and-swap on the previous activated surface,
so two cascades for different payments of the same plantation never lose an
increment.
"""

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from shared.models import (
    ActivationResult,
    ActivationStatus,
    ErrorCode,
    Payment,
    PaymentType,
    Plantation,
    ReconciliationError,
)
from shared.utils.logging import get_logger, log_payment_operation

if TYPE_CHECKING:
    from .dynamodb import ConditionalWrite, DynamoDBService

logger = get_logger(__name__)

# Hectares are kept to the square metre
SURFACE_QUANTUM = Decimal("0.0001")


def compute_activation(
    plantation: Plantation,
    amount_paid: Decimal,
    unit_price_fallback: Decimal,
    now: dt.datetime,
) -> ActivationResult:
    """Compute the activated surface after one DA payment.

    Args:
        plantation: Plantation as currently stored
        amount_paid: Amount settled for the DA payment
        unit_price_fallback: Rate used when the plantation has none
        now: Timestamp to record as first activation

    Returns:
        ActivationResult with the clamped new surface and status
    """
    unit_price = plantation.unit_price_per_ha
    if unit_price is None or unit_price <= 0:
        unit_price = unit_price_fallback

    previous = max(Decimal("0"), plantation.surface_activated_ha)
    subscribed = plantation.surface_subscribed_ha
    surface_paid = (max(Decimal("0"), amount_paid) / unit_price).quantize(
        SURFACE_QUANTUM, rounding=ROUND_HALF_UP
    )
    if previous > subscribed:
        logger.warning(
            "Plantation %s has %s ha activated of %s ha subscribed; keeping the activated surface",
            plantation.plantation_id,
            previous,
            subscribed,
        )
    # Never lower an activated surface, even if the subscription shrank
    new_activated = max(previous, min(subscribed, previous + surface_paid))

    first_activation = previous == 0
    status = (
        ActivationStatus.ACTIVE
        if new_activated >= subscribed
        else ActivationStatus.PARTIALLY_ACTIVATED
    )
    return ActivationResult(
        plantation_id=plantation.plantation_id,
        previous_activated_ha=previous,
        surface_paid_for_ha=surface_paid,
        new_activated_ha=new_activated,
        activation_status=status,
        activated_at=now if first_activation else plantation.activated_at,
        first_activation=first_activation,
    )


class ActivationCascade:
    """Applies settled DA payments to plantation activation."""

    PLANTATIONS_TABLE = "plantations"
    MAX_ATTEMPTS = 3

    def __init__(self, db: "DynamoDBService", unit_price_fallback: Decimal) -> None:
        """Initialize the cascade.

        Args:
            db: DynamoDB service instance
            unit_price_fallback: DA rate per hectare when a plantation has none
        """
        self.db = db
        self.unit_price_fallback = unit_price_fallback

    def apply(self, payment: Payment) -> ActivationResult | None:
        """Apply a settled DA payment to its plantation.

        Callers invoke this once per payment, right after the settlement that
        moved it to valid. Anything that is not a DA payment with a plantation
        is ignored.

        Args:
            payment: The payment as returned by the settlement

        Returns:
            The applied ActivationResult, or None if nothing applied

        Raises:
            ReconciliationError: If the plantation does not exist or keeps
                changing under concurrent cascades
        """
        if payment.payment_type != PaymentType.ACCESS_RIGHT or not payment.plantation_id:
            return None

        amount_paid = payment.amount_paid if payment.amount_paid is not None else payment.amount_due
        not_found = ReconciliationError(
            code=ErrorCode.PLANTATION_NOT_FOUND,
            details={"plantation_id": payment.plantation_id},
        )

        item = self.db.get_item(self.PLANTATIONS_TABLE, {"plantation_id": payment.plantation_id})
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            if not item:
                raise not_found

            plantation = self._item_to_plantation(item)
            result = compute_activation(
                plantation,
                amount_paid,
                self.unit_price_fallback,
                dt.datetime.now(dt.UTC),
            )

            write = self._write(item, result)
            if write.applied:
                log_payment_operation(
                    logger,
                    "activation_cascade",
                    payment_id=payment.payment_id,
                    reference=payment.reference,
                    plantation_id=result.plantation_id,
                    status=result.activation_status.value,
                    previous_activated_ha=str(result.previous_activated_ha),
                    new_activated_ha=str(result.new_activated_ha),
                )
                return result
            if write.missing:
                raise not_found

            # Retry against the image the failed condition was checked on
            item = write.item
            logger.info(
                "Plantation %s changed during cascade (attempt %d/%d), retrying",
                payment.plantation_id,
                attempt,
                self.MAX_ATTEMPTS,
            )

        raise ReconciliationError(
            code=ErrorCode.STORAGE_UNAVAILABLE,
            details={
                "plantation_id": payment.plantation_id,
                "message": "Concurrent activation updates did not settle",
            },
        )

    def _write(self, item: dict[str, Any], result: ActivationResult) -> "ConditionalWrite":
        """Compare-and-swap the activated surface against the image it was computed from."""
        assignments = ["superficie_activee = :new", "statut_global = :global", "updated_at = :now"]
        values: dict[str, Any] = {
            ":new": result.new_activated_ha,
            ":global": result.activation_status.value,
            ":now": dt.datetime.now(dt.UTC).isoformat(),
        }
        names: dict[str, str] | None = None
        if result.first_activation and result.activated_at:
            assignments.append("date_activation = :activated_at")
            values[":activated_at"] = result.activated_at.isoformat()
        if result.activation_status == ActivationStatus.ACTIVE:
            assignments.append("#statut = :active")
            values[":active"] = "active"
            names = {"#statut": "statut"}

        previous = item.get("superficie_activee")
        if previous is not None:
            condition = "superficie_activee = :previous"
            values[":previous"] = previous
        elif "superficie_activee" in item:
            condition = "attribute_type(superficie_activee, :null_type)"
            values[":null_type"] = "NULL"
        else:
            condition = "attribute_exists(plantation_id) AND attribute_not_exists(superficie_activee)"

        return self.db.update_item(
            self.PLANTATIONS_TABLE,
            {"plantation_id": result.plantation_id},
            "SET " + ", ".join(assignments),
            values,
            names,
            condition_expression=condition,
        )

    def _item_to_plantation(self, item: dict[str, Any]) -> Plantation:
        """Convert a DynamoDB item to a Plantation model."""
        rate = item.get("montant_da")
        activated_at = item.get("date_activation")
        status = item.get("statut_global")
        try:
            activation_status = ActivationStatus(status) if status else ActivationStatus.UNACTIVATED
        except ValueError:
            activation_status = ActivationStatus.UNACTIVATED
        return Plantation(
            plantation_id=item["plantation_id"],
            name=item.get("nom_plantation"),
            surface_subscribed_ha=Decimal(str(item.get("superficie_ha", 0))),
            surface_activated_ha=Decimal(str(item.get("superficie_activee") or 0)),
            unit_price_per_ha=Decimal(str(rate)) if rate else None,
            activation_status=activation_status,
            activated_at=dt.datetime.fromisoformat(activated_at) if activated_at else None,
        )
