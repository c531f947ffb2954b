"""Plantation model for subscribed parcels."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import ActivationStatus


class Plantation(BaseModel):
    """A subscribed parcel whose surface is unlocked by DA payments.

    Surfaces are in hectares.
    """

    plantation_id: str = Field(..., description="Plantation ID")
    name: str | None = Field(default=None, description="Display name")
    surface_subscribed_ha: Decimal = Field(..., ge=0, description="Subscribed surface")
    surface_activated_ha: Decimal = Field(
        default=Decimal("0"), ge=0, description="Surface unlocked so far"
    )
    unit_price_per_ha: Decimal | None = Field(
        default=None,
        description="DA rate in F CFA per hectare, if configured for this plantation",
    )
    activation_status: ActivationStatus = Field(default=ActivationStatus.UNACTIVATED)
    activated_at: datetime | None = Field(default=None)


class ActivationResult(BaseModel):
    """Outcome of applying one DA payment to a plantation."""

    model_config = ConfigDict(frozen=True)

    plantation_id: str
    previous_activated_ha: Decimal
    surface_paid_for_ha: Decimal
    new_activated_ha: Decimal
    activation_status: ActivationStatus
    activated_at: datetime | None = None
    first_activation: bool = False
