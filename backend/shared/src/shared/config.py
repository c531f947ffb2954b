"""Reconciliation settings.

Settings are loaded once from environment variables and SSM Parameter Store,
then passed explicitly to the webhook handler, the activation cascade and the
provider adapters. Nothing downstream reads the environment itself; the API
module takes its CORS origins from cors_allow_origins() when the app is built.
"""

import logging
import os
from decimal import Decimal

from pydantic import BaseModel, Field

from shared.services.ssm_service import SSMService, get_ssm_service

logger = logging.getLogger(__name__)

# F CFA per hectare charged for the access right when a plantation has no
# rate of its own.
DEFAULT_DA_UNIT_PRICE = Decimal("30000")

# Parameter names relative to /agricapital/<environment>/
SECRET_NAMES = (
    "fedapay/webhook_secret",
    "fedapay/secret_key",
    "kkiapay/public_key",
    "kkiapay/private_key",
    "kkiapay/secret_key",
)


class ProviderCredentials(BaseModel):
    """API credentials for the two payment providers."""

    fedapay_secret_key: str | None = None
    kkiapay_public_key: str | None = None
    kkiapay_private_key: str | None = None
    kkiapay_secret_key: str | None = None


class ReconciliationSettings(BaseModel):
    """Configuration for the payment reconciliation paths."""

    environment: str = "dev"
    webhook_secret: str | None = Field(
        default=None,
        description="FedaPay webhook signing secret; signature checks are skipped when unset",
    )
    credentials: ProviderCredentials = Field(default_factory=ProviderCredentials)
    provider_sandbox: bool = True
    provider_timeout_seconds: float = Field(default=10.0, gt=0)
    da_unit_price_fallback: Decimal = Field(default=DEFAULT_DA_UNIT_PRICE, gt=0)
    poll_max_retries: int = Field(default=10, ge=0)
    poll_interval_seconds: float = Field(default=2.5, ge=0)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def cors_allow_origins() -> list[str]:
    """Origins allowed by the API CORS middleware, from CORS_ALLOW_ORIGINS.

    Comma-separated; blank entries are dropped and an unset or empty value
    allows every origin.
    """
    origins = [
        origin.strip() for origin in os.getenv("CORS_ALLOW_ORIGINS", "").split(",") if origin.strip()
    ]
    return origins or ["*"]


def load_settings(
    environment: str | None = None,
    ssm: SSMService | None = None,
) -> ReconciliationSettings:
    """Build settings from the environment and SSM Parameter Store.

    Secrets live under /agricapital/<environment>/. A parameter that does not
    exist leaves the matching setting unset.

    Args:
        environment: Environment name. Defaults to ENVIRONMENT env var.
        ssm: SSM service to read secrets from. Defaults to the shared instance.

    Returns:
        Populated ReconciliationSettings.
    """
    env = environment or os.getenv("ENVIRONMENT", "dev")
    ssm = ssm or get_ssm_service()
    secrets = ssm.get_parameters_by_path(f"/agricapital/{env}")
    missing = sorted(set(SECRET_NAMES) - set(secrets))
    if missing:
        logger.warning("SSM parameters not set for %s: %s", env, ", ".join(missing))

    credentials = ProviderCredentials(
        fedapay_secret_key=secrets.get("fedapay/secret_key"),
        kkiapay_public_key=secrets.get("kkiapay/public_key"),
        kkiapay_private_key=secrets.get("kkiapay/private_key"),
        kkiapay_secret_key=secrets.get("kkiapay/secret_key"),
    )

    settings = ReconciliationSettings(
        environment=env,
        webhook_secret=secrets.get("fedapay/webhook_secret"),
        credentials=credentials,
        provider_sandbox=_env_flag("PROVIDER_SANDBOX", True),
        provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
        da_unit_price_fallback=Decimal(
            os.getenv("DA_UNIT_PRICE_FALLBACK", str(DEFAULT_DA_UNIT_PRICE))
        ),
        poll_max_retries=int(os.getenv("POLL_MAX_RETRIES", "10")),
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "2.5")),
    )

    if not settings.webhook_secret:
        logger.warning(
            "FedaPay webhook secret not configured for %s - signature verification skipped",
            env,
        )
    return settings
