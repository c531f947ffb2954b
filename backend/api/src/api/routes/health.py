"""Health check endpoints."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends

from api.dependencies import get_settings
from shared.config import ReconciliationSettings

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check")
async def health(settings: ReconciliationSettings = Depends(get_settings)) -> dict[str, Any]:
    """Report service status and which integrations are configured."""
    creds = settings.credentials
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "environment": settings.environment,
        "webhook_signature_check": bool(settings.webhook_secret),
        "providers": {
            "kkiapay": bool(
                creds.kkiapay_public_key and creds.kkiapay_private_key and creds.kkiapay_secret_key
            ),
            "fedapay": bool(creds.fedapay_secret_key),
        },
    }
