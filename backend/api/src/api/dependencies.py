"""FastAPI dependency injection providers for shared services.

Service instances are created lazily and cached with @lru_cache, so each
Lambda container builds them once.

Service Dependency Graph:
    ReconciliationSettings (env + SSM)
    DynamoDBService (singleton via get_dynamodb_service)
        ├── PaymentService
        ├── ActivationCascade (unit price fallback from settings)
        │       └── Reconciler (with PaymentService)
        └── WebhookHandler (webhook secret from settings)
    Provider verifiers (credentials from settings)

Testing:
    Use reset_services() to clear cached instances between tests, or
    override dependencies on the app.
"""

from functools import lru_cache

from shared.config import ReconciliationSettings, load_settings
from shared.models import PaymentProvider
from shared.services.activation import ActivationCascade
from shared.services.dynamodb import get_dynamodb_service
from shared.services.payment_service import PaymentService
from shared.services.providers import TransactionVerifier, build_verifiers
from shared.services.reconciliation import Reconciler
from shared.services.webhook_handler import WebhookHandler


@lru_cache
def get_settings() -> ReconciliationSettings:
    """Get settings loaded from the environment and SSM."""
    return load_settings()


@lru_cache
def get_payment_service() -> PaymentService:
    """Get cached PaymentService instance."""
    return PaymentService(db=get_dynamodb_service())


@lru_cache
def get_activation_cascade() -> ActivationCascade:
    """Get cached ActivationCascade instance."""
    return ActivationCascade(
        db=get_dynamodb_service(),
        unit_price_fallback=get_settings().da_unit_price_fallback,
    )


@lru_cache
def get_reconciler() -> Reconciler:
    """Get cached Reconciler instance."""
    return Reconciler(payments=get_payment_service(), cascade=get_activation_cascade())


@lru_cache
def get_verifiers() -> dict[PaymentProvider, TransactionVerifier]:
    """Get cached provider clients."""
    return build_verifiers(get_settings())


@lru_cache
def get_webhook_handler() -> WebhookHandler:
    """Get cached WebhookHandler instance."""
    return WebhookHandler(
        db=get_dynamodb_service(),
        payments=get_payment_service(),
        reconciler=get_reconciler(),
        webhook_secret=get_settings().webhook_secret,
    )


def reset_services() -> None:
    """Clear all cached service instances.

    Also resets the underlying DynamoDB singleton.
    """
    from shared.services.dynamodb import reset_dynamodb_service

    get_settings.cache_clear()
    get_payment_service.cache_clear()
    get_activation_cascade.cache_clear()
    get_reconciler.cache_clear()
    get_verifiers.cache_clear()
    get_webhook_handler.cache_clear()

    reset_dynamodb_service()
