"""Pytest configuration and fixtures for AgriCapital payment reconciliation tests.

This module provides reusable fixtures for testing:
- DynamoDB and SSM mocking with moto
- Service instances wired to the mocked tables
- Seed helpers for payments and plantations
- A TestClient with service dependencies overridden
"""

import os
from decimal import Decimal
from typing import Any, Callable, Generator

import boto3
import httpx
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-agricapital")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

TABLE_PREFIX = "test-agricapital"
TEST_WEBHOOK_SECRET = "whsec_agricapital_test"
TEST_UNIT_PRICE = Decimal("30000")


# === Singleton Reset ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset service singletons before and after each test.

    Services created inside one mock_aws context must not leak into the next.
    """
    from api.dependencies import reset_services
    from shared.services.ssm_service import SSMService, get_ssm_service

    def _reset() -> None:
        reset_services()
        SSMService._instance = None
        SSMService._cache.clear()
        get_ssm_service.cache_clear()

    _reset()
    yield
    _reset()


# === AWS Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"
    os.environ["DYNAMODB_TABLE_PREFIX"] = TABLE_PREFIX


@pytest.fixture
def mock_aws_env(aws_credentials: None) -> Generator[None, None, None]:
    """Run the test inside a moto mock."""
    with mock_aws():
        yield


def _create_tables(client: Any) -> None:
    client.create_table(
        TableName=f"{TABLE_PREFIX}-payments",
        KeySchema=[{"AttributeName": "payment_id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "payment_id", "AttributeType": "S"},
            {"AttributeName": "reference", "AttributeType": "S"},
            {"AttributeName": "fedapay_transaction_id", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "reference-index",
                "KeySchema": [{"AttributeName": "reference", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "transaction-index",
                "KeySchema": [{"AttributeName": "fedapay_transaction_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    client.create_table(
        TableName=f"{TABLE_PREFIX}-plantations",
        KeySchema=[{"AttributeName": "plantation_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "plantation_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    client.create_table(
        TableName=f"{TABLE_PREFIX}-provider-events",
        KeySchema=[{"AttributeName": "record_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "record_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def dynamodb_tables(mock_aws_env: None) -> Any:
    """Create the payments, plantations and provider-events tables.

    Returns:
        DynamoDBService bound to the mocked tables
    """
    from shared.services.dynamodb import get_dynamodb_service

    _create_tables(boto3.client("dynamodb", region_name="eu-west-1"))
    return get_dynamodb_service()


@pytest.fixture
def dynamodb_resource(dynamodb_tables: Any) -> Any:
    """Raw boto3 resource for asserting on stored items."""
    return boto3.resource("dynamodb", region_name="eu-west-1")


@pytest.fixture
def stored_item(dynamodb_resource: Any) -> Callable[[str, dict[str, Any]], dict[str, Any] | None]:
    """Read an item straight from a mocked table."""

    def _get(table: str, key: dict[str, Any]) -> dict[str, Any] | None:
        response = dynamodb_resource.Table(f"{TABLE_PREFIX}-{table}").get_item(Key=key)
        return response.get("Item")

    return _get


@pytest.fixture
def provider_events(dynamodb_resource: Any) -> Callable[[], list[dict[str, Any]]]:
    """List all audit rows."""

    def _scan() -> list[dict[str, Any]]:
        return dynamodb_resource.Table(f"{TABLE_PREFIX}-provider-events").scan()["Items"]

    return _scan


# === Service Fixtures ===


@pytest.fixture
def payment_service(dynamodb_tables: Any) -> Any:
    from shared.services.payment_service import PaymentService

    return PaymentService(db=dynamodb_tables)


@pytest.fixture
def activation_cascade(dynamodb_tables: Any) -> Any:
    from shared.services.activation import ActivationCascade

    return ActivationCascade(db=dynamodb_tables, unit_price_fallback=TEST_UNIT_PRICE)


@pytest.fixture
def reconciler(payment_service: Any, activation_cascade: Any) -> Any:
    from shared.services.reconciliation import Reconciler

    return Reconciler(payments=payment_service, cascade=activation_cascade)


@pytest.fixture
def webhook_handler(dynamodb_tables: Any, payment_service: Any, reconciler: Any) -> Any:
    from shared.services.webhook_handler import WebhookHandler

    return WebhookHandler(
        db=dynamodb_tables,
        payments=payment_service,
        reconciler=reconciler,
        webhook_secret=TEST_WEBHOOK_SECRET,
    )


# === Seed Helpers ===


@pytest.fixture
def seed_plantation(dynamodb_resource: Any) -> Callable[..., dict[str, Any]]:
    """Insert a plantation row."""

    def _seed(
        plantation_id: str = "PLT-001",
        superficie_ha: Decimal = Decimal("2"),
        superficie_activee: Decimal | None = Decimal("0"),
        montant_da: Decimal | None = None,
        **fields: Any,
    ) -> dict[str, Any]:
        item: dict[str, Any] = {
            "plantation_id": plantation_id,
            "nom_plantation": "Plantation Test",
            "superficie_ha": superficie_ha,
            "statut_global": "en_attente_da",
            "statut": "en_attente",
        }
        if superficie_activee is not None:
            item["superficie_activee"] = superficie_activee
        if montant_da is not None:
            item["montant_da"] = montant_da
        item.update(fields)
        dynamodb_resource.Table(f"{TABLE_PREFIX}-plantations").put_item(Item=item)
        return item

    return _seed


@pytest.fixture
def seed_payment(payment_service: Any) -> Callable[..., Any]:
    """Create a pending payment through PaymentService."""
    from shared.models import PaymentType

    def _seed(
        reference: str = "REF-001",
        amount_due: Decimal = Decimal("30000"),
        payment_type: PaymentType = PaymentType.ACCESS_RIGHT,
        plantation_id: str | None = "PLT-001",
        payment_provider: Any = None,
    ) -> Any:
        return payment_service.create_pending_payment(
            reference=reference,
            payment_type=payment_type,
            amount_due=amount_due,
            plantation_id=plantation_id,
            payment_provider=payment_provider,
        )

    return _seed


# === Provider Fakes ===


class FakeVerifier:
    """Provider verifier returning scripted results.

    Each entry of `responses` is either a verification result or an
    exception to raise.
    """

    def __init__(self, provider: Any, *responses: Any, configured: bool = True) -> None:
        self.provider = provider
        self.responses = list(responses)
        self.calls: list[str] = []
        self.configured = configured

    @property
    def is_configured(self) -> bool:
        return self.configured

    def verify(self, transaction_id: str) -> Any:
        self.calls.append(transaction_id)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_verifier() -> type[FakeVerifier]:
    return FakeVerifier


@pytest.fixture
def mock_transport() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.MockTransport]:
    """Build an httpx.MockTransport from a handler."""
    return httpx.MockTransport


# === API Client ===


@pytest.fixture
def settings() -> Any:
    from shared.config import ProviderCredentials, ReconciliationSettings

    return ReconciliationSettings(
        environment="test",
        webhook_secret=TEST_WEBHOOK_SECRET,
        credentials=ProviderCredentials(
            fedapay_secret_key="sk_sandbox_test",
            kkiapay_public_key="pk_test",
            kkiapay_private_key="tpk_test",
            kkiapay_secret_key="tsk_test",
        ),
        da_unit_price_fallback=TEST_UNIT_PRICE,
    )


@pytest.fixture
def verifiers() -> dict[Any, Any]:
    """Verifiers used by the API client; tests replace entries as needed."""
    return {}


@pytest.fixture
def api_client(
    settings: Any,
    dynamodb_tables: Any,
    payment_service: Any,
    reconciler: Any,
    webhook_handler: Any,
    verifiers: dict[Any, Any],
) -> Generator[Any, None, None]:
    """TestClient with services bound to the mocked tables."""
    from fastapi.testclient import TestClient

    from api import dependencies
    from api.main import app

    app.dependency_overrides[dependencies.get_settings] = lambda: settings
    app.dependency_overrides[dependencies.get_payment_service] = lambda: payment_service
    app.dependency_overrides[dependencies.get_reconciler] = lambda: reconciler
    app.dependency_overrides[dependencies.get_webhook_handler] = lambda: webhook_handler
    app.dependency_overrides[dependencies.get_verifiers] = lambda: verifiers

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client

    app.dependency_overrides.clear()
