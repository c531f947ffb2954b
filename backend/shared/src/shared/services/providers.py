"""Payment provider clients for transaction verification.

Both clients look a transaction up by its provider ID and return a tagged
verification result. Anything short of a parsed 2xx answer raises
ProviderVerificationError, which the return flow treats as indeterminate.

API references:
- FedaPay: GET /v1/transactions/{id}
- KKiaPay: POST /api/v1/transactions/status
"""

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from shared.models import (
    FedapayVerification,
    KkiapayVerification,
    PaymentProvider,
    ProviderVerification,
    ProviderVerificationError,
)
from shared.utils.logging import get_logger

if TYPE_CHECKING:
    from shared.config import ReconciliationSettings

logger = get_logger(__name__)


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class TransactionVerifier(Protocol):
    """Anything that can look up a provider transaction."""

    provider: PaymentProvider

    @property
    def is_configured(self) -> bool: ...

    def verify(self, transaction_id: str) -> ProviderVerification: ...


class _ProviderClient:
    """Shared request handling for provider clients."""

    provider: PaymentProvider

    def __init__(self, timeout: float, transport: httpx.BaseTransport | None = None) -> None:
        self._timeout = timeout
        self._transport = transport

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderVerificationError(
                f"{self.provider.value} returned HTTP {e.response.status_code}",
                provider=self.provider.value,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderVerificationError(
                f"{self.provider.value} request failed: {e}",
                provider=self.provider.value,
            ) from e
        except ValueError as e:
            raise ProviderVerificationError(
                f"{self.provider.value} returned a non-JSON body",
                provider=self.provider.value,
            ) from e

        if not isinstance(body, dict):
            raise ProviderVerificationError(
                f"{self.provider.value} returned an unexpected body",
                provider=self.provider.value,
            )
        return body


class KkiapayClient(_ProviderClient):
    """KKiaPay transaction status client.

    Authenticates with the public, private and secret API keys.
    """

    provider = PaymentProvider.KKIAPAY

    def __init__(
        self,
        *,
        public_key: str | None,
        private_key: str | None,
        secret_key: str | None,
        sandbox: bool = True,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(timeout, transport)
        self.public_key = public_key
        self.private_key = private_key
        self.secret_key = secret_key
        self.base_url = (
            "https://api-sandbox.kkiapay.me" if sandbox else "https://api.kkiapay.me"
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.public_key and self.private_key and self.secret_key)

    def verify(self, transaction_id: str) -> KkiapayVerification:
        """Fetch the status of a KKiaPay transaction.

        Args:
            transaction_id: KKiaPay transaction ID

        Returns:
            KkiapayVerification

        Raises:
            ProviderVerificationError: If keys are missing or the lookup fails
        """
        if not self.is_configured:
            raise ProviderVerificationError(
                "KKiaPay API keys are not configured", provider=self.provider.value
            )

        body = self._request(
            "POST",
            f"{self.base_url}/api/v1/transactions/status",
            json={"transactionId": transaction_id},
            headers={
                "Accept": "application/json",
                "x-api-key": self.public_key,
                "x-private-key": self.private_key,
                "x-secret-key": self.secret_key,
            },
        )

        status = str(body.get("status") or body.get("state") or "").lower()
        successful = body.get("isPaymentSuccessful")
        result = KkiapayVerification(
            transaction_id=str(body.get("transactionId") or transaction_id),
            status=status,
            amount=_to_decimal(body.get("amount")),
            is_payment_successful=bool(successful) if successful is not None else status == "success",
            raw=body,
        )
        logger.info(
            "KKiaPay transaction %s status=%s outcome=%s",
            transaction_id,
            result.status,
            result.outcome.value,
        )
        return result


class FedaPayClient(_ProviderClient):
    """FedaPay transaction client.

    Authenticates with a bearer secret key (sk_sandbox_* or sk_live_*).
    """

    provider = PaymentProvider.FEDAPAY

    def __init__(
        self,
        *,
        secret_key: str | None,
        sandbox: bool = True,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(timeout, transport)
        self.secret_key = secret_key
        self.base_url = (
            "https://sandbox-api.fedapay.com" if sandbox else "https://api.fedapay.com"
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    def verify(self, transaction_id: str) -> FedapayVerification:
        """Fetch a FedaPay transaction.

        Args:
            transaction_id: FedaPay transaction ID

        Returns:
            FedapayVerification

        Raises:
            ProviderVerificationError: If the key is missing or the lookup fails
        """
        if not self.is_configured:
            raise ProviderVerificationError(
                "FedaPay secret key is not configured", provider=self.provider.value
            )

        body = self._request(
            "GET",
            f"{self.base_url}/v1/transactions/{transaction_id}",
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {self.secret_key}",
            },
        )

        # The API wraps the resource as {"v1/transaction": {...}}
        transaction = body.get("v1/transaction") or body.get("transaction") or body
        if not isinstance(transaction, dict):
            raise ProviderVerificationError(
                "FedaPay returned an unexpected body", provider=self.provider.value
            )

        status = str(transaction.get("status") or transaction.get("state") or "").lower()
        result = FedapayVerification(
            transaction_id=str(transaction.get("id") or transaction_id),
            status=status,
            amount=_to_decimal(transaction.get("amount")),
            raw=transaction,
        )
        logger.info(
            "FedaPay transaction %s status=%s outcome=%s",
            transaction_id,
            result.status,
            result.outcome.value,
        )
        return result


def build_verifiers(
    settings: "ReconciliationSettings",
    transport: httpx.BaseTransport | None = None,
) -> dict[PaymentProvider, TransactionVerifier]:
    """Create one client per provider from settings.

    Args:
        settings: Reconciliation settings holding credentials and timeout
        transport: Optional httpx transport (tests use httpx.MockTransport)

    Returns:
        Mapping of provider to verifier
    """
    creds = settings.credentials
    return {
        PaymentProvider.KKIAPAY: KkiapayClient(
            public_key=creds.kkiapay_public_key,
            private_key=creds.kkiapay_private_key,
            secret_key=creds.kkiapay_secret_key,
            sandbox=settings.provider_sandbox,
            timeout=settings.provider_timeout_seconds,
            transport=transport,
        ),
        PaymentProvider.FEDAPAY: FedaPayClient(
            secret_key=creds.fedapay_secret_key,
            sandbox=settings.provider_sandbox,
            timeout=settings.provider_timeout_seconds,
            transport=transport,
        ),
    }
