"""Payment endpoints for returning payers.

Provides REST endpoints for:
- Checking a payment after the provider redirects the payer back (public)
- Looking up a provider transaction by ID (public)
"""

from fastapi import APIRouter, Depends, Request

from api.dependencies import (
    get_payment_service,
    get_reconciler,
    get_settings,
    get_verifiers,
)
from api.models.payments import (
    PaymentSummary,
    ReturnCheckResponse,
    VerifiedTransaction,
    VerifyTransactionRequest,
    VerifyTransactionResponse,
)
from shared.config import ReconciliationSettings
from shared.models import (
    ErrorCode,
    PaymentProvider,
    ProviderVerificationError,
    ReconciliationError,
    VerificationOutcome,
)
from shared.services.payment_service import PaymentService
from shared.services.providers import TransactionVerifier
from shared.services.reconciliation import Reconciler
from shared.services.return_flow import PollingSchedule, ReturnFlowPoller, ReturnParams
from shared.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["payments"])


@router.get(
    "/payments/return",
    summary="Check payment on return",
    description="""
Run one reconciliation check for a payer redirected back from the provider.

**Query parameters** (each provider spells them differently):
- `reference` or `ref`: application payment reference
- `id`, `transaction_id` or `transactionId`: provider transaction ID
- `status`: provider-reported status
- `provider`: `kkiapay`, `fedapay` or `auto` (default)

A pending payment is verified with the provider and settled when the outcome
is definitive. While the state is `awaiting-confirmation`, clients should
re-check after `retry_after_seconds`, up to `max_retries` times, and may offer
a manual refresh afterwards.
""",
    response_model=ReturnCheckResponse,
)
def check_payment_return(
    request: Request,
    payments: PaymentService = Depends(get_payment_service),
    reconciler: Reconciler = Depends(get_reconciler),
    verifiers: dict[PaymentProvider, TransactionVerifier] = Depends(get_verifiers),
    settings: ReconciliationSettings = Depends(get_settings),
) -> ReturnCheckResponse:
    """Check a payment for a returning payer."""
    params = ReturnParams.from_query(request.query_params)
    poller = ReturnFlowPoller(
        payments=payments,
        reconciler=reconciler,
        verifiers=verifiers,
        params=params,
        schedule=PollingSchedule(settings.poll_max_retries, settings.poll_interval_seconds),
    )
    poller.check()

    return ReturnCheckResponse(
        state=poller.state,
        payment=PaymentSummary.from_payment(poller.payment) if poller.payment else None,
        retry_after_seconds=None if poller.is_final else settings.poll_interval_seconds,
        max_retries=settings.poll_max_retries,
    )


@router.post(
    "/payments/verify/{provider}",
    summary="Verify provider transaction",
    description="""
Look up a transaction with `kkiapay` or `fedapay` and return its normalized
status. Read-only: no payment record is changed.
""",
    response_model=VerifyTransactionResponse,
    responses={
        400: {"description": "Unknown provider"},
        502: {"description": "Provider could not be reached"},
        503: {"description": "Provider credentials are not configured"},
    },
)
def verify_transaction(
    provider: str,
    body: VerifyTransactionRequest,
    verifiers: dict[PaymentProvider, TransactionVerifier] = Depends(get_verifiers),
) -> VerifyTransactionResponse:
    """Verify a transaction with one provider."""
    try:
        payment_provider = PaymentProvider(provider.lower())
    except ValueError:
        raise ReconciliationError(
            code=ErrorCode.UNKNOWN_PROVIDER, details={"provider": provider}
        ) from None

    verifier = verifiers.get(payment_provider)
    if verifier is None or not verifier.is_configured:
        raise ReconciliationError(
            code=ErrorCode.PROVIDER_NOT_CONFIGURED,
            details={"provider": payment_provider.value},
        )

    try:
        verification = verifier.verify(body.transaction_id)
    except ProviderVerificationError as e:
        raise ReconciliationError(
            code=ErrorCode.PROVIDER_UNAVAILABLE,
            details={"provider": payment_provider.value, "message": str(e)},
        ) from e

    return VerifyTransactionResponse(
        provider=payment_provider.value,
        transaction=VerifiedTransaction(
            transaction_id=verification.transaction_id,
            status=verification.status,
            amount=verification.amount,
            is_payment_successful=verification.outcome == VerificationOutcome.APPROVED,
            outcome=verification.outcome.value,
        ),
    )
