"""Return-flow reconciliation for payers redirected back from a provider.

One ReturnFlowPoller serves one payer session. Each check re-reads the
payment record before acting, so a check never relies on what a previous
check saw. The automatic loop is driven by a PollingSchedule with a bounded
retry counter; refresh() runs a check outside that budget.
"""

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from shared.models import (
    Payment,
    PaymentProvider,
    PaymentStatus,
    ProviderVerificationError,
    ReturnState,
    VerificationOutcome,
)
from shared.utils.logging import get_logger, log_payment_operation

from .payment_service import PaymentService
from .providers import TransactionVerifier
from .reconciliation import Reconciler

logger = get_logger(__name__)

AUTO_PROVIDER_ORDER = (PaymentProvider.KKIAPAY, PaymentProvider.FEDAPAY)
TRUSTED_URL_STATUSES = frozenset({"success", "approved"})


def _first(query: Mapping[str, str], *keys: str) -> str | None:
    for key in keys:
        value = query.get(key)
        if value:
            return value
    return None


@dataclass(frozen=True)
class ReturnParams:
    """Identifiers carried by the provider redirect URL."""

    reference: str | None = None
    transaction_id: str | None = None
    status: str | None = None
    provider: PaymentProvider | None = None

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> "ReturnParams":
        """Read redirect query parameters, accepting each provider's spelling.

        `provider` values other than a known provider (including `auto`) mean
        the provider is not known in advance.
        """
        hint = (query.get("provider") or "auto").strip().lower()
        provider = next((p for p in PaymentProvider if p.value == hint), None)
        return cls(
            reference=_first(query, "reference", "ref"),
            transaction_id=_first(query, "id", "transaction_id", "transactionId"),
            status=query.get("status") or None,
            provider=provider,
        )


class PollingSchedule:
    """Bounded, cancellable retry timer.

    wait() blocks for one interval and reports whether another check should
    run. It returns False once the budget is spent or after cancel().
    """

    def __init__(self, max_retries: int = 10, interval_seconds: float = 2.5) -> None:
        self.max_retries = max_retries
        self.interval_seconds = interval_seconds
        self.retries_used = 0
        self._cancelled = threading.Event()

    @property
    def exhausted(self) -> bool:
        return self.retries_used >= self.max_retries

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def wait(self) -> bool:
        if self.cancelled or self.exhausted:
            return False
        if self._cancelled.wait(self.interval_seconds):
            return False
        self.retries_used += 1
        return True

    def cancel(self) -> None:
        self._cancelled.set()


class ReturnFlowPoller:
    """Determines the outcome of a payment for a returning payer."""

    def __init__(
        self,
        payments: PaymentService,
        reconciler: Reconciler,
        verifiers: Mapping[PaymentProvider, TransactionVerifier],
        params: ReturnParams,
        schedule: PollingSchedule | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            payments: Payment lookups
            reconciler: Shared settlement and activation cascade
            verifiers: Provider clients keyed by provider
            params: Identifiers from the redirect URL
            schedule: Retry schedule for run(); defaults to 10 x 2.5 s
        """
        self.payments = payments
        self.reconciler = reconciler
        self.verifiers = verifiers
        self.params = params
        self.schedule = schedule or PollingSchedule()
        self.checks_run = 0
        self._state = ReturnState.CHECKING
        self._payment: Payment | None = None

    @property
    def state(self) -> ReturnState:
        return self._state

    @property
    def payment(self) -> Payment | None:
        """Payment record as of the last check."""
        return self._payment

    @property
    def is_final(self) -> bool:
        return self._state in (ReturnState.SUCCEEDED, ReturnState.FAILED)

    def run(self) -> ReturnState:
        """Check now, then re-check on the schedule until final or out of budget."""
        self.check()
        while not self.is_final and self.schedule.wait():
            self.check()
        if not self.is_final:
            logger.info(
                "Automatic re-checks stopped after %d retries (reference=%s)",
                self.schedule.retries_used,
                self.params.reference,
            )
        return self._state

    def refresh(self) -> ReturnState:
        """Manual re-check; not counted against the retry budget."""
        return self.check()

    def cancel(self) -> None:
        self.schedule.cancel()

    def check(self) -> ReturnState:
        """Run one reconciliation check and return the resulting state."""
        self.checks_run += 1
        try:
            self._state = self._check()
        except Exception as e:
            log_payment_operation(
                logger,
                "return_check",
                reference=self.params.reference,
                error=f"{type(e).__name__}: {e}",
            )
            self._state = ReturnState.AWAITING_CONFIRMATION
        return self._state

    def _check(self) -> ReturnState:
        params = self.params
        if not params.reference and not params.transaction_id:
            logger.info("Return check without reference or transaction ID")
            return ReturnState.AWAITING_CONFIRMATION

        payment = self.payments.find_payment(params.reference, params.transaction_id)
        self._payment = payment
        if payment is None:
            logger.info(
                "No payment found for reference=%s transaction_id=%s",
                params.reference,
                params.transaction_id,
            )
            return ReturnState.AWAITING_CONFIRMATION

        if payment.is_terminal:
            return self._reflect(payment)

        if params.transaction_id:
            state = self._verify_with_providers(payment, params.transaction_id)
            if state is not None:
                return state

        if params.status and params.status.strip().lower() in TRUSTED_URL_STATUSES:
            logger.info(
                "Settling %s from redirect status %s", payment.reference, params.status
            )
            return self._settle(payment, approved=True, amount_paid=payment.amount_due)

        return ReturnState.AWAITING_CONFIRMATION

    def _provider_order(self, payment: Payment) -> tuple[PaymentProvider, ...]:
        provider = payment.metadata.payment_provider or self.params.provider
        return (provider,) if provider else AUTO_PROVIDER_ORDER

    def _verify_with_providers(self, payment: Payment, transaction_id: str) -> ReturnState | None:
        for provider in self._provider_order(payment):
            verifier = self.verifiers.get(provider)
            if verifier is None:
                continue
            try:
                verification = verifier.verify(transaction_id)
            except ProviderVerificationError as e:
                logger.warning("%s verification failed for %s: %s", provider.value, transaction_id, e)
                continue

            outcome = verification.outcome
            if outcome == VerificationOutcome.INDETERMINATE:
                return None
            approved = outcome == VerificationOutcome.APPROVED
            return self._settle(
                payment,
                approved=approved,
                transaction_id=transaction_id,
                amount_paid=verification.amount if approved else Decimal("0"),
                verified_provider=provider,
            )
        return None

    def _settle(
        self,
        payment: Payment,
        *,
        approved: bool,
        amount_paid: Decimal,
        transaction_id: str | None = None,
        verified_provider: PaymentProvider | None = None,
    ) -> ReturnState:
        settled = self.reconciler.settle(
            payment,
            approved=approved,
            transaction_id=transaction_id,
            amount_paid=amount_paid,
            verified_provider=verified_provider,
        )
        if settled is None:
            # Another path settled it first
            current = self.payments.get_payment(payment.payment_id)
            self._payment = current
            if current is None or not current.is_terminal:
                return ReturnState.AWAITING_CONFIRMATION
            return self._reflect(current)

        self._payment = settled
        return self._reflect(settled)

    @staticmethod
    def _reflect(payment: Payment) -> ReturnState:
        if payment.status == PaymentStatus.VALID:
            return ReturnState.SUCCEEDED
        return ReturnState.FAILED
