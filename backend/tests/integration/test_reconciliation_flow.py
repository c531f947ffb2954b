"""Integration tests for the two reconciliation paths racing on one payment.

The webhook handler and the return-flow poller share the same tables, the
same Reconciler and the same activation cascade. Whatever order they run in,
a payment settles once and its plantation is activated once.

Scenarios:
1. Approved webhook activates 1 of 2 ha
2. Duplicate approved webhook leaves the plantation unchanged
3. Return with a reference to an already valid payment succeeds without provider calls
4. First provider errors, second approves; record names the second provider
5. No verifiable outcome after 10 retries; manual refresh still checks
"""

import json
from decimal import Decimal

import pytest

from shared.models import (
    FedapayVerification,
    KkiapayVerification,
    PaymentProvider,
    PaymentStatus,
    PaymentType,
    ProviderVerificationError,
    ReturnState,
)
from shared.services.return_flow import PollingSchedule, ReturnFlowPoller, ReturnParams
from shared.utils.signature import compute_signature

TEST_WEBHOOK_SECRET = "whsec_agricapital_test"


def _webhook(handler, event_type: str = "transaction.approved", reference: str = "REF-001", amount: int = 30000, event_id: str = "evt_1"):
    raw = json.dumps(
        {
            "id": event_id,
            "name": event_type,
            "entity": {"id": 555, "reference": reference, "status": "approved", "amount": amount},
        }
    ).encode()
    return handler.handle(raw, compute_signature(raw, TEST_WEBHOOK_SECRET))


@pytest.fixture
def poller_for(payment_service, reconciler):
    def _make(verifiers, max_retries: int = 10, **params) -> ReturnFlowPoller:
        return ReturnFlowPoller(
            payments=payment_service,
            reconciler=reconciler,
            verifiers=verifiers,
            params=ReturnParams(**params),
            schedule=PollingSchedule(max_retries=max_retries, interval_seconds=0),
        )

    return _make


def _activated(stored_item) -> Decimal:
    return stored_item("plantations", {"plantation_id": "PLT-001"})["superficie_activee"]


# === Scenarios ===


def test_scenario_1_webhook_partially_activates(webhook_handler, seed_payment, seed_plantation, stored_item):
    seed_plantation(superficie_ha=Decimal("2"), superficie_activee=Decimal("0"))
    payment = seed_payment(reference="REF-001", amount_due=Decimal("30000"))

    _webhook(webhook_handler)

    plantation = stored_item("plantations", {"plantation_id": "PLT-001"})
    assert plantation["superficie_activee"] == Decimal("1")
    assert plantation["statut_global"] == "da_partiel"
    assert plantation["date_activation"]
    assert stored_item("payments", {"payment_id": payment.payment_id})["statut"] == "valide"


def test_scenario_2_duplicate_webhook(webhook_handler, seed_payment, seed_plantation, stored_item):
    seed_plantation()
    payment = seed_payment()
    _webhook(webhook_handler)
    before = stored_item("payments", {"payment_id": payment.payment_id})

    result = _webhook(webhook_handler)

    assert result.processing_result == "duplicate"
    assert _activated(stored_item) == Decimal("1")
    after = stored_item("payments", {"payment_id": payment.payment_id})
    assert after["statut"] == before["statut"] == "valide"
    assert after["updated_at"] == before["updated_at"]


def test_scenario_3_already_valid(webhook_handler, seed_payment, seed_plantation, poller_for, fake_verifier):
    seed_plantation()
    seed_payment(reference="REF-002")
    _webhook(webhook_handler, reference="REF-002")
    kkiapay = fake_verifier(PaymentProvider.KKIAPAY, ProviderVerificationError("x", provider="kkiapay"))
    fedapay = fake_verifier(PaymentProvider.FEDAPAY, ProviderVerificationError("x", provider="fedapay"))

    poller = poller_for(
        {PaymentProvider.KKIAPAY: kkiapay, PaymentProvider.FEDAPAY: fedapay}, reference="REF-002"
    )

    assert poller.check() == ReturnState.SUCCEEDED
    assert kkiapay.calls == []
    assert fedapay.calls == []


def test_scenario_4_second_provider_approves(
    seed_payment, seed_plantation, payment_service, poller_for, fake_verifier, stored_item
):
    seed_plantation()
    payment = seed_payment()
    # A return with only a transaction ID finds the payment once the
    # provider transaction has been recorded on it
    payment_service.db.update_item(
        "payments",
        {"payment_id": payment.payment_id},
        "SET fedapay_transaction_id = :tid",
        {":tid": "T-9"},
    )
    kkiapay = fake_verifier(PaymentProvider.KKIAPAY, ProviderVerificationError("timeout", provider="kkiapay"))
    fedapay = fake_verifier(
        PaymentProvider.FEDAPAY,
        FedapayVerification(transaction_id="T-9", status="approved", amount=Decimal("30000")),
    )

    poller = poller_for(
        {PaymentProvider.KKIAPAY: kkiapay, PaymentProvider.FEDAPAY: fedapay}, transaction_id="T-9"
    )

    assert poller.check() == ReturnState.SUCCEEDED
    item = stored_item("payments", {"payment_id": payment.payment_id})
    assert item["statut"] == "valide"
    assert item["metadata"]["verified_provider"] == "fedapay"
    assert kkiapay.calls == ["T-9"]
    assert _activated(stored_item) == Decimal("1")


def test_scenario_5_retries_then_manual_refresh(seed_payment, poller_for, fake_verifier):
    seed_payment()
    kkiapay = fake_verifier(
        PaymentProvider.KKIAPAY, KkiapayVerification(transaction_id="T-9", status="pending")
    )
    poller = poller_for(
        {PaymentProvider.KKIAPAY: kkiapay},
        reference="REF-001",
        transaction_id="T-9",
        provider=PaymentProvider.KKIAPAY,
    )

    assert poller.run() == ReturnState.AWAITING_CONFIRMATION
    assert poller.schedule.retries_used == 10
    assert poller.schedule.wait() is False
    calls_after_budget = len(kkiapay.calls)

    assert poller.refresh() == ReturnState.AWAITING_CONFIRMATION
    assert len(kkiapay.calls) == calls_after_budget + 1


# === Races ===


def test_webhook_then_poller(webhook_handler, seed_payment, seed_plantation, poller_for, fake_verifier, stored_item):
    seed_plantation()
    seed_payment()
    kkiapay = fake_verifier(
        PaymentProvider.KKIAPAY,
        KkiapayVerification(transaction_id="T-9", status="success", amount=Decimal("30000")),
    )

    _webhook(webhook_handler)
    state = poller_for({PaymentProvider.KKIAPAY: kkiapay}, reference="REF-001", transaction_id="T-9").check()

    assert state == ReturnState.SUCCEEDED
    assert kkiapay.calls == []
    assert _activated(stored_item) == Decimal("1")


def test_poller_then_webhook(webhook_handler, seed_payment, seed_plantation, poller_for, fake_verifier, stored_item):
    seed_plantation()
    payment = seed_payment()
    kkiapay = fake_verifier(
        PaymentProvider.KKIAPAY,
        KkiapayVerification(transaction_id="T-9", status="success", amount=Decimal("30000")),
    )

    state = poller_for({PaymentProvider.KKIAPAY: kkiapay}, reference="REF-001", transaction_id="T-9").check()
    result = _webhook(webhook_handler)

    assert state == ReturnState.SUCCEEDED
    assert result.processing_result == "duplicate"
    assert _activated(stored_item) == Decimal("1")
    item = stored_item("payments", {"payment_id": payment.payment_id})
    assert item["metadata"]["verified_provider"] == "kkiapay"


def test_poller_loses_race_mid_check(
    webhook_handler, seed_payment, seed_plantation, payment_service, poller_for, stored_item
):
    """The webhook settles between the poller's read and its write."""
    seed_plantation()
    seed_payment()

    class WebhookFirstVerifier:
        provider = PaymentProvider.KKIAPAY
        is_configured = True

        def verify(self, transaction_id):
            _webhook(webhook_handler)
            return KkiapayVerification(transaction_id=transaction_id, status="success", amount=Decimal("30000"))

    poller = poller_for({PaymentProvider.KKIAPAY: WebhookFirstVerifier()}, reference="REF-001", transaction_id="T-9")

    assert poller.check() == ReturnState.SUCCEEDED
    assert poller.payment.status == PaymentStatus.VALID
    assert _activated(stored_item) == Decimal("1")


def test_two_da_payments_accumulate(webhook_handler, seed_payment, seed_plantation, stored_item):
    seed_plantation(superficie_ha=Decimal("3"))
    seed_payment(reference="REF-A")
    seed_payment(reference="REF-B", amount_due=Decimal("60000"))

    _webhook(webhook_handler, reference="REF-A", event_id="evt_a")
    _webhook(webhook_handler, reference="REF-B", amount=60000, event_id="evt_b")

    plantation = stored_item("plantations", {"plantation_id": "PLT-001"})
    assert plantation["superficie_activee"] == Decimal("3")
    assert plantation["statut_global"] == "actif"
    assert plantation["statut"] == "active"


def test_recurring_fee_never_activates(webhook_handler, seed_payment, seed_plantation, stored_item):
    seed_plantation()
    seed_payment(payment_type=PaymentType.RECURRING_FEE)

    _webhook(webhook_handler)

    assert _activated(stored_item) == Decimal("0")
