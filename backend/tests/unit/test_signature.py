"""Unit tests for webhook signature helpers."""

import hashlib
import hmac

from shared.utils.signature import compute_payload_hash, compute_signature, verify_signature

SECRET = "whsec_signature_test"
PAYLOAD = b'{"event":"transaction.approved","entity":{"id":104567,"reference":"REF-001"}}'


def _hmac_hex(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


class TestComputeSignature:
    def test_matches_hmac_sha256_hex(self):
        assert compute_signature(PAYLOAD, SECRET) == _hmac_hex(PAYLOAD, SECRET)

    def test_depends_on_secret(self):
        assert compute_signature(PAYLOAD, SECRET) != compute_signature(PAYLOAD, "other")


class TestVerifySignature:
    def test_accepts_correct_signature(self):
        assert verify_signature(PAYLOAD, _hmac_hex(PAYLOAD, SECRET), SECRET) is True

    def test_accepts_upper_case_hex(self):
        assert verify_signature(PAYLOAD, _hmac_hex(PAYLOAD, SECRET).upper(), SECRET) is True

    def test_rejects_tampered_byte(self):
        """A single changed byte invalidates a signature computed on the original."""
        signature = _hmac_hex(PAYLOAD, SECRET)
        tampered = PAYLOAD.replace(b"REF-001", b"REF-002")

        assert verify_signature(tampered, signature, SECRET) is False
        assert verify_signature(tampered, _hmac_hex(tampered, SECRET), SECRET) is True

    def test_rejects_missing_signature(self):
        assert verify_signature(PAYLOAD, None, SECRET) is False
        assert verify_signature(PAYLOAD, "", SECRET) is False

    def test_rejects_wrong_secret(self):
        assert verify_signature(PAYLOAD, _hmac_hex(PAYLOAD, "wrong"), SECRET) is False

    def test_rejects_non_ascii_signature(self):
        assert verify_signature(PAYLOAD, "é" * 64, SECRET) is False


def test_payload_hash_is_sha256():
    assert compute_payload_hash(PAYLOAD) == hashlib.sha256(PAYLOAD).hexdigest()
