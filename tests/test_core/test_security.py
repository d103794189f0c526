"""
支付回调签名校验测试
"""

import json
import pytest

from app.core.exceptions import ExternalSignatureError, ValidationError
from app.core.security import compute_signature, construct_event, verify_signature

SECRET = "whsec_test"
NOW = 1_760_000_000


def sign(payload: bytes, timestamp: int = NOW, secret: str = SECRET) -> str:
    return f"t={timestamp},v1={compute_signature(payload, timestamp, secret)}"


class TestVerifySignature:

    def test_valid_signature(self):
        payload = b'{"id": "evt_1"}'
        verify_signature(payload, sign(payload), SECRET, now=NOW)

    def test_any_matching_v1_signature_accepted(self):
        payload = b'{"id": "evt_1"}'
        header = f"t={NOW},v1=deadbeef,v1={compute_signature(payload, NOW, SECRET)}"
        verify_signature(payload, header, SECRET, now=NOW)

    def test_tampered_payload(self):
        header = sign(b'{"amount": 100}')
        with pytest.raises(ExternalSignatureError):
            verify_signature(b'{"amount": 1}', header, SECRET, now=NOW)

    def test_wrong_secret(self):
        payload = b"{}"
        with pytest.raises(ExternalSignatureError):
            verify_signature(payload, sign(payload, secret="other"), SECRET, now=NOW)

    def test_timestamp_outside_tolerance(self):
        payload = b"{}"
        with pytest.raises(ExternalSignatureError):
            verify_signature(payload, sign(payload, timestamp=NOW - 301), SECRET, tolerance=300, now=NOW)

    @pytest.mark.parametrize("header", [None, "", "v1=abc", f"t={NOW}", "t=notanumber,v1=abc"])
    def test_malformed_header(self, header):
        with pytest.raises(ExternalSignatureError):
            verify_signature(b"{}", header, SECRET, now=NOW)


class TestConstructEvent:

    def test_returns_parsed_event(self):
        payload = json.dumps({"id": "evt_1", "type": "checkout.session.completed"}).encode()
        event = construct_event(payload, sign(payload), SECRET, now=NOW)
        assert event["id"] == "evt_1"

    def test_signature_checked_before_parsing(self):
        with pytest.raises(ExternalSignatureError):
            construct_event(b"not json", "t=1,v1=abc", SECRET, now=NOW)

    def test_signed_but_invalid_json(self):
        payload = b"not json"
        with pytest.raises(ValidationError):
            construct_event(payload, sign(payload), SECRET, now=NOW)

    def test_signed_non_object(self):
        payload = b"[1, 2]"
        with pytest.raises(ValidationError):
            construct_event(payload, sign(payload), SECRET, now=NOW)
