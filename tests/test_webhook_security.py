import pytest

from carwash.webhook_security import (
    WebhookSignatureError,
    build_signed_message,
    constant_time_compare,
    sign_fields,
    verify_signed_fields,
)

SECRET = "8gBm/:&EnhH.1/q"


def test_signed_message_follows_field_order():
    data = {"product_code": "EPAYTEST", "total_amount": "100", "transaction_uuid": "11-201-13"}
    message = build_signed_message(data, ["total_amount", "transaction_uuid", "product_code"])
    assert message == "total_amount=100,transaction_uuid=11-201-13,product_code=EPAYTEST"


def test_gateway_documentation_vector():
    data = {"total_amount": "100", "transaction_uuid": "11-201-13", "product_code": "EPAYTEST"}
    signature = sign_fields(SECRET, data, ["total_amount", "transaction_uuid", "product_code"])
    assert signature == "4Ov7pCI1zIOdwtV2BRMUNjz1upIlT/COTxfLhWvVurE="


def _signed_payload():
    data = {
        "transaction_code": "000AWEO",
        "status": "COMPLETE",
        "total_amount": "1000.0",
        "transaction_uuid": "250610-162413",
        "product_code": "EPAYTEST",
        "signed_field_names": (
            "transaction_code,status,total_amount,transaction_uuid,product_code,signed_field_names"
        ),
    }
    data["signature"] = sign_fields(SECRET, data, data["signed_field_names"].split(","))
    return data


def test_verify_accepts_payload_signed_over_its_own_field_list():
    assert verify_signed_fields(SECRET, _signed_payload()) is True


def test_verify_rejects_tampered_amount():
    data = _signed_payload()
    data["total_amount"] = "1.0"
    assert verify_signed_fields(SECRET, data) is False
    with pytest.raises(WebhookSignatureError):
        verify_signed_fields(SECRET, data, raise_on_failure=True)


def test_verify_rejects_wrong_secret():
    assert verify_signed_fields("another-secret", _signed_payload()) is False


def test_verify_requires_signature_fields():
    data = _signed_payload()
    del data["signed_field_names"]
    assert verify_signed_fields(SECRET, data) is False


def test_constant_time_compare_handles_empty_values():
    assert constant_time_compare("abc", "abc")
    assert not constant_time_compare("", "")
    assert not constant_time_compare("abc", "abd")
