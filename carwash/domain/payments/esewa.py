"""
eSewa ePay v2 gateway codec

- Outbound: signed form fields and the auto-submitting HTML form
- Inbound: base64 JSON callback decoding and signature verification
- Status API client for re-driving unsettled transactions
"""

import base64
import binascii
import json
import logging
from html import escape
from typing import Optional

import httpx

from ...config import (
    ESEWA_FORM_URL,
    ESEWA_MERCHANT_CODE,
    ESEWA_SECRET_KEY,
    ESEWA_STATUS_URL,
    ESEWA_VERIFY_SIGNATURE,
)
from ...errors import CallbackMalformed, SignatureInvalid
from ...webhook_security import sign_fields, verify_signed_fields

logger = logging.getLogger(__name__)

SIGNED_FIELD_NAMES = ("total_amount", "transaction_uuid", "product_code")
# A callback must be signed over at least these; the outbound form signature does not cover status
CALLBACK_SIGNED_FIELDS = (
    "transaction_code",
    "status",
    "total_amount",
    "transaction_uuid",
    "product_code",
)
STATUS_COMPLETE = "COMPLETE"


def format_amount(value) -> str:
    """eSewa compares amounts as text; whole rupees are sent without decimals"""
    amount = float(value)
    if amount.is_integer():
        return str(int(amount))
    return f"{amount:.2f}"


def parse_amount(value) -> Optional[float]:
    """Parse a gateway amount such as "1,000.0"; None when absent or unparsable"""
    if value is None:
        return None
    try:
        return float(str(value).replace(",", ""))
    except ValueError:
        return None


def build_form_fields(
    amount,
    transaction_uuid: str,
    success_url: str,
    failure_url: str,
    product_code: str = ESEWA_MERCHANT_CODE,
    secret_key: str = ESEWA_SECRET_KEY,
) -> dict[str, str]:
    """Form fields posted to the gateway, signed over total_amount/transaction_uuid/product_code"""
    total_amount = format_amount(amount)
    fields = {
        "amount": total_amount,
        "tax_amount": "0",
        "total_amount": total_amount,
        "transaction_uuid": transaction_uuid,
        "product_code": product_code,
        "product_service_charge": "0",
        "product_delivery_charge": "0",
        "success_url": success_url,
        "failure_url": failure_url,
        "signed_field_names": ",".join(SIGNED_FIELD_NAMES),
    }
    fields["signature"] = sign_fields(secret_key, fields, list(SIGNED_FIELD_NAMES))
    return fields


def render_auto_submit_form(fields: dict[str, str], action: str = ESEWA_FORM_URL) -> str:
    """HTML page that posts the fields to the gateway as soon as it loads"""
    inputs = "\n".join(
        f'      <input type="hidden" name="{escape(name)}" value="{escape(str(value))}" />'
        for name, value in fields.items()
    )
    return f"""<!DOCTYPE html>
<html>
  <head><title>Redirecting to eSewa...</title></head>
  <body onload="document.forms['esewa'].submit()">
    <p>Redirecting to eSewa. Please wait...</p>
    <form id="esewa" name="esewa" action="{escape(action)}" method="POST">
{inputs}
      <noscript><button type="submit">Continue to eSewa</button></noscript>
    </form>
  </body>
</html>
"""


def decode_callback_payload(encoded: Optional[str]) -> dict:
    """
    Decode the gateway's base64 JSON response.

    Raises CallbackMalformed with reason no_data, invalid_response or invalid_data.
    """
    if not encoded:
        logger.error("❌ No encoded data received from eSewa")
        raise CallbackMalformed("No data received from the gateway", reason="no_data")

    # Query strings turn '+' into spaces
    encoded = encoded.strip().replace(" ", "+")
    try:
        decoded = base64.b64decode(encoded + "=" * (-len(encoded) % 4))
        data = json.loads(decoded.decode("utf-8"))
    except (binascii.Error, ValueError) as e:
        logger.error(f"❌ Error decoding eSewa response: {str(e)}")
        raise CallbackMalformed("Gateway response could not be decoded") from e

    if (
        not isinstance(data, dict)
        or not isinstance(data.get("transaction_uuid"), str)
        or not data["transaction_uuid"].strip()
        or not isinstance(data.get("status"), str)
        or not data["status"]
    ):
        logger.error("❌ Missing required fields in eSewa response")
        raise CallbackMalformed(
            "Gateway response is missing required fields", reason="invalid_data"
        )

    return data


def signed_field_list(data: dict) -> list[str]:
    return [name.strip() for name in str(data.get("signed_field_names") or "").split(",")]


def verify_callback_signature(
    data: dict,
    secret_key: str = ESEWA_SECRET_KEY,
    enforce: Optional[bool] = None,
    merchant_code: str = ESEWA_MERCHANT_CODE,
) -> None:
    """
    Raise SignatureInvalid unless the callback is signed over the settlement
    fields for our merchant code. Only the HMAC check itself can be switched
    off for a sandbox environment.
    """
    if data.get("product_code") != merchant_code:
        logger.error(f"❌ Callback for foreign product code {data.get('product_code')!r}")
        raise SignatureInvalid("Callback is not for this merchant")

    if enforce is None:
        enforce = ESEWA_VERIFY_SIGNATURE
    if not enforce:
        logger.warning(
            f"⚠️ Accepting unverified eSewa callback for {data.get('transaction_uuid')} "
            f"(ESEWA_VERIFY_SIGNATURE=false)"
        )
        return

    missing = [name for name in CALLBACK_SIGNED_FIELDS if name not in signed_field_list(data)]
    if missing:
        logger.error(f"❌ Callback signature does not cover {missing}")
        raise SignatureInvalid("Callback signature does not cover the payment status")

    if not verify_signed_fields(secret_key, data):
        raise SignatureInvalid("Invalid signature in eSewa response")


class EsewaStatusClient:
    """Queries the gateway's transaction status API"""

    def __init__(
        self,
        status_url: str = ESEWA_STATUS_URL,
        product_code: str = ESEWA_MERCHANT_CODE,
        timeout: float = 15.0,
    ):
        self.status_url = status_url
        self.product_code = product_code
        self.timeout = timeout

    def check_status(self, transaction_uuid: str, total_amount) -> dict:
        """
        Returns the gateway's JSON, e.g.
        {"product_code", "transaction_uuid", "total_amount", "status", "ref_id"}
        """
        params = {
            "product_code": self.product_code,
            "total_amount": format_amount(total_amount),
            "transaction_uuid": transaction_uuid,
        }
        logger.info(f"🔍 Checking eSewa status for {transaction_uuid}")
        with httpx.Client(timeout=self.timeout) as client:
            response = client.get(self.status_url, params=params)
            response.raise_for_status()
            return response.json()


def get_status_client() -> EsewaStatusClient:
    """Dependency for the gateway status client"""
    return EsewaStatusClient()
