"""
Shared-secret signatures for payment gateway callbacks.

The gateway signs an ordered "name=value,name=value" message with
HMAC-SHA256 and sends the base64 digest alongside the list of field names
it covered. Comparison is constant time.
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class WebhookSignatureError(Exception):
    """A callback signature is missing or does not match"""


def constant_time_compare(a: str, b: str) -> bool:
    """Empty values never match"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256_base64(secret: str, payload: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def build_signed_message(data: dict, field_names: list[str]) -> str:
    """
    Join fields in the given order as "name=value" pairs separated by commas.

    e.g. "total_amount=100,transaction_uuid=11-201-13,product_code=EPAYTEST"
    """
    return ",".join(f"{name}={data.get(name, '')}" for name in field_names)


def sign_fields(secret: str, data: dict, field_names: list[str]) -> str:
    """Sign the listed fields of data with the shared secret"""
    message = build_signed_message(data, field_names)
    return compute_hmac_sha256_base64(secret, message.encode("utf-8"))


def verify_signed_fields(secret: str, data: dict, raise_on_failure: bool = False) -> bool:
    """
    Verify a gateway payload that names its own signed fields.

    The payload must carry 'signed_field_names' (comma separated) and 'signature'.
    """
    field_names_raw: Optional[str] = data.get("signed_field_names")
    received_signature: Optional[str] = data.get("signature")

    if not field_names_raw or not received_signature:
        logger.warning("🚫 Callback missing signed_field_names or signature")
        if raise_on_failure:
            raise WebhookSignatureError("Missing signature fields")
        return False

    field_names = [name.strip() for name in str(field_names_raw).split(",") if name.strip()]
    expected_signature = sign_fields(secret, data, field_names)

    if constant_time_compare(expected_signature, str(received_signature)):
        logger.debug(f"✅ Signature verified over fields: {field_names}")
        return True

    logger.warning(
        f"🚫 Signature mismatch - Expected: {expected_signature[:12]}..., "
        f"Got: {str(received_signature)[:12]}..."
    )
    if raise_on_failure:
        raise WebhookSignatureError("Invalid signature")
    return False
