import hashlib
import hmac
import json
import time
from typing import List, Optional, Tuple

from llmboost_billing.errors import WebhookSignatureError
from llmboost_billing.webhooks.events import StripeEvent

ALLOWED_DRIFT_SECONDS = 300  # 5 minutes
SIGNATURE_SCHEME = "v1"


def parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    """Split ``t=...,v1=...,v1=...`` into the timestamp and every v1 signature."""
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise WebhookSignatureError("Invalid timestamp in Stripe-Signature header")
        elif key == SIGNATURE_SCHEME and value:
            signatures.append(value)
    return timestamp, signatures


def compute_signature(payload: str, timestamp: int, secret: str) -> str:
    signed_payload = f"{timestamp}.{payload}".encode()
    return hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()


def verify_signature(
    payload: str,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = ALLOWED_DRIFT_SECONDS,
    now: Optional[int] = None,
) -> StripeEvent:
    """
    Authenticate a webhook body and parse it into a StripeEvent.

    The timestamp must be within ``tolerance`` seconds of ``now`` in either
    direction, and at least one ``v1`` signature must match
    HMAC-SHA256(secret, "{t}.{payload}"). Raises WebhookSignatureError on
    any failure; has no side effects.
    """
    if not signature_header:
        raise WebhookSignatureError("Missing Stripe-Signature header")
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")

    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")

    timestamp, signatures = parse_signature_header(signature_header)
    if timestamp is None or not signatures:
        raise WebhookSignatureError("Unable to extract timestamp and signatures from header")

    now = int(time.time()) if now is None else int(now)
    if abs(now - timestamp) > tolerance:
        raise WebhookSignatureError("Webhook timestamp outside the tolerance zone")

    expected_signature = compute_signature(payload, timestamp, secret)
    if not any(hmac.compare_digest(expected_signature, sig) for sig in signatures):
        raise WebhookSignatureError("Invalid webhook signature")

    try:
        data = json.loads(payload)
    except ValueError:
        raise WebhookSignatureError("Webhook payload is not valid JSON")
    return StripeEvent.from_payload(data)
