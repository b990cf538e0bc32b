import hashlib
import hmac
import json
import logging

import requests
from django.conf import settings
from requests import RequestException

logger = logging.getLogger(__name__)


class RazorpayError(Exception): pass


def _credentials():
    key_id = getattr(settings, "RAZORPAY_KEY_ID", "")
    key_secret = getattr(settings, "RAZORPAY_KEY_SECRET", "")
    if not key_id or not key_secret:
        raise RazorpayError("Missing RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET")
    return key_id, key_secret


def _base_url() -> str:
    return getattr(settings, "RAZORPAY_BASE_URL", "https://api.razorpay.com").rstrip("/")


def create_order(amount_paise: int, currency: str = "INR", receipt: str = "", notes: dict | None = None) -> dict:
    """Create a gateway order. Returns the gateway's order object (``id`` etc.)."""
    if int(amount_paise) <= 0:
        raise RazorpayError("Invalid amount value")
    payload = {
        "amount": int(amount_paise),
        "currency": currency or "INR",
        "receipt": (receipt or "")[:40],
        "notes": notes or {},
    }
    url = f"{_base_url()}/v1/orders"
    try:
        resp = requests.post(
            url, auth=_credentials(), json=payload,
            timeout=getattr(settings, "RAZORPAY_TIMEOUT", 15),
        )
    except RequestException as e:
        raise RazorpayError(f"Gateway request failed: {e.__class__.__name__}")
    try:
        data = resp.json()
    except ValueError:
        data = {"raw": resp.text}
    if resp.status_code == 200 and data.get("id"):
        return data
    if resp.status_code == 401: hint = "Check RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET."
    elif resp.status_code == 400: hint = "Bad request: amount/currency/receipt."
    elif resp.status_code >= 500: hint = f"Gateway error {resp.status_code}."
    else: hint = f"HTTP {resp.status_code}"
    logger.warning("Razorpay order creation failed: %s", hint)
    raise RazorpayError(f"Create order failed: {hint} Response: {json.dumps(data)[:300]}")


def sign_payload(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_webhook_signature(raw_body: bytes, signature: str | None) -> bool:
    """Constant-time check of ``X-Razorpay-Signature`` over the raw body."""
    secret = getattr(settings, "RAZORPAY_WEBHOOK_SECRET", "")
    if not secret:
        logger.error("RAZORPAY_WEBHOOK_SECRET is not configured; rejecting webhook")
        return False
    if not signature:
        return False
    expected = sign_payload(raw_body or b"", secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8", "replace"))
