"""Outbound text messages through the WAApiHub WhatsApp API.

Used only for OTP delivery. ``send_text`` never raises: every failure comes
back as ``SendResult(success=False, error=...)`` so the caller can clean up.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests
from django.conf import settings
from requests import RequestException

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def format_destination(phone: str) -> str:
    digits = "".join(ch for ch in str(phone) if ch.isdigit())
    if len(digits) == 12 and digits.startswith("91"):
        return f"+91-{digits[2:]}"
    if len(digits) == 11 and digits.startswith("0"):
        return f"+91-{digits[1:]}"
    if len(digits) == 10:
        return f"+91-{digits}"
    return str(phone).strip()


def send_text(destination: str, body: str) -> SendResult:
    api_key = getattr(settings, "WA_API_KEY", "")
    if not api_key:
        logger.error("WhatsApp service: missing WA_API_KEY")
        return SendResult(False, error="WhatsApp service not configured")

    url = f"{settings.WA_BASE_URL.rstrip('/')}/v1/chat/send/text"
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "ApiKey": api_key,
    }
    payload = {"receiver": format_destination(destination), "message": body}
    try:
        resp = requests.post(url, json=payload, headers=headers, timeout=getattr(settings, "WA_TIMEOUT", 10))
    except RequestException as e:
        logger.warning("WhatsApp request failed: %s", e.__class__.__name__)
        return SendResult(False, error="Messaging provider unreachable")

    try:
        data = resp.json()
    except ValueError:
        data = {}
    if resp.status_code in (200, 201):
        return SendResult(True, message_id=str(data.get("messageId") or data.get("id") or "sent"))
    logger.warning("WhatsApp send failed: status=%s", resp.status_code)
    return SendResult(False, error=data.get("message") or "Failed to send message via WhatsApp API")


def send_otp_message(phone: str, code: str) -> SendResult:
    minutes = max(1, getattr(settings, "OTP_TTL_SECONDS", 300) // 60)
    body = f"Your OTP is: {code}\nDo not share this with anyone.\nValid for {minutes} minutes."
    return send_text(phone, body)
