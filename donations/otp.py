"""WhatsApp one-time codes for donor mobile verification.

Codes are stored hashed (``make_password``) and bound to the canonical
10-digit number. Older rows may carry a ``91`` country prefix, so lookups and
deletes cover both forms.
"""

import logging
import re
import secrets
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.utils import timezone

from . import ratelimit, whatsapp
from .exceptions import InvalidMobile, OtpDeliveryFailed, OtpExpired, OtpInvalid, OtpRateLimited
from .models import OtpRecord

logger = logging.getLogger(__name__)

OTP_LENGTH = 6
_CODE_RE = re.compile(r"^\d{6}$")


def normalize_mobile(raw) -> str:
    digits = re.sub(r"\D", "", str(raw or ""))
    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith("0"):
        digits = digits[1:]
    if len(digits) != 10:
        raise InvalidMobile("Invalid mobile number format")
    return digits


def mask_mobile(mobile: str) -> str:
    return f"******{mobile[-4:]}" if mobile else ""


def _variants(mobile: str):
    return [mobile, f"91{mobile}"]


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


def _check_rate_limits(mobile: str, client_ip):
    window = getattr(settings, "OTP_RATE_WINDOW_SECONDS", 300)
    if client_ip:
        result = ratelimit.hit("otp-ip", client_ip, getattr(settings, "OTP_IP_RATE_LIMIT", 5), window)
        if not result.allowed:
            raise OtpRateLimited("Too many OTP requests. Please try again later.", result.retry_after)
    result = ratelimit.hit("otp-mobile", mobile, getattr(settings, "OTP_MOBILE_RATE_LIMIT", 3), window)
    if not result.allowed:
        raise OtpRateLimited("Too many OTP requests for this number. Please try again later.", result.retry_after)


def send_otp(mobile, client_ip=None) -> str:
    """Issue and deliver a fresh code; returns the canonical number."""
    mobile = normalize_mobile(mobile)
    _check_rate_limits(mobile, client_ip)

    OtpRecord.objects.filter(mobile__in=_variants(mobile)).delete()
    code = generate_code()
    ttl = getattr(settings, "OTP_TTL_SECONDS", 300)
    record = OtpRecord.objects.create(
        mobile=mobile,
        otp_hash=make_password(code),
        expires_at=timezone.now() + timedelta(seconds=ttl),
    )

    result = whatsapp.send_otp_message(f"91{mobile}", code)
    if not result.success:
        record.delete()
        logger.warning("OTP delivery failed for %s: %s", mask_mobile(mobile), result.error)
        raise OtpDeliveryFailed("Failed to send OTP. Please try again.")

    logger.info("OTP sent to %s", mask_mobile(mobile))
    return mobile


def verify_otp(mobile, code) -> None:
    try:
        mobile = normalize_mobile(mobile)
    except InvalidMobile:
        raise OtpInvalid("Invalid OTP")
    code = str(code or "").strip()
    if not _CODE_RE.match(code):
        raise OtpInvalid("Invalid OTP")

    variants = _variants(mobile)
    record = OtpRecord.objects.filter(mobile__in=variants).order_by("-created_at", "-pk").first()
    if record is None:
        raise OtpInvalid("Invalid OTP")
    if record.expires_at <= timezone.now():
        OtpRecord.objects.filter(mobile__in=variants).delete()
        raise OtpExpired("OTP expired")
    if not check_password(code, record.otp_hash):
        logger.info("OTP mismatch for %s", mask_mobile(mobile))
        raise OtpInvalid("Invalid OTP")

    OtpRecord.objects.filter(mobile__in=variants).delete()
    logger.info("OTP verified for %s", mask_mobile(mobile))
