import secrets
import string
import time

from django.conf import settings
from django.utils import timezone

BASE36_DIGITS = string.digits + string.ascii_lowercase
UPPER_ALNUM = string.ascii_uppercase + string.digits


def base36(number: int) -> str:
    out = ""
    while number:
        number, rem = divmod(number, 36)
        out = BASE36_DIGITS[rem] + out
    return out or "0"


def now_ms() -> int:
    return int(time.time() * 1000)


def random_suffix(n=3, alphabet=string.ascii_uppercase):
    return "".join(secrets.choice(alphabet) for _ in range(n))


def gen_receipt_number(prefix=None, now=None):
    # e.g., GRD-2025-LZ3K9QX1ABC
    prefix = prefix or getattr(settings, "RECEIPT_PREFIX", "GRD")
    now = now or timezone.now()
    return f"{prefix}-{now.year}-{base36(now_ms()).upper()}{random_suffix(3)}"


def gen_txn_ref(method: str) -> str:
    tag = {"CASH": "CASH", "UPI": "UPI", "CHEQUE": "CHQ"}.get(method, method)
    return f"{tag}-{now_ms()}-{random_suffix(6, UPPER_ALNUM)}"


def mask_id_number(value: str) -> str:
    value = value or ""
    if len(value) <= 4:
        return value
    return "X" * (len(value) - 4) + value[-4:]
