import re
from datetime import date
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError

PAN_RE = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
AADHAAR_RE = re.compile(r"^[0-9]{12}$")

ID_PATTERNS = {
    "PAN": (PAN_RE, "Invalid PAN format (e.g., ABCDE1234F)"),
    "AADHAAR": (AADHAAR_RE, "Invalid Aadhaar number (12 digits)"),
}

PLACEHOLDER_HEADS = {"", "select", "0", "undefined", "null", "none"}

MINIMUM_AGE = 18


def compute_age(dob: date, today: date) -> int:
    """Whole years between ``dob`` and ``today``.

    Compares (month, day) tuples so a 29 February birthday only counts as
    passed on 1 March in non-leap years.
    """
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def validate_adult(dob: date, today: date | None = None):
    today = today or date.today()
    if dob > today:
        raise ValidationError("Invalid date of birth")
    if compute_age(dob, today) < MINIMUM_AGE:
        raise ValidationError("Donor must be 18 years or older")


def normalize_id_number(id_type: str, id_number: str) -> str:
    value = re.sub(r"\s+", "", id_number or "")
    return value.upper() if id_type == "PAN" else value


def validate_government_id(id_type: str, id_number: str):
    if id_type not in ID_PATTERNS:
        raise ValidationError("Invalid ID type")
    pattern, message = ID_PATTERNS[id_type]
    if not pattern.match(id_number or ""):
        raise ValidationError(message)


def validate_amount(amount: Decimal):
    low = Decimal(str(getattr(settings, "DONATION_MIN_AMOUNT", 1)))
    high = Decimal(str(getattr(settings, "DONATION_MAX_AMOUNT", 10_000_000)))
    if amount < low or amount > high:
        raise ValidationError(f"Amount must be between {low} and {high}")


def validate_donation_head(head_id: str, head_name: str):
    if (head_id or "").strip().lower() in PLACEHOLDER_HEADS or not (head_name or "").strip():
        raise ValidationError("Please select a valid donation head")
    if (head_name or "").strip().lower() in PLACEHOLDER_HEADS:
        raise ValidationError("Please select a valid donation head")
