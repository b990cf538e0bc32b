from django import forms
from django.core.exceptions import ValidationError
from django.utils import timezone
from django.utils.dateparse import parse_date

from .models import Donation
from .otp import InvalidMobile, normalize_mobile
from .validators import (
    normalize_id_number,
    validate_adult,
    validate_amount,
    validate_donation_head,
    validate_government_id,
)

REQUIRED_DONOR_MESSAGE = "Missing required donor details (name, mobile, address, dob, ID type, ID number)"


def _text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def donor_form_data(raw) -> dict:
    """Flatten the JSON ``donor`` object into ``DonorForm`` field names.

    ``address`` may arrive as the legacy string or as an object; ``addressObj``
    is the structured form sent by newer clients.
    """
    raw = raw if isinstance(raw, dict) else {}
    address = raw.get("address")
    structured = raw.get("addressObj")
    if isinstance(address, dict):
        structured, address = address, ""
    structured = structured if isinstance(structured, dict) else {}
    return {
        "name": _text(raw.get("name")),
        "mobile": _text(raw.get("mobile")),
        "email": _text(raw.get("email")),
        "email_opt_in": bool(raw.get("emailOptIn")),
        "address": _text(address),
        "address_line": _text(structured.get("line")),
        "address_city": _text(structured.get("city")),
        "address_state": _text(structured.get("state")),
        "address_country": _text(structured.get("country")) or "India",
        "address_pincode": _text(structured.get("pincode")),
        "anonymous_display": bool(raw.get("anonymousDisplay")),
        "dob": _text(raw.get("dob")),
        "id_type": _text(raw.get("idType")).upper() or Donation.ID_PAN,
        "id_number": _text(raw.get("idNumber")),
    }


class DonorForm(forms.Form):
    """Donor snapshot. Trust flags (email verification, OTP) are not fields."""

    name = forms.CharField(max_length=150, error_messages={"required": REQUIRED_DONOR_MESSAGE})
    mobile = forms.CharField(max_length=20, required=False)
    email = forms.EmailField(required=False, error_messages={"invalid": "Invalid email address"})
    email_opt_in = forms.BooleanField(required=False)
    address = forms.CharField(required=False, max_length=500)
    address_line = forms.CharField(required=False, max_length=255)
    address_city = forms.CharField(required=False, max_length=100)
    address_state = forms.CharField(required=False, max_length=100)
    address_country = forms.CharField(required=False, max_length=100)
    address_pincode = forms.CharField(required=False, max_length=12)
    anonymous_display = forms.BooleanField(required=False)
    dob = forms.CharField(error_messages={"required": REQUIRED_DONOR_MESSAGE})
    id_type = forms.CharField(max_length=8, error_messages={"required": REQUIRED_DONOR_MESSAGE})
    id_number = forms.CharField(max_length=16, error_messages={"required": REQUIRED_DONOR_MESSAGE})

    def __init__(self, *args, mobile_required=True, allowed_id_types=("PAN", "AADHAAR"), **kwargs):
        super().__init__(*args, **kwargs)
        self.mobile_required = mobile_required
        self.allowed_id_types = allowed_id_types

    def clean_mobile(self):
        value = self.cleaned_data.get("mobile", "")
        if not value or value.upper() == "N/A":
            if self.mobile_required:
                raise ValidationError(REQUIRED_DONOR_MESSAGE)
            return "N/A"
        try:
            return normalize_mobile(value)
        except InvalidMobile:
            raise ValidationError("Invalid mobile number format")

    def clean_dob(self):
        raw = self.cleaned_data["dob"]
        try:
            dob = parse_date(raw[:10])
        except ValueError:
            dob = None
        if dob is None:
            raise ValidationError("Invalid date of birth")
        validate_adult(dob, today=timezone.localdate())
        return dob

    def clean_id_type(self):
        value = self.cleaned_data["id_type"].upper()
        if value not in self.allowed_id_types:
            if self.allowed_id_types == ("PAN",):
                raise ValidationError("Only PAN is accepted")
            raise ValidationError("Invalid ID type")
        return value

    def clean(self):
        cleaned = super().clean()
        id_type = cleaned.get("id_type")
        if id_type and "id_number" in cleaned:
            number = normalize_id_number(id_type, cleaned["id_number"])
            try:
                validate_government_id(id_type, number)
            except ValidationError as e:
                self.add_error("id_number", e)
            else:
                cleaned["id_number"] = number
        has_address = cleaned.get("address") or cleaned.get("address_line") or cleaned.get("address_city")
        if not has_address and not self.errors:
            raise ValidationError(REQUIRED_DONOR_MESSAGE)
        return cleaned


class DonationCreateForm(forms.Form):
    """Public donation request. There is no ``otp_verified`` field."""

    donation_head_id = forms.CharField(max_length=64, required=False)
    donation_head_name = forms.CharField(max_length=150, required=False)
    amount = forms.DecimalField(
        max_digits=12, decimal_places=2,
        error_messages={"required": "Invalid donation data", "invalid": "Invalid amount"},
    )
    referral_code = forms.CharField(max_length=32, required=False)

    def clean_amount(self):
        amount = self.cleaned_data["amount"]
        validate_amount(amount)
        return amount

    def clean(self):
        cleaned = super().clean()
        validate_donation_head(cleaned.get("donation_head_id", ""), cleaned.get("donation_head_name", ""))
        return cleaned


class OfflineDonationForm(DonationCreateForm):
    payment_method = forms.ChoiceField(
        choices=[(Donation.METHOD_CASH, "Cash"), (Donation.METHOD_UPI, "UPI"), (Donation.METHOD_CHEQUE, "Cheque")],
        required=False,
        error_messages={"invalid_choice": "Invalid payment method. Must be one of: CASH, UPI, CHEQUE"},
    )
    payment_date = forms.DateTimeField(required=False)
    utr_number = forms.CharField(max_length=64, required=False)
    cheque_number = forms.CharField(max_length=32, required=False)
    bank_name = forms.CharField(max_length=100, required=False)
    cheque_date = forms.DateField(required=False)

    def clean(self):
        cleaned = super().clean()
        method = cleaned.get("payment_method") or Donation.METHOD_CASH
        cleaned["payment_method"] = method
        if method == Donation.METHOD_UPI and not cleaned.get("utr_number"):
            raise ValidationError("UTR number is required for UPI payments")
        if method == Donation.METHOD_CHEQUE:
            if not cleaned.get("cheque_number"):
                raise ValidationError("Cheque number is required for cheque payments")
            if not cleaned.get("bank_name"):
                raise ValidationError("Bank name is required for cheque payments")
        return cleaned


def donation_form_data(body: dict) -> dict:
    head = body.get("donationHead")
    if isinstance(head, dict):
        head_id, head_name = head.get("id"), head.get("name")
    else:
        head_id, head_name = head, body.get("donationHeadName")
    details = body.get("paymentDetails") if isinstance(body.get("paymentDetails"), dict) else {}
    return {
        "donation_head_id": _text(head_id),
        "donation_head_name": _text(head_name),
        "amount": body.get("amount"),
        "referral_code": _text(body.get("referralCode")),
        "payment_method": _text(body.get("paymentMethod")).upper(),
        "payment_date": _text(body.get("paymentDate")),
        "utr_number": _text(details.get("utrNumber")),
        "cheque_number": _text(details.get("chequeNumber")),
        "bank_name": _text(details.get("bankName")),
        "cheque_date": _text(details.get("chequeDate")),
    }


def first_error(form) -> str:
    for messages in form.errors.values():
        if messages:
            return messages[0]
    return "Invalid donation data"
