"""Donation lifecycle.

``PENDING -> SUCCESS`` and ``PENDING -> FAILED`` are the only transitions and
both happen in ``donations.webhook``. Nothing here moves an online donation
out of PENDING. Offline (staff-recorded) donations are created as SUCCESS.
"""

import logging
from datetime import datetime, time, timedelta
from pathlib import Path

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.db.models import Count, Sum
from django.utils import timezone
from django.utils.dateparse import parse_date

from collectors.services import INVALID_CODE_MESSAGE, resolve_collector
from payments.integrations import razorpay

from .emails import send_receipt_email
from .exceptions import (
    DonationNotFound,
    DonationNotPending,
    DonationValidationError,
    ReceiptError,
    ReceiptUnavailable,
)
from .forms import (
    DonationCreateForm,
    DonorForm,
    OfflineDonationForm,
    donation_form_data,
    donor_form_data,
    first_error,
)
from .models import Donation
from .receipts import generate_receipt, receipt_path
from .utils import gen_receipt_number, gen_txn_ref

logger = logging.getLogger(__name__)


def _get(donation_id) -> Donation:
    try:
        return Donation.objects.get(pk=donation_id)
    except (Donation.DoesNotExist, ValueError, ValidationError):
        raise DonationNotFound("Donation not found")


def _validated(payload, donation_form_class, **donor_kwargs):
    if not isinstance(payload, dict):
        raise DonationValidationError("Invalid donation data")
    donation_form = donation_form_class(donation_form_data(payload))
    if not donation_form.is_valid():
        raise DonationValidationError(first_error(donation_form))
    donor_form = DonorForm(donor_form_data(payload.get("donor")), **donor_kwargs)
    if not donor_form.is_valid():
        raise DonationValidationError(first_error(donor_form))
    return donor_form.cleaned_data, donation_form.cleaned_data


def _email_verified_for(user, donor_email: str) -> bool:
    if user is None or not donor_email:
        return False
    account_email = (user.email or "").strip().lower()
    return bool(user.email_verified and account_email and account_email == donor_email.strip().lower())


def _donor_fields(donor: dict) -> dict:
    return {
        "donor_name": donor["name"],
        "donor_mobile": donor["mobile"],
        "donor_email": donor["email"],
        "donor_address": donor["address"],
        "donor_address_line": donor["address_line"],
        "donor_address_city": donor["address_city"],
        "donor_address_state": donor["address_state"],
        "donor_address_country": donor["address_country"] or "India",
        "donor_address_pincode": donor["address_pincode"],
        "donor_anonymous_display": donor["anonymous_display"],
        "donor_dob": donor["dob"],
        "donor_id_type": donor["id_type"],
        "donor_id_number": donor["id_number"],
    }


def _collector_fields(referral_code: str) -> dict:
    if not referral_code:
        return {}
    ref = resolve_collector(referral_code)
    if ref is None:
        raise DonationValidationError(INVALID_CODE_MESSAGE)
    return {
        "collector_id": ref.collector_id,
        "collector_name": ref.collector_name,
        "has_collector_attribution": True,
    }


def create_donation(payload, user=None) -> Donation:
    """Validate and persist a PENDING online donation."""
    donor, data = _validated(payload, DonationCreateForm)
    collector = _collector_fields(data["referral_code"])

    donation = Donation.objects.create(
        user=user,
        **_donor_fields(donor),
        donor_email_opt_in=donor["email_opt_in"],
        donor_email_verified=_email_verified_for(user, donor["email"]),
        donation_head_id=data["donation_head_id"],
        donation_head_name=data["donation_head_name"],
        amount=data["amount"],
        payment_method=Donation.METHOD_ONLINE,
        status=Donation.STATUS_PENDING,
        **collector,
    )
    logger.info(
        "Donation %s created amount=%s attributed=%s",
        donation.id, donation.amount, donation.has_collector_attribution,
    )
    return donation


def create_order(donation_id) -> dict:
    donation = _get(donation_id)
    if donation.status != Donation.STATUS_PENDING:
        raise DonationNotPending("Donation is not pending")

    amount_paise = int((donation.amount * 100).to_integral_value())
    if not donation.gateway_order_id:
        order = razorpay.create_order(
            amount_paise, "INR", receipt=str(donation.id)[-12:],
            notes={"donationId": str(donation.id)},
        )
        updated = Donation.objects.filter(
            pk=donation.pk, status=Donation.STATUS_PENDING, gateway_order_id="",
        ).update(gateway_order_id=order["id"])
        donation.refresh_from_db(fields=["gateway_order_id", "status"])
        if not updated and donation.status != Donation.STATUS_PENDING:
            raise DonationNotPending("Donation is not pending")
        logger.info("Gateway order %s linked to donation %s", donation.gateway_order_id, donation.id)

    return {
        "orderId": donation.gateway_order_id,
        "amount": amount_paise,
        "currency": "INR",
        "key": getattr(settings, "RAZORPAY_KEY_ID", ""),
        "donationId": str(donation.id),
    }


def get_status(donation_id) -> dict:
    donation = _get(donation_id)
    data = {
        "id": str(donation.id),
        "status": donation.status,
        "amount": str(donation.amount),
        "donationHead": donation.donation_head_name,
        "createdAt": donation.created_at.isoformat(),
    }
    if donation.status == Donation.STATUS_SUCCESS and donation.receipt_number:
        data["receiptNumber"] = donation.receipt_number
    return data


def get_receipt_path(donation_id) -> Path:
    donation = _get(donation_id)
    if donation.status != Donation.STATUS_SUCCESS or not donation.receipt_number:
        raise ReceiptUnavailable("Receipt not available for this donation")

    path = receipt_path(donation)
    if not path.exists():
        logger.warning("Receipt file missing for donation %s; regenerating", donation.id)
        path = generate_receipt(donation)
        Donation.objects.filter(pk=donation.pk).update(receipt_file=path.name)
    return path


def finalize_receipt(donation, email_always=False) -> None:
    """Render the receipt and email it. Failures are logged, never raised."""
    try:
        path = generate_receipt(donation)
        Donation.objects.filter(pk=donation.pk).update(receipt_file=path.name)
    except (ReceiptError, DatabaseError):
        logger.exception("Receipt generation failed for donation %s", donation.id)
        return
    donation.receipt_file = path.name

    wants_email = donation.should_email_receipt or (email_always and donation.donor_email)
    if not wants_email or donation.email_sent:
        return
    if not send_receipt_email(donation, path):
        return
    try:
        Donation.objects.filter(pk=donation.pk, email_sent=False).update(email_sent=True)
    except DatabaseError:
        logger.exception("Could not record email_sent for donation %s", donation.id)
        return
    donation.email_sent = True


def _payment_details(method, data) -> dict:
    if method == Donation.METHOD_UPI:
        return {"utr_number": data["utr_number"]}
    if method == Donation.METHOD_CHEQUE:
        return {
            "cheque_number": data["cheque_number"],
            "bank_name": data["bank_name"],
            "cheque_date": data.get("cheque_date"),
        }
    return {}


def record_offline_donation(payload, added_by) -> Donation:
    """Staff-recorded CASH, UPI or CHEQUE donation, created directly as SUCCESS."""
    donor, data = _validated(
        payload, OfflineDonationForm, mobile_required=False, allowed_id_types=("PAN",),
    )
    method = data["payment_method"]
    paid_at = data.get("payment_date") or timezone.now()

    linked_user = None
    if donor["mobile"] != "N/A":
        linked_user = get_user_model().objects.filter(mobile=donor["mobile"]).first()

    donation = Donation.objects.create(
        user=linked_user,
        **_donor_fields(donor),
        donor_email_opt_in=bool(donor["email"]),
        donor_email_verified=False,
        donation_head_id=data["donation_head_id"],
        donation_head_name=data["donation_head_name"],
        amount=data["amount"],
        payment_method=method,
        status=Donation.STATUS_SUCCESS,
        transaction_ref=gen_txn_ref(method),
        paid_at=paid_at,
        **_payment_details(method, data),
        receipt_number=gen_receipt_number(),
        added_by=added_by,
    )
    logger.info("%s donation %s recorded by user %s", method, donation.id, getattr(added_by, "pk", None))

    finalize_receipt(donation, email_always=True)
    return donation


def list_user_donations(user) -> list:
    rows = Donation.objects.filter(user=user).order_by("-created_at")
    return [
        {
            "id": str(d.id),
            "donationHead": d.donation_head_name,
            "amount": str(d.amount),
            "status": d.status,
            "paymentMethod": d.payment_method,
            "receiptNumber": d.receipt_number,
            "createdAt": d.created_at.isoformat(),
        }
        for d in rows
    ]


def last_donor_profile(user):
    """Autofill data from the user's latest donation. Identity numbers are left out."""
    donation = Donation.objects.filter(user=user).order_by("-created_at").first()
    if donation is None:
        return None
    address = donation.address
    return {
        "name": donation.donor_name,
        "mobile": donation.donor_mobile if donation.donor_mobile != "N/A" else "",
        "email": donation.donor_email,
        "emailOptIn": donation.donor_email_opt_in,
        "anonymousDisplay": donation.donor_anonymous_display,
        "address": address.display(),
        "addressObj": {
            "line": donation.donor_address_line,
            "city": address.city(),
            "state": donation.donor_address_state,
            "country": donation.donor_address_country or "India",
            "pincode": donation.donor_address_pincode,
        },
    }


def _day_start(raw, field):
    try:
        day = parse_date((raw or "").strip()[:10])
    except ValueError:
        day = None
    if day is None:
        raise DonationValidationError(f"Invalid {field}")
    return timezone.make_aware(datetime.combine(day, time.min))


def _created_between(queryset, start_date=None, end_date=None):
    """``end_date`` is inclusive: everything up to the end of that day."""
    if start_date:
        queryset = queryset.filter(created_at__gte=_day_start(start_date, "startDate"))
    if end_date:
        queryset = queryset.filter(created_at__lt=_day_start(end_date, "endDate") + timedelta(days=1))
    return queryset


def _admin_row(d) -> dict:
    return {
        "id": str(d.id),
        "status": d.status,
        "amount": float(d.amount),
        "paymentMethod": d.payment_method,
        "donationHead": {"id": d.donation_head_id, "name": d.donation_head_name},
        "donor": {
            "name": d.donor_name,
            "mobile": d.donor_mobile,
            "email": d.donor_email,
            "address": d.address.display(),
            "idType": d.donor_id_type,
            "idNumber": d.donor_id_number,
            "anonymousDisplay": d.donor_anonymous_display,
        },
        "collectorName": d.collector_name if d.has_collector_attribution else None,
        "hasCollectorAttribution": d.has_collector_attribution,
        "transactionRef": d.transaction_ref,
        "receiptNumber": d.receipt_number,
        "emailSent": d.email_sent,
        "user": {"fullName": d.user.full_name, "email": d.user.email, "mobile": d.user.mobile} if d.user else None,
        "addedBy": {"fullName": d.added_by.display_name} if d.added_by else None,
        "paidAt": d.paid_at.isoformat() if d.paid_at else None,
        "createdAt": d.created_at.isoformat(),
    }


def list_donations(payment_method="", status="", start_date=None, end_date=None) -> list:
    """Every donation matching the filters, newest first. Identity numbers are not masked."""
    rows = Donation.objects.select_related("user", "added_by")
    methods = [m.strip().upper() for m in (payment_method or "").split(",") if m.strip()]
    if methods:
        rows = rows.filter(payment_method__in=methods)
    if status:
        rows = rows.filter(status=status.strip().upper())
    rows = _created_between(rows, start_date, end_date)
    return [_admin_row(d) for d in rows.order_by("-created_at")]


def get_reports(start_date=None, end_date=None, payment_method="") -> dict:
    """SUCCESS totals. ``byPaymentMethod`` always covers every SUCCESS donation."""
    succeeded = Donation.objects.filter(status=Donation.STATUS_SUCCESS)
    filtered = _created_between(succeeded, start_date, end_date)
    if payment_method:
        filtered = filtered.filter(payment_method=payment_method.strip().upper())

    totals = filtered.aggregate(total=Sum("amount"), count=Count("id"))
    by_method = {}
    for row in succeeded.order_by().values("payment_method").annotate(total=Sum("amount"), count=Count("id")):
        by_method[row["payment_method"] or Donation.METHOD_ONLINE] = {
            "amount": float(row["total"] or 0),
            "count": row["count"],
        }
    by_head = (
        filtered.values("donation_head_name")
        .annotate(total=Sum("amount"), count=Count("id"))
        .order_by("-total", "donation_head_name")
    )
    return {
        "totalAmount": float(totals["total"] or 0),
        "totalCount": totals["count"] or 0,
        "byPaymentMethod": by_method,
        "byDonationHead": [
            {"name": row["donation_head_name"], "amount": float(row["total"] or 0), "count": row["count"]}
            for row in by_head
        ],
    }
