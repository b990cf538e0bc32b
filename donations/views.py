import json
import logging

from django.http import FileResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from accounts.auth import auth_required, optional_auth, role_required
from accounts.models import User
from collectors.services import get_collector_stats
from payments.integrations.razorpay import RazorpayError

from . import otp
from .exceptions import (
    DonationNotFound,
    DonationNotPending,
    DonationValidationError,
    InvalidMobile,
    OtpDeliveryFailed,
    OtpExpired,
    OtpInvalid,
    OtpRateLimited,
    ReceiptError,
    ReceiptUnavailable,
)
from .ratelimit import client_ip, ip_rate_limit, too_many
from .services import (
    create_donation,
    create_order,
    get_receipt_path,
    get_reports,
    get_status,
    last_donor_profile,
    list_donations,
    list_user_donations,
    record_offline_donation,
)

logger = logging.getLogger(__name__)

SERVER_ERROR = {"message": "Server error"}

donation_rate_limit = ip_rate_limit(
    "donation-create", "DONATION_CREATE_RATE_LIMIT", 10, 60,
    "Too many donation requests. Please try again later.",
)


def _json_body(request):
    try: return json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError): return None


# --- OTP ---
@csrf_exempt
@require_POST
def send_otp_view(request):
    body = _json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"message": "Invalid mobile number format"}, status=400)
    try:
        mobile = otp.send_otp(body.get("mobile"), client_ip=client_ip(request))
    except InvalidMobile as e:
        return JsonResponse({"message": str(e)}, status=400)
    except OtpRateLimited as e:
        return too_many(str(e), e.retry_after)
    except OtpDeliveryFailed as e:
        return JsonResponse({"message": str(e)}, status=502)
    except Exception:
        logger.exception("send-otp failed")
        return JsonResponse(SERVER_ERROR, status=500)
    return JsonResponse({"message": "OTP sent successfully", "mobile": mobile})


@csrf_exempt
@require_POST
def verify_otp_view(request):
    body = _json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"message": "Invalid OTP", "verified": False}, status=400)
    try:
        otp.verify_otp(body.get("mobile"), body.get("otp") or body.get("code"))
    except (OtpInvalid, OtpExpired) as e:
        return JsonResponse({"message": str(e), "verified": False}, status=400)
    except Exception:
        logger.exception("verify-otp failed")
        return JsonResponse(SERVER_ERROR, status=500)
    return JsonResponse({"verified": True, "message": "OTP verified"})


# --- donation lifecycle ---
@csrf_exempt
@require_POST
@donation_rate_limit
@optional_auth
def create_donation_view(request):
    body = _json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"message": "Invalid donation data"}, status=400)
    try:
        donation = create_donation(body, user=request.token_user)
    except DonationValidationError as e:
        return JsonResponse({"message": str(e)}, status=400)
    except Exception:
        logger.exception("Donation creation failed")
        return JsonResponse(SERVER_ERROR, status=500)
    return JsonResponse(
        {"message": "Donation initiated", "donationId": str(donation.id), "status": donation.status},
        status=201,
    )


@csrf_exempt
@require_POST
@donation_rate_limit
def create_order_view(request):
    body = _json_body(request)
    donation_id = body.get("donationId") if isinstance(body, dict) else None
    if not donation_id:
        return JsonResponse({"message": "Donation ID required"}, status=400)
    try:
        data = create_order(donation_id)
    except DonationNotFound as e:
        return JsonResponse({"message": str(e)}, status=404)
    except DonationNotPending as e:
        return JsonResponse({"message": str(e)}, status=409)
    except RazorpayError:
        logger.exception("Gateway order creation failed for donation %s", donation_id)
        return JsonResponse({"message": "Failed to create payment order"}, status=502)
    except Exception:
        logger.exception("create-order failed")
        return JsonResponse(SERVER_ERROR, status=500)
    return JsonResponse(data)


@require_GET
def donation_status_view(request, donation_id):
    try:
        return JsonResponse(get_status(donation_id))
    except DonationNotFound:
        return JsonResponse({"status": "NOT_FOUND"}, status=404)


@require_GET
def download_receipt_view(request, donation_id):
    try:
        path = get_receipt_path(donation_id)
    except DonationNotFound as e:
        return JsonResponse({"message": str(e)}, status=404)
    except ReceiptUnavailable as e:
        return JsonResponse({"message": str(e)}, status=403)
    except ReceiptError:
        logger.exception("Receipt regeneration failed for donation %s", donation_id)
        return JsonResponse({"message": "Receipt could not be generated"}, status=500)
    return FileResponse(
        open(path, "rb"), as_attachment=True,
        filename=f"receipt-{donation_id}.pdf", content_type="application/pdf",
    )


@require_GET
@auth_required
def my_donations_view(request):
    return JsonResponse(list_user_donations(request.token_user), safe=False)


@require_GET
@auth_required
def last_profile_view(request):
    profile = last_donor_profile(request.token_user)
    return JsonResponse({"found": profile is not None, "profile": profile})


@require_GET
@auth_required
def my_collector_stats_view(request):
    stats = get_collector_stats(request.token_user.pk)
    if stats is None:
        return JsonResponse({"message": "User not found"}, status=404)
    return JsonResponse(stats)


# --- staff ---
@csrf_exempt
@require_POST
@role_required(*User.ADMIN_ROLES)
def offline_donation_view(request):
    body = _json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"message": "Invalid donation data"}, status=400)
    try:
        donation = record_offline_donation(body, added_by=request.token_user)
    except DonationValidationError as e:
        return JsonResponse({"message": str(e)}, status=400)
    except Exception:
        logger.exception("Offline donation failed")
        return JsonResponse(SERVER_ERROR, status=500)
    return JsonResponse(
        {
            "message": f"{donation.payment_method} donation recorded successfully",
            "donationId": str(donation.id),
            "receiptNumber": donation.receipt_number,
            "transactionRef": donation.transaction_ref,
            "paymentMethod": donation.payment_method,
            "status": donation.status,
            "emailSent": donation.email_sent,
        },
        status=201,
    )


@require_GET
@role_required(*User.ADMIN_ROLES)
def admin_donations_view(request):
    params = request.GET
    try:
        rows = list_donations(
            payment_method=params.get("paymentMethod", ""),
            status=params.get("status", ""),
            start_date=params.get("startDate"),
            end_date=params.get("endDate"),
        )
    except DonationValidationError as e:
        return JsonResponse({"message": str(e)}, status=400)
    return JsonResponse(rows, safe=False)


@require_GET
@role_required(*User.ADMIN_ROLES)
def admin_reports_view(request):
    params = request.GET
    try:
        report = get_reports(
            start_date=params.get("startDate"),
            end_date=params.get("endDate"),
            payment_method=params.get("paymentMethod", ""),
        )
    except DonationValidationError as e:
        return JsonResponse({"message": str(e)}, status=400)
    return JsonResponse(report)
