import json
import logging

from django.db.models import F, Value
from django.db.models.functions import Coalesce
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.integrations.razorpay import verify_webhook_signature

from .models import Donation
from .services import finalize_receipt
from .utils import gen_receipt_number

logger = logging.getLogger(__name__)

ACK = {"status": "ok"}
IGNORED = {"status": "ignored"}


def reconcile_captured(order_id: str, payment_id: str, method: str = "") -> bool:
    """Move the PENDING donation for ``order_id`` to SUCCESS.

    Returns True only for the delivery that performed the transition. Replays
    and races match zero rows and return False.
    """
    if not order_id:
        return False
    updated = Donation.objects.filter(
        gateway_order_id=order_id, status=Donation.STATUS_PENDING,
    ).update(
        status=Donation.STATUS_SUCCESS,
        gateway_payment_id=payment_id or "",
        transaction_ref=payment_id or "",
        failure_reason="",
        paid_at=timezone.now(),
        receipt_number=Coalesce(F("receipt_number"), Value(gen_receipt_number())),
        updated_at=timezone.now(),
    )
    if not updated:
        logger.info("payment.captured for order %s: no pending donation (replay or unknown)", order_id)
        return False

    donation = (
        Donation.objects.filter(gateway_order_id=order_id, status=Donation.STATUS_SUCCESS)
        .order_by("-updated_at")
        .first()
    )
    logger.info("Donation %s marked SUCCESS via %s (payment %s)", donation.id, method or "gateway", payment_id)
    # receipt and email are best effort once the payment is recorded
    try:
        finalize_receipt(donation)
    except Exception:
        logger.exception("Receipt finalization failed for donation %s", donation.id)
    return True


def reconcile_failed(order_id: str, payment_id: str = "", error_description: str = "", error_reason: str = "") -> bool:
    if not order_id:
        return False
    reason = error_description or error_reason or "Payment failed"
    updated = Donation.objects.filter(
        gateway_order_id=order_id, status=Donation.STATUS_PENDING,
    ).update(
        status=Donation.STATUS_FAILED,
        gateway_payment_id=payment_id or "",
        failure_reason=reason[:255],
        updated_at=timezone.now(),
    )
    if updated:
        logger.info("Donation for order %s marked FAILED: %s", order_id, reason)
    else:
        logger.info("payment.failed for order %s: no pending donation", order_id)
    return bool(updated)


def _payment_entity(payload: dict) -> dict:
    node = payload
    for key in ("payload", "payment", "entity"):
        node = node.get(key) if isinstance(node, dict) else None
    return node if isinstance(node, dict) else {}


@csrf_exempt
@require_POST
def razorpay_webhook(request):
    raw = request.body
    if not verify_webhook_signature(raw, request.headers.get("X-Razorpay-Signature")):
        logger.warning("Razorpay webhook rejected: invalid signature")
        return JsonResponse({"message": "Invalid signature"}, status=400)

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return JsonResponse({"message": "Invalid JSON"}, status=400)
    if not isinstance(payload, dict):
        return JsonResponse({"message": "Invalid JSON"}, status=400)

    event = payload.get("event") or ""
    payment = _payment_entity(payload)
    try:
        if event == "payment.captured":
            reconcile_captured(payment.get("order_id") or "", payment.get("id") or "", payment.get("method") or "")
            return JsonResponse(ACK)
        if event == "payment.failed":
            reconcile_failed(
                payment.get("order_id") or "",
                payment.get("id") or "",
                payment.get("error_description") or "",
                payment.get("error_reason") or "",
            )
            return JsonResponse(ACK)
    except Exception:
        logger.exception("Webhook processing failed for event %s", event)
        return JsonResponse({"message": "Webhook processing failed"}, status=500)

    logger.info("Ignoring Razorpay event %r", event)
    return JsonResponse(IGNORED)
