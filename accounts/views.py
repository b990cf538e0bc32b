import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from collectors.services import (
    assign_referral_code,
    get_collector_details,
    get_collector_summary,
    list_collectors,
)

from .auth import auth_required, role_required
from .models import User
from .services import (
    CollectorNotFound,
    CollectorStateError,
    approve_collector,
    reject_collector,
    revoke_collector,
    toggle_collector_status,
)

logger = logging.getLogger(__name__)


def _json_body(request):
    try: return json.loads(request.body.decode("utf-8") or "{}")
    except (ValueError, UnicodeDecodeError): return None


@csrf_exempt
@require_POST
@auth_required
def generate_referral_code_view(request):
    user = request.token_user
    if user.referral_code:
        return JsonResponse({"referralCode": user.referral_code, "message": "Referral code already exists"})
    if not (user.full_name or "").strip():
        return JsonResponse(
            {
                "message": "Please update your profile with your full name before generating a referral code",
                "requiresName": True,
            },
            status=400,
        )
    code = assign_referral_code(user.pk)
    if not code:
        return JsonResponse({"message": "Failed to generate referral code"}, status=500)
    logger.info("Referral code generated on demand for user %s", user.pk)
    return JsonResponse({"referralCode": code, "message": "Referral code generated successfully"})


@csrf_exempt
@require_POST
@role_required(*User.ADMIN_ROLES)
def toggle_collector_status_view(request, user_id: int):
    body = _json_body(request)
    reason = body.get("reason") if isinstance(body, dict) else None
    try:
        collector = toggle_collector_status(user_id, request.token_user, reason=reason)
    except CollectorNotFound as e:
        return JsonResponse({"message": str(e)}, status=404)
    state = "disabled" if collector["disabled"] else "enabled"
    return JsonResponse({"message": f"Collector {state} successfully", "collector": collector})


@csrf_exempt
@require_POST
@role_required(*User.ADMIN_ROLES)
def approve_collector_view(request, user_id: int):
    try:
        data = approve_collector(user_id, request.token_user)
    except CollectorNotFound as e:
        return JsonResponse({"success": False, "message": str(e)}, status=404)
    except CollectorStateError as e:
        return JsonResponse({"success": False, "message": str(e)}, status=400)
    return JsonResponse({"success": True, "message": "Collector application approved successfully", "data": data})


@csrf_exempt
@require_POST
@role_required(*User.ADMIN_ROLES)
def reject_collector_view(request, user_id: int):
    body = _json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"success": False, "message": "Invalid JSON body"}, status=400)
    try:
        data = reject_collector(user_id, request.token_user, body.get("reason"))
    except CollectorNotFound as e:
        return JsonResponse({"success": False, "message": str(e)}, status=404)
    except CollectorStateError as e:
        return JsonResponse({"success": False, "message": str(e)}, status=400)
    return JsonResponse({"success": True, "message": "Collector application rejected", "data": data})


@csrf_exempt
@require_POST
@role_required(*User.ADMIN_ROLES)
def revoke_collector_view(request, user_id: int):
    body = _json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"success": False, "message": "Invalid JSON body"}, status=400)
    try:
        data = revoke_collector(user_id, request.token_user, body.get("reason"))
    except CollectorNotFound as e:
        return JsonResponse({"success": False, "message": str(e)}, status=404)
    except CollectorStateError as e:
        return JsonResponse({"success": False, "message": str(e)}, status=400)
    return JsonResponse({"success": True, "message": "Collector status revoked successfully", "data": data})


def _positive_int(raw, default, ceiling=None):
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    if value < 1:
        return default
    return min(value, ceiling) if ceiling else value


@require_GET
@role_required(*User.ADMIN_ROLES)
def collectors_view(request):
    page = _positive_int(request.GET.get("page"), 1)
    limit = _positive_int(request.GET.get("limit"), 20, ceiling=100)
    return JsonResponse(list_collectors(page, limit))


@require_GET
@role_required(*User.ADMIN_ROLES)
def collector_summary_view(request):
    return JsonResponse(get_collector_summary())


@require_GET
@role_required(*User.ADMIN_ROLES)
def collector_details_view(request, user_id: int):
    details = get_collector_details(user_id)
    if details is None:
        return JsonResponse({"message": "Collector not found"}, status=404)
    return JsonResponse(details)
