import logging

from django.http import JsonResponse
from django.views.decorators.http import require_GET

from accounts.auth import role_required
from accounts.models import User
from donations.ratelimit import ip_rate_limit

from .services import get_collector_dashboard, get_top_collectors, validate_referral_code

logger = logging.getLogger(__name__)


@require_GET
@ip_rate_limit("public-api", "PUBLIC_API_RATE_LIMIT", 30, 60, "Too many requests. Please try again later.")
def validate_referral_view(request, code: str):
    return JsonResponse(validate_referral_code(code))


@require_GET
def leaderboard_view(request):
    try:
        limit = int(request.GET.get("limit", "5"))
    except ValueError:
        limit = 5
    limit = min(max(limit, 1), 50)
    try:
        data = get_top_collectors(limit)
    except Exception:
        logger.exception("Leaderboard query failed")
        return JsonResponse({"success": False, "message": "Server error"}, status=500)
    return JsonResponse({"success": True, "data": data})


@require_GET
@role_required(User.ROLE_COLLECTOR_APPROVED)
def collector_dashboard_view(request):
    user = request.token_user
    if user.collector_disabled:
        return JsonResponse({"message": "Collector account is disabled"}, status=403)
    try:
        data = get_collector_dashboard(user.pk)
    except Exception:
        logger.exception("Collector dashboard failed for user %s", user.pk)
        return JsonResponse({"message": "Server error"}, status=500)
    data["referralCode"] = user.referral_code
    data["collectorName"] = user.display_name
    return JsonResponse({"success": True, "data": data})
