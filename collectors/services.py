"""Referral codes and collector attribution.

Leaderboard and stats only count donations whose ``has_collector_attribution``
flag is set; a non-null ``collector`` alone is never enough.
"""

import logging
import math
import secrets
from dataclasses import dataclass

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, Min, Q, Sum

from donations.models import Donation
from donations.utils import base36, now_ms

logger = logging.getLogger(__name__)

User = get_user_model()

CODE_PREFIX = "COL"
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 10
MIN_CODE_LENGTH = 4

INVALID_CODE_MESSAGE = "Invalid or inactive referral code"
UNKNOWN_COLLECTOR = "Unknown Collector"


@dataclass(frozen=True)
class CollectorRef:
    collector_id: int
    collector_name: str


def generate_referral_code() -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
        if not User.objects.filter(referral_code=code).exists():
            return code
    logger.warning("Referral code generation kept colliding; using timestamp code")
    return CODE_PREFIX + base36(now_ms())[-CODE_LENGTH:].upper()


def assign_referral_code(user_id):
    """Give ``user_id`` a referral code once; later calls return the same code."""
    current = User.objects.filter(pk=user_id).values_list("referral_code", flat=True).first()
    if current:
        return current
    if not User.objects.filter(pk=user_id).exists():
        return None

    for attempt in range(2):
        code = generate_referral_code()
        try:
            with transaction.atomic():
                updated = User.objects.filter(pk=user_id, referral_code__isnull=True).update(referral_code=code)
        except IntegrityError:
            logger.warning("Referral code collision for user %s (attempt %s)", user_id, attempt + 1)
            continue
        if updated:
            logger.info("Referral code %s assigned to user %s", code, user_id)
            return code
        # another request got there first
        return User.objects.filter(pk=user_id).values_list("referral_code", flat=True).first()

    logger.error("Could not assign a referral code to user %s", user_id)
    return None


def _lookup(code):
    if not isinstance(code, str):
        return None, "not a string"
    code = code.strip().upper()
    if len(code) < MIN_CODE_LENGTH:
        return None, "too short"
    user = User.objects.select_related("collector_profile").filter(referral_code=code).first()
    if user is None:
        return None, "unknown code"
    if user.collector_disabled:
        return None, "collector disabled"
    if not user.display_name:
        return None, "collector has no name"
    return CollectorRef(user.pk, user.display_name), ""


def resolve_collector(code):
    ref, reason = _lookup(code)
    if ref is None and code:
        logger.warning("Referral code %r not resolved: %s", code, reason)
    return ref


def validate_referral_code(code) -> dict:
    ref, _ = _lookup(code)
    if ref is None:
        return {"valid": False, "error": INVALID_CODE_MESSAGE}
    return {"valid": True, "collectorId": ref.collector_id, "collectorName": ref.collector_name}


def _attributed(**filters):
    return Donation.objects.filter(
        has_collector_attribution=True,
        collector__isnull=False,
        status=Donation.STATUS_SUCCESS,
        **filters,
    )


def _latest_names(collector_ids) -> dict:
    names = {}
    rows = (
        _attributed(collector_id__in=collector_ids)
        .order_by("collector_id", "created_at")
        .values_list("collector_id", "collector_name")
    )
    for collector_id, name in rows:
        if name:
            names[collector_id] = name
    return names


def get_top_collectors(limit: int = 5) -> list:
    """Ranked by total amount; ties go to whoever was attributed first."""
    rows = list(
        _attributed()
        .values("collector_id")
        .annotate(total=Sum("amount"), count=Count("id"), first_at=Min("created_at"))
        .order_by("-total", "first_at", "collector_id")[:limit]
    )
    names = _latest_names([row["collector_id"] for row in rows])
    return [
        {
            "rank": index,
            "collectorId": row["collector_id"],
            "collectorName": names.get(row["collector_id"], UNKNOWN_COLLECTOR),
            "totalAmount": float(row["total"] or 0),
            "donationCount": row["count"],
        }
        for index, row in enumerate(rows, start=1)
    ]


def _totals(user_id):
    agg = _attributed(collector_id=user_id).aggregate(total=Sum("amount"), count=Count("id"))
    return float(agg["total"] or 0), agg["count"] or 0


def get_collector_stats(user_id):
    user = User.objects.select_related("collector_profile").filter(pk=user_id).first()
    if user is None:
        return None
    total, count = _totals(user.pk)
    return {
        "referralCode": user.referral_code,
        "collectorName": user.display_name,
        "totalAmount": total,
        "donationCount": count,
    }


def get_collector_dashboard(user_id) -> dict:
    total, count = _totals(user_id)
    recent = _attributed(collector_id=user_id).order_by("-created_at")[:10]
    return {
        "totalAmount": total,
        "donationCount": count,
        "top5Collectors": get_top_collectors(5),
        "recentDonations": [
            {
                "donorName": d.public_donor_name,
                "amount": float(d.amount),
                "cause": d.donation_head_name or "General",
                "date": d.created_at.isoformat(),
            }
            for d in recent
        ],
    }


def get_collector_summary() -> dict:
    active = _attributed().order_by().values("collector_id").distinct().count()
    split = Donation.objects.filter(status=Donation.STATUS_SUCCESS).aggregate(
        with_count=Count("id", filter=Q(has_collector_attribution=True)),
        with_amount=Sum("amount", filter=Q(has_collector_attribution=True)),
        without_count=Count("id", filter=Q(has_collector_attribution=False)),
        without_amount=Sum("amount", filter=Q(has_collector_attribution=False)),
    )
    return {
        "activeCollectors": active,
        "withReferral": {"count": split["with_count"], "amount": float(split["with_amount"] or 0)},
        "withoutReferral": {"count": split["without_count"], "amount": float(split["without_amount"] or 0)},
    }


def list_collectors(page: int = 1, limit: int = 20) -> dict:
    """Every attributed collector, ranked by total amount, one page at a time."""
    skip = (page - 1) * limit
    grouped = _attributed().order_by().values("collector_id").annotate(
        total=Sum("amount"), count=Count("id"), first_at=Min("created_at"),
    )
    total = grouped.count()
    rows = list(grouped.order_by("-total", "first_at", "collector_id")[skip:skip + limit])

    ids = [row["collector_id"] for row in rows]
    users = {u.pk: u for u in User.objects.select_related("collector_profile").filter(pk__in=ids)}
    names = _latest_names(ids)
    collectors = []
    for index, row in enumerate(rows):
        user = users.get(row["collector_id"])
        collectors.append({
            "rank": skip + index + 1,
            "collectorId": row["collector_id"],
            "collectorName": (user and user.display_name) or names.get(row["collector_id"]) or UNKNOWN_COLLECTOR,
            "referralCode": user.referral_code if user else None,
            "collectorDisabled": bool(user and user.collector_disabled),
            "totalAmount": float(row["total"] or 0),
            "donationCount": row["count"],
        })
    return {
        "collectors": collectors,
        "pagination": {"page": page, "limit": limit, "total": total, "totalPages": math.ceil(total / limit)},
    }


def get_collector_details(user_id):
    """Collector record, totals and up to 100 attributed donations without donor details."""
    user = User.objects.select_related("collector_profile").filter(pk=user_id).first()
    if user is None:
        return None
    total, count = _totals(user.pk)
    donations = _attributed(collector_id=user.pk).order_by("-created_at")[:100]
    return {
        "collector": {
            "id": user.pk,
            "name": user.display_name,
            "referralCode": user.referral_code,
            "disabled": user.collector_disabled,
            "createdAt": user.date_joined.isoformat(),
        },
        "stats": {"totalAmount": total, "donationCount": count},
        "donations": [
            {
                "donationId": str(d.id),
                "date": d.created_at.isoformat(),
                "amount": float(d.amount),
                "cause": d.donation_head_name or "General",
                "status": d.status,
            }
            for d in donations
        ],
    }
