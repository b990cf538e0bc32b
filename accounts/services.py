import logging

from django.db import transaction
from django.db.models import BooleanField, Case, Value, When
from django.utils import timezone

from collectors.services import assign_referral_code

from .models import CollectorProfile, User

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("accounts.audit")

MIN_REJECTION_REASON = 5


class CollectorNotFound(Exception): pass


class CollectorStateError(Exception): pass


def toggle_collector_status(user_id, admin, reason=None) -> dict:
    """Flip ``collector_disabled`` and return the state after the flip."""
    flipped = Case(
        When(collector_disabled=True, then=Value(False)),
        default=Value(True),
        output_field=BooleanField(),
    )
    if not User.objects.filter(pk=user_id).update(collector_disabled=flipped):
        raise CollectorNotFound("Collector not found")
    user = User.objects.get(pk=user_id)
    audit_logger.info(
        "CollectorToggle admin=%s collector=%s action=%s reason=%s",
        admin.pk, user.pk, "DISABLED" if user.collector_disabled else "ENABLED", reason or "Not specified",
    )
    return {"id": user.pk, "name": user.display_name, "disabled": user.collector_disabled}


def _pending_application(user_id):
    user = User.objects.select_related("collector_profile").filter(pk=user_id).first()
    if user is None:
        raise CollectorNotFound("User not found")
    if user.role != User.ROLE_COLLECTOR_PENDING:
        raise CollectorStateError("User does not have a pending collector application")
    profile = getattr(user, "collector_profile", None)
    if profile is None or profile.status != CollectorProfile.STATUS_PENDING:
        raise CollectorStateError("No pending application found for this user")
    return user, profile


def approve_collector(user_id, admin) -> dict:
    with transaction.atomic():
        user, profile = _pending_application(user_id)
        user.role = User.ROLE_COLLECTOR_APPROVED
        if not user.full_name and profile.full_name:
            user.full_name = profile.full_name
        user.save(update_fields=["role", "full_name"])
        profile.status = CollectorProfile.STATUS_APPROVED
        profile.approved_at = timezone.now()
        profile.rejected_reason = ""
        profile.save(update_fields=["status", "approved_at", "rejected_reason"])

    referral_code = user.referral_code or assign_referral_code(user.pk)
    audit_logger.info("CollectorApproved admin=%s collector=%s", admin.pk, user.pk)
    return {
        "userId": user.pk,
        "role": user.role,
        "status": profile.status,
        "approvedAt": profile.approved_at.isoformat(),
        "referralCode": referral_code,
    }


def reject_collector(user_id, admin, reason) -> dict:
    reason = (reason or "").strip()
    if len(reason) < MIN_REJECTION_REASON:
        raise CollectorStateError("Rejection reason is required (minimum 5 characters)")
    with transaction.atomic():
        user, profile = _pending_application(user_id)
        user.role = User.ROLE_USER
        user.save(update_fields=["role"])
        profile.status = CollectorProfile.STATUS_REJECTED
        profile.rejected_reason = reason[:255]
        profile.save(update_fields=["status", "rejected_reason"])

    audit_logger.info("CollectorRejected admin=%s collector=%s reason=%s", admin.pk, user.pk, reason)
    return {
        "userId": user.pk,
        "role": user.role,
        "status": profile.status,
        "rejectedReason": profile.rejected_reason,
    }


def revoke_collector(user_id, admin, reason) -> dict:
    """Demote an approved collector back to USER. Past attributions are kept."""
    reason = (reason or "").strip() if isinstance(reason, str) else ""
    if len(reason) < MIN_REJECTION_REASON:
        raise CollectorStateError("Revocation reason is required (minimum 5 characters)")
    with transaction.atomic():
        user = User.objects.select_for_update().filter(pk=user_id).first()
        if user is None:
            raise CollectorNotFound("User not found")
        if user.role != User.ROLE_COLLECTOR_APPROVED:
            raise CollectorStateError("User is not an approved collector")
        user.role = User.ROLE_USER
        user.save(update_fields=["role"])
        profile, _ = CollectorProfile.objects.get_or_create(user=user, defaults={"full_name": user.full_name})
        profile.status = CollectorProfile.STATUS_REJECTED
        profile.rejected_reason = f"Revoked: {reason}"[:255]
        profile.save(update_fields=["status", "rejected_reason"])

    audit_logger.info("CollectorRevoked admin=%s collector=%s reason=%s", admin.pk, user.pk, reason)
    return {"userId": user.pk, "role": user.role, "status": profile.status}
