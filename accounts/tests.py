import json
from datetime import datetime, timedelta, timezone

import jwt
from django.conf import settings
from django.test import RequestFactory, TestCase
from django.urls import reverse
from django.utils import timezone as dj_timezone

from sevatrust.tests.factories import auth_header, make_admin, make_collector, make_user

from .auth import get_token_user, issue_token
from .models import CollectorProfile, User
from .services import CollectorNotFound, CollectorStateError, reject_collector, toggle_collector_status


def pending_applicant(username="applicant", profile_name="Hari Prasad"):
    user = make_user(username=username, role=User.ROLE_COLLECTOR_PENDING)
    CollectorProfile.objects.create(
        user=user, full_name=profile_name, status=CollectorProfile.STATUS_PENDING,
        submitted_at=dj_timezone.now(),
    )
    return user


class TokenAuthTests(TestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.user = make_user()

    def test_bearer_header(self):
        request = self.factory.get("/", **auth_header(self.user))
        self.assertEqual(get_token_user(request), self.user)

    def test_cookie(self):
        request = self.factory.get("/")
        request.COOKIES["authToken"] = issue_token(self.user)
        self.assertEqual(get_token_user(request), self.user)

    def test_bad_and_expired_tokens(self):
        expired = jwt.encode(
            {"userId": self.user.pk, "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            settings.JWT_SECRET, algorithm="HS256",
        )
        forged = jwt.encode({"userId": self.user.pk}, "not-the-secret", algorithm="HS256")
        for token in ("garbage", expired, forged):
            request = self.factory.get("/", HTTP_AUTHORIZATION=f"Bearer {token}")
            self.assertIsNone(get_token_user(request))

    def test_inactive_user(self):
        User.objects.filter(pk=self.user.pk).update(is_active=False)
        request = self.factory.get("/", **auth_header(self.user))
        self.assertIsNone(get_token_user(request))


class CollectorAdminServiceTests(TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.collector = make_collector()

    def test_toggle_reports_new_state(self):
        first = toggle_collector_status(self.collector.pk, self.admin, reason="Audit")
        second = toggle_collector_status(self.collector.pk, self.admin)

        self.assertEqual(first, {"id": self.collector.pk, "name": "Ravi Kumar", "disabled": True})
        self.assertFalse(second["disabled"])
        self.collector.refresh_from_db()
        self.assertFalse(self.collector.collector_disabled)

    def test_toggle_unknown(self):
        with self.assertRaises(CollectorNotFound):
            toggle_collector_status(424242, self.admin)

    def test_reject_needs_reason(self):
        applicant = pending_applicant()
        with self.assertRaises(CollectorStateError):
            reject_collector(applicant.pk, self.admin, "  no ")
        applicant.refresh_from_db()
        self.assertEqual(applicant.role, User.ROLE_COLLECTOR_PENDING)


class CollectorAdminApiTests(TestCase):
    def setUp(self):
        self.admin = make_admin()

    def _post(self, name, user_id, payload=None, user=None):
        return self.client.post(
            reverse(name, args=[user_id]), data=json.dumps(payload or {}),
            content_type="application/json", **auth_header(user or self.admin),
        )

    def test_non_admin_forbidden(self):
        collector = make_collector()
        resp = self._post("accounts:toggle_collector", collector.pk, user=collector)
        self.assertEqual(resp.status_code, 403)

    def test_toggle(self):
        collector = make_collector()
        resp = self._post("accounts:toggle_collector", collector.pk, {"reason": "Complaint"})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["collector"]["disabled"], True)
        self.assertEqual(resp.json()["message"], "Collector disabled successfully")
        self.assertEqual(self._post("accounts:toggle_collector", 999999).status_code, 404)

    def test_approve_assigns_referral_code(self):
        applicant = pending_applicant()
        resp = self._post("accounts:approve_collector", applicant.pk)

        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["role"], User.ROLE_COLLECTOR_APPROVED)
        self.assertRegex(data["referralCode"], r"^COL")
        applicant.refresh_from_db()
        self.assertEqual(applicant.full_name, "Hari Prasad")
        self.assertEqual(applicant.collector_profile.status, CollectorProfile.STATUS_APPROVED)

    def test_approve_requires_pending_application(self):
        user = make_user()
        resp = self._post("accounts:approve_collector", user.pk)
        self.assertEqual(resp.status_code, 400)

    def test_reject(self):
        applicant = pending_applicant()
        short = self._post("accounts:reject_collector", applicant.pk, {"reason": "no"})
        resp = self._post("accounts:reject_collector", applicant.pk, {"reason": "Documents unreadable"})

        self.assertEqual(short.status_code, 400)
        self.assertEqual(resp.status_code, 200)
        applicant.refresh_from_db()
        self.assertEqual(applicant.role, User.ROLE_USER)
        self.assertEqual(applicant.collector_profile.rejected_reason, "Documents unreadable")

    def test_revoke(self):
        collector = make_collector()
        short = self._post("accounts:revoke_collector", collector.pk, {"reason": "bad"})
        resp = self._post("accounts:revoke_collector", collector.pk, {"reason": "  Repeated complaints "})

        self.assertEqual(short.status_code, 400)
        self.assertEqual(short.json()["message"], "Revocation reason is required (minimum 5 characters)")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {
            "success": True,
            "message": "Collector status revoked successfully",
            "data": {"userId": collector.pk, "role": User.ROLE_USER, "status": CollectorProfile.STATUS_REJECTED},
        })
        collector.refresh_from_db()
        self.assertEqual(collector.role, User.ROLE_USER)
        self.assertEqual(collector.referral_code, "COLABC234")
        self.assertEqual(collector.collector_profile.rejected_reason, "Revoked: Repeated complaints")

    def test_revoke_requires_approved_collector(self):
        applicant = pending_applicant()
        resp = self._post("accounts:revoke_collector", applicant.pk, {"reason": "Not eligible"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "User is not an approved collector")

        missing = self._post("accounts:revoke_collector", 999999, {"reason": "Not eligible"})
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["message"], "User not found")

    def test_non_object_bodies(self):
        collector = make_collector()
        applicant = pending_applicant()

        toggled = self._post("accounts:toggle_collector", collector.pk, ["Complaint"])
        self.assertEqual(toggled.status_code, 200)
        self.assertTrue(toggled.json()["collector"]["disabled"])

        for name, user_id in (("accounts:reject_collector", applicant.pk), ("accounts:revoke_collector", collector.pk)):
            resp = self._post(name, user_id, ["Documents unreadable"])
            self.assertEqual(resp.status_code, 400)
            self.assertEqual(resp.json()["message"], "Invalid JSON body")


class GenerateReferralCodeApiTests(TestCase):
    url = "accounts:generate_referral_code"

    def test_requires_login(self):
        self.assertEqual(self.client.post(reverse(self.url)).status_code, 401)

    def test_requires_full_name(self):
        user = make_user()
        resp = self.client.post(reverse(self.url), **auth_header(user))

        self.assertEqual(resp.status_code, 400)
        self.assertTrue(resp.json()["requiresName"])

    def test_idempotent(self):
        user = make_user(full_name="Radha Sharma")
        first = self.client.post(reverse(self.url), **auth_header(user)).json()
        second = self.client.post(reverse(self.url), **auth_header(user)).json()

        self.assertEqual(first["referralCode"], second["referralCode"])
        self.assertEqual(second["message"], "Referral code already exists")
