from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse

from accounts.models import User
from donations.models import Donation
from sevatrust.tests.factories import auth_header, hours_ago, make_admin, make_collector, make_donation, make_user

from .services import (
    INVALID_CODE_MESSAGE,
    UNKNOWN_COLLECTOR,
    assign_referral_code,
    get_collector_dashboard,
    get_collector_stats,
    get_top_collectors,
    resolve_collector,
    validate_referral_code,
)


def attributed(collector, amount, **kwargs):
    kwargs.setdefault("status", Donation.STATUS_SUCCESS)
    kwargs.setdefault("collector_name", collector.full_name)
    return make_donation(
        collector=collector, has_collector_attribution=True, amount=Decimal(amount), **kwargs
    )


class ReferralCodeTests(TestCase):
    def test_assigned_once(self):
        user = make_user(full_name="Meera Das")
        first = assign_referral_code(user.pk)
        second = assign_referral_code(user.pk)

        self.assertEqual(first, second)
        self.assertRegex(first, r"^COL[A-Z0-9]{6}$")
        user.refresh_from_db()
        self.assertEqual(user.referral_code, first)

    def test_distinct_users_get_distinct_codes(self):
        codes = {assign_referral_code(make_user(username=f"u{i}", full_name=f"User {i}").pk) for i in range(10)}
        self.assertEqual(len(codes), 10)

    def test_unknown_user(self):
        self.assertIsNone(assign_referral_code(987654))

    def test_collision_is_retried(self):
        make_collector(referral_code="COLTAKEN1")
        user = make_user(username="newbie", full_name="New Bie")

        with patch("collectors.services.generate_referral_code", side_effect=["COLTAKEN1", "COLFRESH2"]):
            code = assign_referral_code(user.pk)

        self.assertEqual(code, "COLFRESH2")
        self.assertEqual(User.objects.filter(referral_code="COLTAKEN1").count(), 1)

    def test_gives_up_after_repeated_collisions(self):
        make_collector(referral_code="COLTAKEN1")
        user = make_user(username="newbie", full_name="New Bie")

        with patch("collectors.services.generate_referral_code", return_value="COLTAKEN1"):
            self.assertIsNone(assign_referral_code(user.pk))
        user.refresh_from_db()
        self.assertIsNone(user.referral_code)

    def test_concurrent_assignment_returns_winning_code(self):
        user = make_user(username="racer", full_name="Race Winner")

        def competing_request():
            User.objects.filter(pk=user.pk).update(referral_code="COLRACE01")
            return "COLMINE02"

        with patch("collectors.services.generate_referral_code", side_effect=competing_request):
            code = assign_referral_code(user.pk)

        self.assertEqual(code, "COLRACE01")
        user.refresh_from_db()
        self.assertEqual(user.referral_code, "COLRACE01")
        self.assertFalse(User.objects.filter(referral_code="COLMINE02").exists())


class ResolveCollectorTests(TestCase):
    def setUp(self):
        self.collector = make_collector()

    def test_valid_code_case_insensitive(self):
        ref = resolve_collector(" colabc234 ")
        self.assertEqual(ref.collector_id, self.collector.pk)
        self.assertEqual(ref.collector_name, "Ravi Kumar")
        self.assertEqual(
            validate_referral_code("COLABC234"),
            {"valid": True, "collectorId": self.collector.pk, "collectorName": "Ravi Kumar"},
        )

    def test_invalid_codes_are_indistinguishable(self):
        make_collector(username="off", full_name="Off Duty", referral_code="COLOFF123", collector_disabled=True)
        make_user(username="noname", referral_code="COLNONAME")

        results = [validate_referral_code(code) for code in ("BADCODE", "", "AB", None, "COLOFF123", "COLNONAME")]

        expected = {"valid": False, "error": INVALID_CODE_MESSAGE}
        for result in results:
            self.assertEqual(result, expected)
        self.assertIsNone(resolve_collector("COLOFF123"))


class LeaderboardTests(TestCase):
    def setUp(self):
        self.ravi = make_collector()
        self.sita = make_collector(username="sita", full_name="Sita Devi", referral_code="COLSITA22")

    def test_only_flagged_successful_donations_count(self):
        attributed(self.ravi, "1000")
        attributed(self.ravi, "9000", status=Donation.STATUS_PENDING)
        make_donation(collector=self.ravi, status=Donation.STATUS_SUCCESS, amount=Decimal("5000"))

        top = get_top_collectors()

        self.assertEqual(len(top), 1)
        self.assertEqual(top[0]["totalAmount"], 1000.0)
        self.assertEqual(top[0]["donationCount"], 1)
        stats = get_collector_stats(self.ravi.pk)
        self.assertEqual(stats["totalAmount"], 1000.0)
        self.assertEqual(stats["referralCode"], "COLABC234")

    def test_ranking_and_tie_break(self):
        attributed(self.sita, "700", created_at=hours_ago(10))
        attributed(self.ravi, "700", created_at=hours_ago(5))
        later = make_collector(username="gopal", full_name="Gopal", referral_code="COLGOPAL3")
        attributed(later, "2500")

        top = get_top_collectors(5)

        self.assertEqual([row["collectorId"] for row in top], [later.pk, self.sita.pk, self.ravi.pk])
        self.assertEqual([row["rank"] for row in top], [1, 2, 3])

    def test_limit(self):
        attributed(self.ravi, "100")
        attributed(self.sita, "200")
        self.assertEqual(len(get_top_collectors(1)), 1)

    def test_missing_name_falls_back(self):
        attributed(self.ravi, "100", collector_name="")
        self.assertEqual(get_top_collectors()[0]["collectorName"], UNKNOWN_COLLECTOR)

    def test_dashboard_hides_anonymous_donors(self):
        attributed(self.ravi, "250", donor_anonymous_display=True)
        attributed(self.ravi, "150", donor_name="Kiran Rao")

        data = get_collector_dashboard(self.ravi.pk)

        self.assertEqual(data["totalAmount"], 400.0)
        self.assertEqual(data["donationCount"], 2)
        names = {row["donorName"] for row in data["recentDonations"]}
        self.assertEqual(names, {"Anonymous", "Kiran Rao"})


class CollectorApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.collector = make_collector()

    def test_validate_endpoint(self):
        ok = self.client.get(reverse("collectors:validate_referral", args=["COLABC234"]))
        bad = self.client.get(reverse("collectors:validate_referral", args=["BADCODE"]))

        self.assertEqual(ok.status_code, 200)
        self.assertTrue(ok.json()["valid"])
        self.assertEqual(bad.status_code, 200)
        self.assertEqual(bad.json(), {"valid": False, "error": INVALID_CODE_MESSAGE})

    def test_leaderboard_endpoint(self):
        attributed(self.collector, "1200")
        resp = self.client.get(reverse("collectors:leaderboard_top"), {"limit": "500"})

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"][0]["collectorName"], "Ravi Kumar")

    def test_dashboard_requires_approved_collector(self):
        self.assertEqual(self.client.get(reverse("collectors:dashboard")).status_code, 401)

        donor = make_user()
        resp = self.client.get(reverse("collectors:dashboard"), **auth_header(donor))
        self.assertEqual(resp.status_code, 403)

    def test_dashboard(self):
        attributed(self.collector, "300")
        resp = self.client.get(reverse("collectors:dashboard"), **auth_header(self.collector))

        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["referralCode"], "COLABC234")
        self.assertEqual(data["totalAmount"], 300.0)
        self.assertEqual(len(data["top5Collectors"]), 1)

    def test_disabled_collector_locked_out(self):
        User.objects.filter(pk=self.collector.pk).update(collector_disabled=True)
        resp = self.client.get(reverse("collectors:dashboard"), **auth_header(self.collector))
        self.assertEqual(resp.status_code, 403)


class CollectorAdminReportTests(TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.ravi = make_collector()
        self.sita = make_collector(username="collector2", full_name="Sita Rao", referral_code="COLXYZ789")
        self.gopal = make_collector(username="collector3", full_name="Gopal Iyer", referral_code="COLGOP456")
        attributed(self.ravi, "1000")
        attributed(self.ravi, "500")
        attributed(self.sita, "2000")
        attributed(self.gopal, "100")
        attributed(self.gopal, "900", status=Donation.STATUS_PENDING)

    def _get(self, name, *args, **params):
        return self.client.get(reverse(name, args=args), params, **auth_header(self.admin))

    def test_summary_uses_attribution_flag(self):
        make_donation(status=Donation.STATUS_SUCCESS, amount=Decimal("250"))
        # collector set without the flag is not a referral
        make_donation(status=Donation.STATUS_SUCCESS, collector=self.sita, amount=Decimal("750"))

        resp = self._get("accounts:collector_summary")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {
            "activeCollectors": 3,
            "withReferral": {"count": 4, "amount": 3600.0},
            "withoutReferral": {"count": 2, "amount": 1000.0},
        })

    def test_collectors_paginated(self):
        User.objects.filter(pk=self.sita.pk).update(collector_disabled=True)

        first = self._get("accounts:collectors", page="1", limit="2").json()
        second = self._get("accounts:collectors", page="2", limit="2").json()

        self.assertEqual([c["collectorName"] for c in first["collectors"]], ["Sita Rao", "Ravi Kumar"])
        self.assertEqual([c["rank"] for c in first["collectors"]], [1, 2])
        self.assertTrue(first["collectors"][0]["collectorDisabled"])
        self.assertEqual(first["collectors"][1]["referralCode"], "COLABC234")
        self.assertEqual(first["collectors"][1]["totalAmount"], 1500.0)
        self.assertEqual(first["pagination"], {"page": 1, "limit": 2, "total": 3, "totalPages": 2})
        self.assertEqual(second["collectors"][0]["rank"], 3)
        self.assertEqual(second["collectors"][0]["collectorName"], "Gopal Iyer")

    def test_collectors_bad_paging_falls_back(self):
        body = self._get("accounts:collectors", page="abc", limit="-3").json()
        self.assertEqual(body["pagination"]["page"], 1)
        self.assertEqual(body["pagination"]["limit"], 20)
        self.assertEqual(len(body["collectors"]), 3)

    def test_collector_details_without_donor_details(self):
        resp = self._get("accounts:collector_details", self.gopal.pk)

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["collector"]["name"], "Gopal Iyer")
        self.assertEqual(body["collector"]["referralCode"], "COLGOP456")
        self.assertFalse(body["collector"]["disabled"])
        self.assertEqual(body["stats"], {"totalAmount": 100.0, "donationCount": 1})
        self.assertEqual(len(body["donations"]), 1)
        self.assertEqual(set(body["donations"][0]), {"donationId", "date", "amount", "cause", "status"})
        self.assertNotIn("Asha Verma", resp.content.decode())

    def test_collector_details_unknown(self):
        resp = self._get("accounts:collector_details", 999999)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["message"], "Collector not found")

    def test_admin_only(self):
        for name, args in (
            ("accounts:collectors", ()),
            ("accounts:collector_summary", ()),
            ("accounts:collector_details", (self.ravi.pk,)),
        ):
            resp = self.client.get(reverse(name, args=args), **auth_header(self.ravi))
            self.assertEqual(resp.status_code, 403)
