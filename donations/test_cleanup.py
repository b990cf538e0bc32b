from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.contrib.auth.hashers import make_password
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from sevatrust.tests.factories import hours_ago, make_donation

from .cleanup import (
    CleanupScheduler,
    cleanup_expired_otps,
    cleanup_pending_donations,
    run_all_cleanup_tasks,
)
from .models import Donation, OtpRecord


def _otp(mobile, expires_in):
    return OtpRecord.objects.create(
        mobile=mobile, otp_hash=make_password("123456"),
        expires_at=timezone.now() + timedelta(seconds=expires_in),
    )


class CleanupTests(TestCase):
    def test_only_stale_pending_donations_removed(self):
        stale = make_donation(created_at=hours_ago(25))
        fresh = make_donation(created_at=hours_ago(2))
        old_success = make_donation(created_at=hours_ago(100), status=Donation.STATUS_SUCCESS)
        old_failed = make_donation(created_at=hours_ago(100), status=Donation.STATUS_FAILED)

        self.assertEqual(cleanup_pending_donations(24), 1)

        remaining = set(Donation.objects.values_list("pk", flat=True))
        self.assertEqual(remaining, {fresh.pk, old_success.pk, old_failed.pk})
        self.assertNotIn(stale.pk, remaining)

    def test_expired_otps_removed(self):
        _otp("9876543210", -10)
        live = _otp("9123456789", 200)

        self.assertEqual(cleanup_expired_otps(), 1)
        self.assertEqual(list(OtpRecord.objects.values_list("pk", flat=True)), [live.pk])

    def test_database_error_returns_zero(self):
        with patch("donations.cleanup.Donation.objects.filter", side_effect=DatabaseError("gone")):
            self.assertEqual(cleanup_pending_donations(), 0)

    def test_run_all(self):
        make_donation(created_at=hours_ago(30))
        _otp("9876543210", -1)
        self.assertEqual(run_all_cleanup_tasks(), {"pendingDonations": 1, "expiredOtps": 1})

    def test_management_command_once(self):
        make_donation(created_at=hours_ago(5))
        out = StringIO()
        call_command("run_cleanup", "--once", "--pending-hours", "4", stdout=out)
        self.assertIn("Removed 1 pending donations", out.getvalue())
        self.assertFalse(Donation.objects.exists())


class CleanupSchedulerTests(TestCase):
    @patch("donations.cleanup.run_all_cleanup_tasks", return_value={"pendingDonations": 0, "expiredOtps": 0})
    def test_stop_before_first_run(self, run_all):
        scheduler = CleanupScheduler(interval_seconds=3600, initial_delay_seconds=60)
        scheduler.start()
        scheduler.stop()
        scheduler.join(timeout=5)
        self.assertFalse(scheduler.is_alive())
        run_all.assert_not_called()

    @patch("donations.cleanup.run_all_cleanup_tasks", side_effect=RuntimeError("boom"))
    def test_run_once_swallows_errors(self, run_all):
        scheduler = CleanupScheduler()
        self.assertIsNone(scheduler.run_once())
        run_all.assert_called_once()
