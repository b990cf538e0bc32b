import time

from django.conf import settings
from django.core.management.base import BaseCommand

from donations.cleanup import run_all_cleanup_tasks


class Command(BaseCommand):
    help = "Delete stale PENDING donations and expired OTP records, once or on an interval"

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
        parser.add_argument(
            "--interval-hours", type=float,
            default=getattr(settings, "CLEANUP_INTERVAL_HOURS", 6),
            help="Hours between sweeps",
        )
        parser.add_argument(
            "--pending-hours", type=float,
            default=getattr(settings, "CLEANUP_PENDING_MAX_AGE_HOURS", 24),
            help="Delete PENDING donations older than N hours",
        )

    def _sweep(self, pending_hours):
        result = run_all_cleanup_tasks(pending_hours)
        self.stdout.write(self.style.SUCCESS(
            f"Removed {result['pendingDonations']} pending donations, {result['expiredOtps']} expired OTPs."
        ))

    def handle(self, *args, **opts):
        if opts["once"]:
            self._sweep(opts["pending_hours"])
            return

        interval = max(opts["interval_hours"], 0.01) * 3600
        self.stdout.write(f"Cleanup worker running every {opts['interval_hours']}h")
        try:
            while True:
                self._sweep(opts["pending_hours"])
                time.sleep(interval)
        except KeyboardInterrupt:
            self.stdout.write("Cleanup worker stopped.")
