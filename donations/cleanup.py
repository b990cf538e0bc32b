"""Periodic sweeps of abandoned PENDING donations and expired OTP records."""

import logging
import threading
from datetime import timedelta

from django.conf import settings
from django.db import DatabaseError, close_old_connections
from django.utils import timezone

from .models import Donation, OtpRecord

logger = logging.getLogger(__name__)


def cleanup_pending_donations(hours_old=24) -> int:
    cutoff = timezone.now() - timedelta(hours=hours_old)
    try:
        deleted, _ = Donation.objects.filter(status=Donation.STATUS_PENDING, created_at__lt=cutoff).delete()
    except DatabaseError:
        logger.exception("Pending donation cleanup failed")
        return 0
    logger.info("Cleanup: removed %s pending donations older than %sh", deleted, hours_old)
    return deleted


def cleanup_expired_otps() -> int:
    try:
        deleted, _ = OtpRecord.objects.filter(expires_at__lt=timezone.now()).delete()
    except DatabaseError:
        logger.exception("Expired OTP cleanup failed")
        return 0
    logger.info("Cleanup: removed %s expired OTP records", deleted)
    return deleted


def run_all_cleanup_tasks(pending_hours=None) -> dict:
    if pending_hours is None:
        pending_hours = getattr(settings, "CLEANUP_PENDING_MAX_AGE_HOURS", 24)
    return {
        "pendingDonations": cleanup_pending_donations(pending_hours),
        "expiredOtps": cleanup_expired_otps(),
    }


class CleanupScheduler(threading.Thread):
    """Runs the sweep once after ``initial_delay_seconds`` and then on every interval."""

    def __init__(self, interval_seconds=6 * 3600, initial_delay_seconds=10, pending_hours=None):
        super().__init__(name="donations-cleanup", daemon=True)
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self.pending_hours = pending_hours
        self._stop_event = threading.Event()

    def run(self):
        logger.info(
            "Cleanup scheduler started (first run in %ss, then every %ss)",
            self.initial_delay_seconds, self.interval_seconds,
        )
        if self._stop_event.wait(self.initial_delay_seconds):
            return
        while True:
            self.run_once()
            if self._stop_event.wait(self.interval_seconds):
                break
        logger.info("Cleanup scheduler stopped")

    def run_once(self):
        close_old_connections()
        try:
            return run_all_cleanup_tasks(self.pending_hours)
        except Exception:
            logger.exception("Cleanup run failed")
            return None
        finally:
            close_old_connections()

    def stop(self):
        self._stop_event.set()


_scheduler = None
_scheduler_lock = threading.Lock()


def start_scheduler():
    """Start the process-wide scheduler once; later calls return the same thread."""
    global _scheduler
    with _scheduler_lock:
        if _scheduler is None or not _scheduler.is_alive():
            _scheduler = CleanupScheduler(
                interval_seconds=int(getattr(settings, "CLEANUP_INTERVAL_HOURS", 6) * 3600),
                initial_delay_seconds=getattr(settings, "CLEANUP_INITIAL_DELAY_SECONDS", 10),
            )
            _scheduler.start()
        return _scheduler
