import sys

from django.apps import AppConfig
from django.conf import settings


class DonationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "donations"

    def ready(self):
        if not getattr(settings, "CLEANUP_SCHEDULER_AUTOSTART", False):
            return
        # management commands (migrate, test, run_cleanup itself) never start it
        if len(sys.argv) > 1 and sys.argv[1] not in ("runserver",) and "manage.py" in sys.argv[0]:
            return
        from .cleanup import start_scheduler
        start_scheduler()
