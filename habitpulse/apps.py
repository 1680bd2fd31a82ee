from django.apps import AppConfig
import sys


class HabitPulseConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "habitpulse"
    verbose_name = "HabitPulse Analytics"

    def ready(self):
        from habitpulse.conf import get_setting

        # Prevent scheduler from starting twice (reloader) and from starting
        # inside management commands or the test runner
        if 'runserver' in sys.argv and get_setting('SCHEDULER_ENABLED'):
            from habitpulse.integrations import scheduler

            scheduler.start_scheduler()
