"""Celery configuration."""
import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault(
    "DJANGO_SETTINGS_MODULE",
    os.getenv("DJANGO_SETTINGS_MODULE", "config.settings.prod"),
)

app = Celery("fulfillment")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

# Beat schedule
app.conf.beat_schedule = {
    "check-stuck-orders": {
        "task": "alerts.tasks.check_stuck_orders",
        "schedule": crontab(minute=0),  # Every hour
    },
    "verify-site-loads": {
        "task": "alerts.tasks.verify_site_loads",
        "schedule": crontab(minute=30, hour="*/6"),  # Every 6 hours
    },
}
