"""Celery Beat periodic task schedules.

Scheduled tasks:
- poll_alert_feeds: every POLL_INTERVAL_SECONDS - fetch feeds and record line changes
"""

from celery.schedules import schedule

from nyctcord.celery.app import celery_app
from nyctcord.core.config import POLL_INTERVAL_SECONDS

celery_app.conf.beat_schedule = {
    "poll-alert-feeds": {
        "task": "nyctcord.celery.tasks.poll_alert_feeds",
        "schedule": schedule(run_every=POLL_INTERVAL_SECONDS),
        "options": {
            # A round not picked up before the next tick is superseded by it
            "expires": int(POLL_INTERVAL_SECONDS),
        },
    },
}
