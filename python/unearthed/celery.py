"""Celery application configuration.

Central configuration for Celery used by the worker and the beat scheduler.
Beat replaces the external cron: it triggers the delivery fan-outs, the
Notion job producer, and one Notion consumer per shard.

Usage:
    from unearthed.celery import celery_app

    # Run a fan-out now:
    celery_app.send_task("deliver_daily_reflections", args=["email"])

    # Or import task directly:
    from unearthed.tasks import process_notion_sync_shard
    process_notion_sync_shard.apply_async(args=[0], queue="notion")
"""

from celery import Celery
from celery.schedules import crontab

from unearthed.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery("unearthed")

# Configure from settings
celery_app.conf.broker_url = settings.effective_celery_broker_url
celery_app.conf.result_backend = settings.effective_celery_result_backend

# Task configuration
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

# Queue routing
celery_app.conf.task_routes = {
    "deliver_daily_reflections": {"queue": "delivery"},
    "enqueue_notion_sync_jobs": {"queue": "notion"},
    "process_notion_sync_shard": {"queue": "notion"},
}

# Default queue
celery_app.conf.task_default_queue = "default"

# For testing: allow eager mode (synchronous execution)
celery_app.conf.task_always_eager = False


def build_beat_schedule(shard_count: int) -> dict:
    """Periodic jobs. Delivery runs are idempotent per (user, day, channel)."""
    schedule = {
        "daily-email": {
            "task": "deliver_daily_reflections",
            "schedule": crontab(hour=13, minute=0),
            "args": ["email"],
        },
        # Hourly so each offset's new day reaches its daily note soon after midnight
        "daily-capacities": {
            "task": "deliver_daily_reflections",
            "schedule": crontab(minute=5),
            "args": ["capacities"],
        },
        "daily-supernotes": {
            "task": "deliver_daily_reflections",
            "schedule": crontab(minute=10),
            "args": ["supernotes"],
        },
        "notion-producer": {
            "task": "enqueue_notion_sync_jobs",
            "schedule": crontab(minute=0, hour="*/6"),
        },
    }
    for shard in range(shard_count):
        schedule[f"notion-consumer-{shard}"] = {
            "task": "process_notion_sync_shard",
            "schedule": crontab(minute="*"),
            "args": [shard],
        }
    return schedule


celery_app.conf.beat_schedule = build_beat_schedule(settings.notion_shard_count)


def get_celery_app() -> Celery:
    """Get the Celery application instance."""
    return celery_app
