"""Celery worker and beat entrypoint.

Run with:
    celery -A apps.worker.main:celery_app worker -Q delivery,notion --loglevel=info
    celery -A apps.worker.main:celery_app beat --loglevel=info

This module imports the Celery app and explicitly registers all tasks.
Task definitions are in the unearthed.tasks package - no autodiscovery.

Queue Configuration:
- delivery: Daily reflection fan-outs (email, Capacities, Supernotes)
- notion: Notion job producer and per-shard consumers

Concurrency Notes:
- Consumers pace themselves against Notion's rate limit, so one worker
  process per shard is enough
"""

from celery.signals import worker_process_init

from unearthed.celery import celery_app
from unearthed.logging import configure_logging, get_logger

# =============================================================================
# Task Registration (explicit imports - no autodiscovery)
# =============================================================================

from unearthed.tasks import (  # noqa: F401
    deliver_daily_reflections,
    enqueue_notion_sync_jobs,
    process_notion_sync_shard,
)

# =============================================================================
# Worker Lifecycle
# =============================================================================


@worker_process_init.connect
def setup_worker_logging(**kwargs):
    """Configure structlog when a worker process starts."""
    configure_logging()
    logger = get_logger(__name__)
    logger.info("celery_worker_started", queues=["delivery", "notion"])


# Export celery_app for Celery to find
__all__ = ["celery_app"]
