"""Celery tasks for Unearthed.

Tasks are explicitly imported here to register them with Celery.
No autodiscovery - all tasks must be imported in this module.
"""

from unearthed.tasks.delivery import deliver_daily_reflections
from unearthed.tasks.notion_sync import enqueue_notion_sync_jobs, process_notion_sync_shard

__all__ = [
    "deliver_daily_reflections",
    "enqueue_notion_sync_jobs",
    "process_notion_sync_shard",
]
