"""Celery tasks for the Notion sync queue: the producer and the shard consumer."""

from unearthed.celery import celery_app
from unearthed.db.session import session_scope
from unearthed.logging import clear_task_context, configure_task_logging, get_logger
from unearthed.services.identity import get_identity_directory
from unearthed.services.notion import enqueue_notion_jobs, process_notion_shard

logger = get_logger(__name__)


@celery_app.task(bind=True, max_retries=0, name="enqueue_notion_sync_jobs")
def enqueue_notion_sync_jobs(self, request_id: str | None = None) -> dict:
    """Queue a READY job for every source due a Notion sync."""
    configure_task_logging(
        request_id=request_id, task_name="enqueue_notion_sync_jobs", task_id=self.request.id
    )
    try:
        with session_scope() as db:
            return enqueue_notion_jobs(db)
    except Exception as exc:
        logger.error("notion_producer_failed", error=str(exc))
        raise
    finally:
        clear_task_context()


@celery_app.task(bind=True, max_retries=0, name="process_notion_sync_shard")
def process_notion_sync_shard(self, shard: int, request_id: str | None = None) -> dict:
    """Process a few open jobs of ``shard``.

    Failed jobs stay open for the next scheduled run until their attempts
    are used up, so the task itself is never retried.
    """
    configure_task_logging(
        request_id=request_id, task_name="process_notion_sync_shard", task_id=self.request.id
    )
    try:
        with session_scope() as db:
            summary = process_notion_shard(db, get_identity_directory(), shard)
        return summary.to_dict()
    except Exception as exc:
        logger.error("notion_consumer_failed", shard=shard, error=str(exc))
        raise
    finally:
        clear_task_context()
