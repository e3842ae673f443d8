"""Celery task running one delivery channel's daily fan-out.

A fan-out never raises for a single recipient: per-profile failures are
counted in the returned summary. Only a failure to start the run at all
(bad channel, missing mailer configuration) fails the task.
"""

from unearthed.celery import celery_app
from unearthed.db.session import session_scope
from unearthed.logging import clear_task_context, configure_task_logging, get_logger
from unearthed.services.delivery import DeliveryChannel, build_channel_delivery, run_channel_fanout
from unearthed.services.identity import get_identity_directory

logger = get_logger(__name__)


@celery_app.task(bind=True, max_retries=0, name="deliver_daily_reflections")
def deliver_daily_reflections(self, channel: str, request_id: str | None = None) -> dict:
    """Push today's reflection to every eligible profile over ``channel``.

    Args:
        channel: "email", "capacities" or "supernotes".
        request_id: Optional correlation ID for logging.

    Returns:
        The fan-out summary as a dict.
    """
    configure_task_logging(
        request_id=request_id, task_name="deliver_daily_reflections", task_id=self.request.id
    )
    logger.info("delivery_task_started", channel=channel)

    try:
        delivery = build_channel_delivery(DeliveryChannel(channel))
        with session_scope() as db:
            summary = run_channel_fanout(db, get_identity_directory(), delivery)
        logger.info("delivery_task_completed", channel=channel)
        return summary.to_dict()
    except Exception as exc:
        logger.error("delivery_task_failed", channel=channel, error=str(exc))
        raise
    finally:
        clear_task_context()
