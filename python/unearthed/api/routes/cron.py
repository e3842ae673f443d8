"""Scheduler-triggered job routes.

Only the shared cron secret resolves to the system caller these routes
require. Each call runs one job to completion and returns its summary;
per-profile and per-job failures are counted in the summary, not raised.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from unearthed.api.deps import get_db, get_directory, require_system
from unearthed.auth.middleware import Viewer
from unearthed.config import get_settings
from unearthed.errors import InvalidRequestError
from unearthed.responses import success_response
from unearthed.services.delivery import DeliveryChannel, build_channel_delivery, run_channel_fanout
from unearthed.services.identity import IdentityDirectoryBase
from unearthed.services.notion import enqueue_notion_jobs, process_notion_shard

router = APIRouter(prefix="/cron")


def _fanout(db: Session, directory: IdentityDirectoryBase, channel: DeliveryChannel) -> dict:
    summary = run_channel_fanout(db, directory, build_channel_delivery(channel))
    return success_response(summary.to_dict())


@router.post("/email")
def send_daily_emails(
    viewer: Annotated[Viewer, Depends(require_system)],
    db: Annotated[Session, Depends(get_db)],
    directory: Annotated[IdentityDirectoryBase, Depends(get_directory)],
) -> dict:
    return _fanout(db, directory, DeliveryChannel.EMAIL)


@router.post("/capacities")
def update_capacities(
    viewer: Annotated[Viewer, Depends(require_system)],
    db: Annotated[Session, Depends(get_db)],
    directory: Annotated[IdentityDirectoryBase, Depends(get_directory)],
) -> dict:
    return _fanout(db, directory, DeliveryChannel.CAPACITIES)


@router.post("/supernotes")
def update_supernotes(
    viewer: Annotated[Viewer, Depends(require_system)],
    db: Annotated[Session, Depends(get_db)],
    directory: Annotated[IdentityDirectoryBase, Depends(get_directory)],
) -> dict:
    return _fanout(db, directory, DeliveryChannel.SUPERNOTES)


@router.post("/notion/jobs")
def enqueue_jobs(
    viewer: Annotated[Viewer, Depends(require_system)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Producer: queue a READY job for every source due a Notion sync."""
    return success_response(enqueue_notion_jobs(db))


@router.post("/notion/shards/{shard}")
def process_shard(
    shard: Annotated[int, Path(ge=0)],
    viewer: Annotated[Viewer, Depends(require_system)],
    db: Annotated[Session, Depends(get_db)],
    directory: Annotated[IdentityDirectoryBase, Depends(get_directory)],
) -> dict:
    """Consumer: process a few open jobs of one shard.

    Errors:
        E_INVALID_REQUEST (400): Shard number is outside NOTION_SHARD_COUNT
    """
    if shard >= get_settings().notion_shard_count:
        raise InvalidRequestError(message=f"Unknown shard {shard}")
    summary = process_notion_shard(db, directory, shard)
    return success_response(summary.to_dict())
