"""Notion sync job queue: producer, per-shard consumer and user-triggered syncs.

All jobs live in one notion_source_jobs table; the `shard` column decides
which scheduled consumer picks a row up. Sharding only bounds how much
work one consumer invocation does, it carries no meaning of its own.

A partial unique index allows one open (READY/PENDING) job per source, so
re-running the producer never queues a source twice.
"""

from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from unearthed.config import get_settings
from unearthed.db.conflict import insert_ignoring_conflicts
from unearthed.db.models import (
    OPEN_JOB_STATUSES,
    NotionJobStatus,
    NotionSourceJob,
    Profile,
    Source,
    UserStatus,
)
from unearthed.db.session import transaction
from unearthed.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from unearthed.logging import get_logger
from unearthed.services.batching import chunked, split_into_shards
from unearthed.services.identity import IdentityDirectoryBase
from unearthed.services.notion.client import NotionClient
from unearthed.services.notion.sync import load_connection, sync_source

logger = get_logger(__name__)

INSERT_CHUNK_SIZE = 500
MAX_ERROR_LENGTH = 500

ClientFactory = Callable[[str], NotionClient]


def plan_shards(items: Sequence[Any], shard_count: int) -> dict[int, list[Any]]:
    """Assign every item to exactly one shard, keyed by shard number."""
    return dict(enumerate(split_into_shards(items, shard_count)))


def shard_for(source_id: UUID, shard_count: int) -> int:
    """Shard for a single, individually queued source."""
    return source_id.int % shard_count


def _insert_jobs(db: Session, rows: list[dict[str, Any]]) -> int:
    inserted = 0
    for batch in chunked(rows, INSERT_CHUNK_SIZE):
        inserted += len(
            db.scalars(
                insert_ignoring_conflicts(db, NotionSourceJob, batch).returning(NotionSourceJob.id)
            ).all()
        )
    return inserted


def _job_rows(
    pairs: Sequence[tuple[UUID, UUID]], shard_count: int, new_connection: bool
) -> list[dict[str, Any]]:
    rows = []
    for shard, members in plan_shards(pairs, shard_count).items():
        for source_id, profile_id in members:
            rows.append(
                {
                    "id": uuid4(),
                    "source_id": source_id,
                    "profile_id": profile_id,
                    "shard": shard,
                    "status": NotionJobStatus.READY.value,
                    "attempts": 0,
                    "new_connection": new_connection,
                }
            )
    return rows


# =============================================================================
# Producer
# =============================================================================


def eligible_sources(db: Session) -> list[tuple[UUID, UUID]]:
    """(source_id, profile_id) for every source that should be mirrored to Notion."""
    rows = db.execute(
        select(Source.id, Profile.id)
        .join(Profile, Profile.user_id == Source.user_id)
        .where(
            Profile.user_status == UserStatus.ACTIVE.value,
            Profile.notion_auth_data.is_not(None),
            Profile.notion_auth_data != "",
            Profile.notion_database_id.is_not(None),
            Profile.notion_database_id != "",
            Source.ignored.is_(False),
        )
        .order_by(Profile.id, Source.id)
    ).all()
    return [(source_id, profile_id) for source_id, profile_id in rows]


def enqueue_notion_jobs(db: Session, shard_count: int | None = None) -> dict[str, int]:
    """Queue a READY job for every eligible source lacking an open one."""
    shard_count = shard_count or get_settings().notion_shard_count
    eligible = eligible_sources(db)
    rows = _job_rows(eligible, shard_count, new_connection=False)

    with transaction(db):
        inserted = _insert_jobs(db, rows) if rows else 0

    logger.info(
        "notion_jobs_enqueued",
        eligible=len(eligible),
        inserted=inserted,
        shards=shard_count,
    )
    return {"eligible": len(eligible), "inserted": inserted, "shards": shard_count}


# =============================================================================
# Consumer
# =============================================================================


@dataclass
class ShardRunSummary:
    shard: int
    claimed: int = 0
    completed: int = 0
    failed: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def claim_jobs(db: Session, shard: int, limit: int, max_attempts: int) -> list[NotionSourceJob]:
    """Lock and mark up to ``limit`` open jobs of ``shard`` as PENDING."""
    with transaction(db):
        jobs = db.scalars(
            select(NotionSourceJob)
            .where(
                NotionSourceJob.shard == shard,
                NotionSourceJob.status.in_(OPEN_JOB_STATUSES),
                NotionSourceJob.attempts < max_attempts,
            )
            .order_by(NotionSourceJob.created_at, NotionSourceJob.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        ).all()
        for job in jobs:
            job.status = NotionJobStatus.PENDING.value
            job.attempts += 1
    return list(jobs)


def process_notion_shard(
    db: Session,
    directory: IdentityDirectoryBase,
    shard: int,
    *,
    limit: int | None = None,
    client_factory: ClientFactory | None = None,
) -> ShardRunSummary:
    """Run one consumer pass over ``shard``.

    A failed job stays open for the next pass until it has used
    NOTION_MAX_ATTEMPTS attempts; it is then closed with its last error
    recorded so the producer can queue the source afresh.
    """
    settings = get_settings()
    limit = limit or settings.notion_jobs_per_run
    max_attempts = settings.notion_max_attempts
    factory = client_factory or NotionClient.from_settings

    jobs = claim_jobs(db, shard, limit, max_attempts)
    summary = ShardRunSummary(shard=shard, claimed=len(jobs))

    for job in jobs:
        job_id = job.id
        try:
            profile = job.profile
            encryption_key = directory.require_encryption_key(profile.user_id)
            connection = load_connection(profile, encryption_key)
            outcome = sync_source(
                factory(connection.access_token),
                connection.database_id,
                job.source,
                encryption_key,
                # A retry may follow a half-written page, so it looks the page up
                new_connection=job.new_connection and job.attempts == 1,
            )
            with transaction(db):
                job.status = NotionJobStatus.COMPLETE.value
                job.last_error = None
            summary.completed += 1
            summary.outcomes[outcome.value] = summary.outcomes.get(outcome.value, 0) + 1
        except Exception as e:
            db.rollback()
            summary.failed += 1
            error = f"{type(e).__name__}: {e}"[:MAX_ERROR_LENGTH]
            with transaction(db):
                job.last_error = error
                if job.attempts >= max_attempts:
                    job.status = NotionJobStatus.COMPLETE.value
            logger.warning(
                "notion_job_failed",
                job_id=str(job_id),
                shard=shard,
                attempts=job.attempts,
                exhausted=job.attempts >= max_attempts,
                error_type=type(e).__name__,
            )

    logger.info("notion_shard_processed", **summary.to_dict())
    return summary


# =============================================================================
# User-triggered syncs
# =============================================================================


def _connected_profile(db: Session, user_id: str) -> Profile:
    profile = db.scalars(select(Profile).where(Profile.user_id == user_id)).first()
    if profile is None:
        raise NotFoundError(ApiErrorCode.E_PROFILE_NOT_FOUND, "Profile not found")
    if not profile.notion_auth_data or not profile.notion_database_id:
        raise InvalidRequestError(message="Notion is not connected")
    return profile


def replace_profile_jobs(
    db: Session,
    profile: Profile,
    source_ids: Sequence[UUID],
    *,
    new_connection: bool,
    shard_count: int | None = None,
) -> int:
    """Drop the profile's open jobs and queue ``source_ids`` afresh."""
    shard_count = shard_count or get_settings().notion_shard_count
    rows = _job_rows([(sid, profile.id) for sid in source_ids], shard_count, new_connection)
    with transaction(db):
        db.execute(
            delete(NotionSourceJob).where(
                NotionSourceJob.profile_id == profile.id,
                NotionSourceJob.status.in_(OPEN_JOB_STATUSES),
            )
        )
        inserted = _insert_jobs(db, rows) if rows else 0
    return inserted


def sync_all_to_notion(db: Session, user_id: str) -> dict[str, int]:
    """Queue every non-ignored source of the user, replacing open jobs."""
    profile = _connected_profile(db, user_id)
    source_ids = db.scalars(
        select(Source.id)
        .where(Source.user_id == user_id, Source.ignored.is_(False))
        .order_by(Source.id)
    ).all()
    inserted = replace_profile_jobs(db, profile, source_ids, new_connection=False)
    logger.info("notion_sync_requested", user_id=user_id, sources=len(source_ids))
    return {"queued": inserted}


def sync_source_to_notion(db: Session, user_id: str, source_id: UUID) -> dict[str, int]:
    """Queue one source, replacing its open job if any."""
    profile = _connected_profile(db, user_id)
    source = db.scalars(
        select(Source).where(Source.id == source_id, Source.user_id == user_id)
    ).first()
    if source is None:
        raise NotFoundError(ApiErrorCode.E_SOURCE_NOT_FOUND, "Source not found")

    shard = shard_for(source.id, get_settings().notion_shard_count)
    with transaction(db):
        db.execute(
            delete(NotionSourceJob).where(
                NotionSourceJob.source_id == source.id,
                NotionSourceJob.status.in_(OPEN_JOB_STATUSES),
            )
        )
        inserted = _insert_jobs(
            db,
            [
                {
                    "id": uuid4(),
                    "source_id": source.id,
                    "profile_id": profile.id,
                    "shard": shard,
                    "status": NotionJobStatus.READY.value,
                    "attempts": 0,
                    "new_connection": False,
                }
            ],
        )
    logger.info("notion_source_sync_requested", user_id=user_id, source_id=str(source_id))
    return {"queued": inserted}
