"""Notion integration: OAuth connection, page sync and the sharded job queue."""

from unearthed.services.notion.client import NotionClient, exchange_oauth_code
from unearthed.services.notion.jobs import (
    enqueue_notion_jobs,
    plan_shards,
    process_notion_shard,
    sync_all_to_notion,
    sync_source_to_notion,
)
from unearthed.services.notion.oauth import connect_notion
from unearthed.services.notion.sync import SyncOutcome, sync_source

__all__ = [
    "NotionClient",
    "SyncOutcome",
    "connect_notion",
    "enqueue_notion_jobs",
    "exchange_oauth_code",
    "plan_shards",
    "process_notion_shard",
    "sync_all_to_notion",
    "sync_source",
    "sync_source_to_notion",
]
