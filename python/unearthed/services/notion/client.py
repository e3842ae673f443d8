"""Notion REST API client.

Thin httpx wrapper over the handful of endpoints the sync needs. Every
call is paced by a fixed delay (Notion averages 3 requests/second per
integration) and retried with exponential backoff on rate limiting,
server errors and network failures. Other 4xx responses fail at once.
"""

import base64
import time
from collections.abc import Callable, Iterator
from typing import Any

import httpx

from unearthed.config import get_settings
from unearthed.errors import ConfigurationError, UpstreamError
from unearthed.logging import get_logger

logger = get_logger(__name__)

MAX_RETRIES = 3
BASE_BACKOFF_S = 1.0
PAGE_SIZE = 100
RETRYABLE_STATUSES = frozenset({409, 429, 500, 502, 503, 504})

SOURCES_DATABASE_TITLE = "Sources"
SOURCES_DATABASE_COVER = "https://images.unsplash.com/photo-1512820790803-83ca734da794"


class NotionClient:
    """Authenticated Notion API client for one workspace connection."""

    def __init__(
        self,
        access_token: str,
        *,
        api_url: str = "https://api.notion.com",
        version: str = "2022-06-28",
        request_delay_s: float = 0.3,
        max_retries: int = MAX_RETRIES,
        base_backoff_s: float = BASE_BACKOFF_S,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._base_url = f"{api_url.rstrip('/')}/v1"
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Notion-Version": version,
        }
        self._request_delay_s = request_delay_s
        self._max_retries = max_retries
        self._base_backoff_s = base_backoff_s
        self._timeout = timeout
        self._sleep = sleep

    @classmethod
    def from_settings(cls, access_token: str, **overrides: Any) -> "NotionClient":
        settings = get_settings()
        options: dict[str, Any] = {
            "api_url": settings.notion_api_url,
            "version": settings.notion_version,
            "request_delay_s": settings.notion_request_delay_ms / 1000,
            "timeout": settings.http_timeout_s,
        }
        options.update(overrides)
        return cls(access_token, **options)

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        attempt = 0
        while True:
            try:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.request(method, url, headers=self._headers, **kwargs)
                error: UpstreamError | None = None
                if response.status_code < 400:
                    return response.json()
                error = UpstreamError(
                    f"Notion returned {response.status_code}",
                    service="notion",
                    status=response.status_code,
                )
                retryable = response.status_code in RETRYABLE_STATUSES
            except httpx.RequestError as e:
                error = UpstreamError("Notion unreachable", service="notion")
                error.__cause__ = e
                retryable = True
            finally:
                if self._request_delay_s:
                    self._sleep(self._request_delay_s)

            if not retryable or attempt >= self._max_retries:
                raise error

            backoff = self._base_backoff_s * (2**attempt)
            attempt += 1
            logger.info(
                "notion_request_retry",
                path=path,
                attempt=attempt,
                backoff_s=backoff,
                status_code=error.upstream_status,
            )
            self._sleep(backoff)

    def create_sources_database(self, parent_page_id: str) -> str:
        """Create the "Sources" database under ``parent_page_id``; returns its id."""
        data = self._request(
            "POST",
            "/databases",
            json={
                "parent": {"type": "page_id", "page_id": parent_page_id},
                "icon": {"type": "emoji", "emoji": "📚"},
                "cover": {"type": "external", "external": {"url": SOURCES_DATABASE_COVER}},
                "title": [{"type": "text", "text": {"content": SOURCES_DATABASE_TITLE}}],
                "properties": {
                    "Title": {"title": {}},
                    "Subtitle": {"rich_text": {}},
                    "Author": {"rich_text": {}},
                    "Image": {"files": {}},
                    "Origin": {"rich_text": {}},
                },
            },
        )
        return data["id"]

    def query_database(self, database_id: str) -> Iterator[dict[str, Any]]:
        """Yield every page of a database, following pagination."""
        cursor: str | None = None
        while True:
            body: dict[str, Any] = {"page_size": PAGE_SIZE}
            if cursor:
                body["start_cursor"] = cursor
            data = self._request("POST", f"/databases/{database_id}/query", json=body)
            yield from data.get("results", [])
            if not data.get("has_more"):
                return
            cursor = data.get("next_cursor")

    def create_page(
        self, database_id: str, properties: dict[str, Any], cover_url: str | None = None
    ) -> str:
        body: dict[str, Any] = {"parent": {"database_id": database_id}, "properties": properties}
        if cover_url:
            body["cover"] = {"type": "external", "external": {"url": cover_url}}
        return self._request("POST", "/pages", json=body)["id"]

    def list_children(self, block_id: str) -> Iterator[dict[str, Any]]:
        """Yield every child block of ``block_id``, 100 per request."""
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"page_size": PAGE_SIZE}
            if cursor:
                params["start_cursor"] = cursor
            data = self._request("GET", f"/blocks/{block_id}/children", params=params)
            yield from data.get("results", [])
            if not data.get("has_more"):
                return
            cursor = data.get("next_cursor")

    def append_children(self, block_id: str, children: list[dict[str, Any]]) -> None:
        """Append blocks in batches of at most 100 (Notion's per-request cap)."""
        for start in range(0, len(children), PAGE_SIZE):
            self._request(
                "PATCH",
                f"/blocks/{block_id}/children",
                json={"children": children[start : start + PAGE_SIZE]},
            )


def exchange_oauth_code(code: str) -> dict[str, Any]:
    """Trade an OAuth authorization code for the workspace auth blob.

    Returns:
        Notion's token response (access_token, owner, duplicated_template_id, ...).

    Raises:
        ConfigurationError: Notion client credentials are not configured.
        UpstreamError: Notion rejected the code or was unreachable.
    """
    settings = get_settings()
    if not settings.notion_client_id or not settings.notion_client_secret:
        raise ConfigurationError("Notion OAuth client credentials are not configured")

    basic = base64.b64encode(
        f"{settings.notion_client_id}:{settings.notion_client_secret}".encode()
    ).decode("ascii")
    try:
        with httpx.Client(timeout=settings.http_timeout_s) as client:
            response = client.post(
                f"{settings.notion_api_url.rstrip('/')}/v1/oauth/token",
                headers={"Authorization": f"Basic {basic}", "Accept": "application/json"},
                json={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": settings.notion_redirect_uri,
                },
            )
    except httpx.RequestError as e:
        raise UpstreamError("Notion unreachable", service="notion") from e

    if response.status_code != 200:
        raise UpstreamError(
            f"Notion token exchange failed with {response.status_code}",
            service="notion",
            status=response.status_code,
        )

    data = response.json()
    if not data.get("access_token"):
        raise UpstreamError("Notion token response has no access token", service="notion")
    return data
