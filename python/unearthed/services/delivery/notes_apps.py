"""HTTP clients for the notes-app delivery targets (Capacities, Supernotes)."""

from typing import Any

import httpx

from unearthed.errors import UpstreamError
from unearthed.logging import get_logger

logger = get_logger(__name__)


def _send(
    service: str, method: str, url: str, headers: dict[str, str], payload: dict[str, Any], timeout: float
) -> httpx.Response:
    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.request(method, url, headers=headers, json=payload)
    except httpx.RequestError as e:
        raise UpstreamError(f"{service} unreachable", service=service) from e

    if response.status_code >= 400:
        logger.warning("delivery_target_rejected", service=service, status_code=response.status_code)
        raise UpstreamError(
            f"{service} returned {response.status_code}",
            service=service,
            status=response.status_code,
        )
    return response


class CapacitiesClient:
    """Capacities "save to daily note" API."""

    def __init__(self, api_url: str, timeout: float = 30.0):
        self._url = f"{api_url.rstrip('/')}/save-to-daily-note"
        self._timeout = timeout

    def save_to_daily_note(self, api_key: str, space_id: str, md_text: str) -> None:
        _send(
            "capacities",
            "POST",
            self._url,
            {"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
            {
                "spaceId": space_id,
                "mdText": md_text,
                "origin": "commandPalette",
                "noTimeStamp": True,
            },
            self._timeout,
        )


class SupernotesClient:
    """Supernotes daily card API."""

    def __init__(self, api_url: str, timeout: float = 30.0):
        self._url = f"{api_url.rstrip('/')}/v1/cards/daily"
        self._timeout = timeout

    def put_daily_card(self, api_key: str, markup: str) -> None:
        _send(
            "supernotes",
            "PUT",
            self._url,
            {"Api-Key": api_key},
            {"markup": markup, "format": "plain"},
            self._timeout,
        )
