"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from unearthed.api.routes.chat import router as chat_router
from unearthed.api.routes.cron import router as cron_router
from unearthed.api.routes.daily import router as daily_router
from unearthed.api.routes.health import router as health_router
from unearthed.api.routes.keys import router as keys_router
from unearthed.api.routes.me import router as me_router
from unearthed.api.routes.notion import router as notion_router
from unearthed.api.routes.public import router as public_router
from unearthed.api.routes.quotes import router as quotes_router
from unearthed.api.routes.search import router as search_router
from unearthed.api.routes.sources import router as sources_router
from unearthed.api.routes.tags import router as tags_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        Configured APIRouter with all routes registered.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(me_router, tags=["user"])
    api_router.include_router(sources_router, tags=["sources"])
    api_router.include_router(quotes_router, tags=["quotes"])
    api_router.include_router(search_router, tags=["search"])
    api_router.include_router(daily_router, tags=["daily"])
    api_router.include_router(keys_router)
    api_router.include_router(tags_router, tags=["tags"])
    api_router.include_router(notion_router, tags=["notion"])
    api_router.include_router(chat_router, tags=["chat"])
    api_router.include_router(public_router, tags=["public"])
    api_router.include_router(cron_router, tags=["cron"])
    return api_router


__all__ = ["create_api_router"]
