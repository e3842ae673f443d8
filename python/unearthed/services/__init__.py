"""Business logic services.

This module contains service-layer functions that implement business logic.
Services are called by route handlers and Celery tasks and orchestrate
database operations.
"""

from unearthed.services.bootstrap import ensure_profile, ensure_user_bootstrap
from unearthed.services.reflection import get_daily_reflection, get_or_create_daily_reflection

__all__ = [
    "ensure_profile",
    "ensure_user_bootstrap",
    "get_daily_reflection",
    "get_or_create_daily_reflection",
]
