"""Identity directory: the identity provider's private user metadata.

The identity provider (Clerk) is an external key-value store keyed by
user id. Unearthed keeps three values there:
- encryptionKey: base64 32-byte per-user key for notes and credentials
- secret: per-user secret, the second half of the "apiKey~~~secret" bearer
- isPremium: entitlement flag written by the billing integration

Provides:
- IdentityDirectoryBase: interface consumed by the gate, ingestion and fan-out
- ClerkDirectory: Clerk Backend API over httpx
- InMemoryDirectory: process-local directory for local runs and tests
- get_identity_directory(): configured instance
"""

import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import httpx

from unearthed.config import get_settings
from unearthed.errors import ConfigurationError, UpstreamError
from unearthed.logging import get_logger

logger = get_logger(__name__)

ENCRYPTION_KEY = "encryptionKey"
SECRET_KEY = "secret"
PREMIUM_KEY = "isPremium"

# Clerk caps list pages at 500
LIST_PAGE_SIZE = 500


@dataclass
class DirectoryUser:
    """A user record as seen through the identity provider."""

    user_id: str
    email: str | None = None
    private_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_premium(self) -> bool:
        return self.private_metadata.get(PREMIUM_KEY) is True

    @property
    def encryption_key(self) -> str | None:
        return self.private_metadata.get(ENCRYPTION_KEY) or None

    @property
    def secret(self) -> str | None:
        return self.private_metadata.get(SECRET_KEY) or None


def generate_user_secret() -> str:
    """Generate the per-user secret half of the compound public bearer."""
    return secrets.token_urlsafe(24)


class IdentityDirectoryBase(ABC):
    """Abstract identity directory."""

    @abstractmethod
    def get_user(self, user_id: str) -> DirectoryUser | None:
        """Fetch a user, or None if the provider does not know the id.

        Raises:
            UpstreamError: The provider could not be reached.
        """
        ...

    @abstractmethod
    def set_metadata(self, user_id: str, key: str, value: Any) -> None:
        """Set one private metadata key, leaving other keys untouched."""
        ...

    @abstractmethod
    def find_user_by_metadata(self, key: str, value: Any) -> DirectoryUser | None:
        """Scan users for one whose private metadata ``key`` equals ``value``."""
        ...

    def get_metadata(self, user_id: str, key: str) -> Any:
        user = self.get_user(user_id)
        if user is None:
            return None
        return user.private_metadata.get(key)

    def get_primary_email(self, user_id: str) -> str | None:
        user = self.get_user(user_id)
        return user.email if user else None

    def is_premium(self, user_id: str) -> bool:
        user = self.get_user(user_id)
        return bool(user and user.is_premium)

    def require_encryption_key(self, user_id: str) -> str:
        """Return the user's encryption key.

        Raises:
            ConfigurationError: No key is provisioned for the user.
        """
        key = self.get_metadata(user_id, ENCRYPTION_KEY)
        if not key:
            logger.error("encryption_key_missing", user_id=user_id)
            raise ConfigurationError("Encryption key is not provisioned for this user")
        return key


class ClerkDirectory(IdentityDirectoryBase):
    """Identity directory backed by the Clerk Backend API."""

    def __init__(self, api_url: str, secret_key: str, timeout: float = 30.0):
        self._api_url = api_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {secret_key}"}
        self._timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.request(
                    method, f"{self._api_url}{path}", headers=self._headers, **kwargs
                )
        except httpx.RequestError as e:
            logger.warning("identity_request_failed", path=path, error=str(e))
            raise UpstreamError("Identity provider unreachable", service="clerk") from e
        return response

    @staticmethod
    def _to_user(data: dict[str, Any]) -> DirectoryUser:
        email = None
        primary_id = data.get("primary_email_address_id")
        addresses = data.get("email_addresses") or []
        for address in addresses:
            if address.get("id") == primary_id:
                email = address.get("email_address")
                break
        if email is None and addresses:
            email = addresses[0].get("email_address")
        return DirectoryUser(
            user_id=data["id"],
            email=email,
            private_metadata=data.get("private_metadata") or {},
        )

    def get_user(self, user_id: str) -> DirectoryUser | None:
        response = self._request("GET", f"/users/{user_id}")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise UpstreamError(
                f"Identity provider returned {response.status_code}",
                service="clerk",
                status=response.status_code,
            )
        return self._to_user(response.json())

    def set_metadata(self, user_id: str, key: str, value: Any) -> None:
        # Clerk deep-merges metadata on this endpoint
        response = self._request(
            "PATCH",
            f"/users/{user_id}/metadata",
            json={"private_metadata": {key: value}},
        )
        if response.status_code != 200:
            raise UpstreamError(
                f"Identity provider returned {response.status_code}",
                service="clerk",
                status=response.status_code,
            )

    def find_user_by_metadata(self, key: str, value: Any) -> DirectoryUser | None:
        offset = 0
        while True:
            response = self._request(
                "GET", "/users", params={"limit": LIST_PAGE_SIZE, "offset": offset}
            )
            if response.status_code != 200:
                raise UpstreamError(
                    f"Identity provider returned {response.status_code}",
                    service="clerk",
                    status=response.status_code,
                )
            page = response.json()
            if isinstance(page, dict):
                page = page.get("data", [])
            for data in page:
                if (data.get("private_metadata") or {}).get(key) == value:
                    return self._to_user(data)
            if len(page) < LIST_PAGE_SIZE:
                return None
            offset += LIST_PAGE_SIZE


class InMemoryDirectory(IdentityDirectoryBase):
    """Process-local directory for local development and tests."""

    def __init__(self):
        self._users: dict[str, DirectoryUser] = {}

    def get_user(self, user_id: str) -> DirectoryUser | None:
        return self._users.get(user_id)

    def set_metadata(self, user_id: str, key: str, value: Any) -> None:
        user = self._users.setdefault(user_id, DirectoryUser(user_id=user_id))
        user.private_metadata[key] = value

    def find_user_by_metadata(self, key: str, value: Any) -> DirectoryUser | None:
        for user in self._users.values():
            if user.private_metadata.get(key) == value:
                return user
        return None

    # Test helper methods

    def add_user(self, user_id: str, email: str | None = None, **metadata: Any) -> DirectoryUser:
        """Register a user directly (test helper)."""
        user = DirectoryUser(user_id=user_id, email=email, private_metadata=dict(metadata))
        self._users[user_id] = user
        return user

    def clear(self) -> None:
        """Forget all users (test helper)."""
        self._users.clear()


@lru_cache(maxsize=1)
def get_identity_directory() -> IdentityDirectoryBase:
    """Get the configured identity directory.

    Returns:
        ClerkDirectory if CLERK_SECRET_KEY is set, InMemoryDirectory otherwise.

    Raises:
        ConfigurationError: In staging/prod without CLERK_SECRET_KEY.
    """
    settings = get_settings()
    if settings.clerk_secret_key:
        return ClerkDirectory(
            api_url=settings.clerk_api_url,
            secret_key=settings.clerk_secret_key,
            timeout=settings.http_timeout_s,
        )

    if settings.unearthed_env.value in ("staging", "prod"):
        raise ConfigurationError("CLERK_SECRET_KEY is required outside local and test")

    return InMemoryDirectory()
