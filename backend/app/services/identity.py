"""Identity provider integration.

The core never reads an ambient auth context: the API layer resolves a
``Caller`` from the bearer token and passes it into every operation. Profile
lookups and the post-onboarding username sync go through the provider's
management API.
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """The authenticated principal of a request. ``user_id`` is None when anonymous."""

    user_id: str | None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)


ANONYMOUS = Caller(user_id=None)


@dataclass
class CallerProfile:
    email: str | None
    fallback_emails: list[str] = field(default_factory=list)
    display_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    def resolve_email(self) -> str | None:
        """Primary email, else the first non-empty fallback."""
        if self.email and self.email.strip():
            return self.email.strip()
        for candidate in self.fallback_emails:
            if candidate and candidate.strip():
                return candidate.strip()
        return None


class IdentityProviderError(Exception):
    """Raised when the identity provider cannot be reached or rejects a call."""

    pass


class IdentityProvider(Protocol):
    async def resolve_profile(self, user_id: str) -> CallerProfile: ...

    async def update_username(self, user_id: str, username: str) -> None: ...


class HttpIdentityProvider:
    """Identity provider management API client."""

    def __init__(self, base_url: str | None = None, api_key: str | None = None, timeout: float = 10.0):
        self.base_url = (base_url or settings.identity_provider_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.identity_provider_api_key
        self.timeout = httpx.Timeout(timeout, connect=5.0)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
        reraise=True,
    )
    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.request(
                method, f"{self.base_url}{path}", headers=self._headers(), json=json
            )
            response.raise_for_status()
            return response.json() if response.content else {}

    async def resolve_profile(self, user_id: str) -> CallerProfile:
        try:
            data = await self._request("GET", f"/users/{user_id}")
        except httpx.HTTPError as e:
            logger.error("Identity provider profile lookup failed for %s: %s", user_id, e)
            raise IdentityProviderError(f"Could not load profile for {user_id}") from e

        primary_id = data.get("primary_email_address_id")
        addresses = data.get("email_addresses") or []
        primary = next((a.get("email_address") for a in addresses if a.get("id") == primary_id), None)
        fallbacks = [a.get("email_address") for a in addresses if a.get("email_address") and a.get("id") != primary_id]
        first_name = data.get("first_name")
        last_name = data.get("last_name")
        display_name = " ".join(p for p in (first_name, last_name) if p) or data.get("username")
        return CallerProfile(
            email=primary,
            fallback_emails=fallbacks,
            display_name=display_name,
            first_name=first_name,
            last_name=last_name,
        )

    async def update_username(self, user_id: str, username: str) -> None:
        try:
            await self._request("PATCH", f"/users/{user_id}", json={"username": username})
        except httpx.HTTPError as e:
            raise IdentityProviderError(f"Username update rejected: {e}") from e
        logger.info("Synced username for %s to identity provider", user_id)
