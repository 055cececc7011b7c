"""API dependencies: DB sessions, caller resolution and injected collaborators."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import UnauthenticatedError
from app.core.rate_limit import InMemoryCounterStore, RateLimiter, RateLimitPreset, RedisCounterStore
from app.db.database import get_session
from app.services.identity import ANONYMOUS, Caller, HttpIdentityProvider, IdentityProvider
from app.services.object_store import HttpObjectStore, ObjectStore
from app.services.redis_client import get_redis

# ---------------------------------------------------------------------------
# Database dependency
# ---------------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async for session in get_session():
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db)]

# ---------------------------------------------------------------------------
# Caller resolution
# ---------------------------------------------------------------------------

_bearer_scheme = HTTPBearer(auto_error=False)


def verify_token(token: str) -> dict:
    """Decode and validate a JWT issued by the identity provider. Returns the payload or raises."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        if payload.get("sub") is None:
            raise JWTError("Missing subject")
        return payload
    except JWTError as exc:
        raise UnauthenticatedError("Invalid or expired token") from exc


async def get_current_caller(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)] = None,
) -> Caller:
    """Resolve the caller from the Bearer token; anonymous when no token is sent.

    Operations decide for themselves whether an anonymous caller is allowed.
    """
    if credentials is None:
        return ANONYMOUS
    payload = verify_token(credentials.credentials)
    return Caller(user_id=str(payload["sub"]))


CurrentCaller = Annotated[Caller, Depends(get_current_caller)]

# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

_rate_limiter: RateLimiter | None = None


async def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter over the configured counter store."""
    global _rate_limiter
    if _rate_limiter is None:
        if settings.rate_limit_store == "memory":
            _rate_limiter = RateLimiter(InMemoryCounterStore())
        else:
            _rate_limiter = RateLimiter(RedisCounterStore(await get_redis()))
    return _rate_limiter


def get_object_store() -> ObjectStore:
    return HttpObjectStore()


def get_identity_provider() -> IdentityProvider:
    return HttpIdentityProvider()


Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]
Storage = Annotated[ObjectStore, Depends(get_object_store)]
Identity = Annotated[IdentityProvider, Depends(get_identity_provider)]


def rate_limited(action: str, preset: RateLimitPreset) -> Callable[..., Awaitable[None]]:
    """Route dependency charging the caller's ``action`` budget before the handler runs."""

    async def _enforce(caller: CurrentCaller, limiter: Limiter) -> None:
        if not caller.is_authenticated:
            raise UnauthenticatedError()
        await limiter.enforce(caller.user_id, action, preset)  # type: ignore[arg-type]

    return _enforce
