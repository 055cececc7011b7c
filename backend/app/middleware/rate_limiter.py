"""Coarse per-caller HTTP throttling using slowapi.

This sits in front of the per-action budgets in ``app.core.rate_limit`` and
only protects the process from request floods.
"""

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.config import settings
from app.core.errors import UnauthenticatedError


def _get_caller_or_ip(request: Request) -> str:
    """Use the token subject as the rate-limit key, fall back to the client IP."""
    auth = request.headers.get("authorization", "")
    if auth.startswith("Bearer "):
        from app.api.dependencies import verify_token

        try:
            return f"user:{verify_token(auth.split(' ', 1)[1])['sub']}"
        except UnauthenticatedError:
            pass
    return f"ip:{get_remote_address(request)}"


DEFAULT_LIMIT = f"{settings.http_rate_limit}/minute"

limiter = Limiter(key_func=_get_caller_or_ip, default_limits=[DEFAULT_LIMIT])


def rate_limit_exceeded_handler(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return a JSON envelope when the HTTP rate limit is exceeded."""
    return JSONResponse(
        status_code=429,
        content={"success": False, "error": f"Rate limit exceeded: {exc.detail}", "code": "RATE_LIMITED"},
    )
