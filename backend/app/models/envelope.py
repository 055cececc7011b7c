"""Result envelope shared by every endpoint.

Successes render as ``{"success": true, "data": ..., **meta}``; failures as
``{"success": false, "error": ..., "code": ..., **flags}``.
"""

from pydantic import BaseModel


class ApiError(BaseModel):
    """Structured error detail."""

    code: str
    message: str
    field: str | None = None


def success_response(data: object, **meta: object) -> dict:
    """Build a success envelope dict."""
    return {"success": True, "data": data, **meta}


def error_response(error: ApiError, **flags: object) -> dict:
    """Build an error envelope dict."""
    body: dict = {"success": False, "error": error.message, "code": error.code}
    if error.field:
        body["field"] = error.field
    body.update(flags)
    return body
