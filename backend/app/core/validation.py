"""Input validation shared by every core operation.

Each operation starts with ``validate_input(Schema, {...})`` and works only
with the typed result from then on; nothing here touches the database.
"""

import logging
import re
import uuid
from collections.abc import Iterable, Mapping
from typing import Annotated, TypeVar

from pydantic import AfterValidator, BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.config import settings
from app.core.errors import InvalidIdError, ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_INVALID_ID_MESSAGE = "is not a valid resource ID"
_USERNAME_STRIP = re.compile(r"[^A-Za-z0-9_-]")
_SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def normalize_id(value: str) -> str:
    """Canonical lower-case hyphenated form of a UUID string; ValueError otherwise."""
    if not isinstance(value, str):
        raise ValueError(f"{value!r} {_INVALID_ID_MESSAGE}")
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        raise ValueError(f"{value!r} {_INVALID_ID_MESSAGE}") from None


ResourceId = Annotated[str, AfterValidator(normalize_id)]


def validate_id(value: str | None, field: str = "id") -> str:
    """Validate a single resource ID, raising ``InvalidIdError``."""
    try:
        return normalize_id(value)  # type: ignore[arg-type]
    except ValueError as e:
        raise InvalidIdError(f"Invalid {field}: {e}", field=field) from e


def unique_ids(values: Iterable[str]) -> list[str]:
    """Drop repeated IDs, keeping first-seen order."""
    return list(dict.fromkeys(values))


def validate_input(schema: type[M], data: Mapping[str, object]) -> M:
    """Parse ``data`` into ``schema`` or raise the matching domain error."""
    try:
        return schema.model_validate(dict(data))
    except PydanticValidationError as e:
        errors = e.errors()
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        message = first.get("msg", "Invalid input")
        if any(_INVALID_ID_MESSAGE in err.get("msg", "") for err in errors):
            raise InvalidIdError(f"Invalid ID: {message}", field=field) from e
        logger.debug("Validation failed for %s: %s", schema.__name__, errors)
        raise ValidationError(message, field=field) from e


def sanitize_username(raw: str | None) -> str:
    """Keep letters, digits, ``_`` and ``-``; raise if what is left is too short or long."""
    cleaned = _USERNAME_STRIP.sub("", (raw or "").strip())
    if len(cleaned) < settings.username_min_length:
        raise ValidationError(
            f"Username must be at least {settings.username_min_length} characters "
            "(letters, numbers, underscores or hyphens)",
            field="username",
        )
    if len(cleaned) > settings.username_max_length:
        raise ValidationError(
            f"Username must be at most {settings.username_max_length} characters",
            field="username",
        )
    return cleaned


def default_link_slug(username: str) -> str:
    return f"{username.lower()}-first-link"


def normalize_slug(raw: str) -> str:
    """Lower-case and validate a link slug."""
    slug = (raw or "").strip().lower()
    if not 3 <= len(slug) <= 100:
        raise ValidationError("Slug must be between 3 and 100 characters", field="slug")
    if not _SLUG_PATTERN.match(slug):
        raise ValidationError(
            "Slug may only contain lowercase letters, numbers, hyphens and underscores",
            field="slug",
        )
    return slug
