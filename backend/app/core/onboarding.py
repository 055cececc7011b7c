"""Tenant onboarding.

A fresh caller gets a user row, a workspace, a default link and the owner
permission on that link in one transaction. A caller who already has a user
row gets ``OnboardingOutcome.ALREADY_ONBOARDED`` back and nothing is written.
That includes the loser of two concurrent onboardings of the same caller,
whose inserts fail on the user or workspace uniqueness constraints.

After the commit the chosen username is pushed to the identity provider.
That call is best effort: if it fails the onboarding still succeeds and the
result carries a warning.
"""

import enum
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import (
    ConflictError,
    DuplicateEmailError,
    DuplicateNameError,
    SlugConflictError,
    ValidationError,
)
from app.core.ownership import require_caller
from app.core.validation import default_link_slug, sanitize_username
from app.db.database import run_in_transaction
from app.db.exceptions import DuplicateRecordError
from app.db.models import Link, Permission, User, Workspace
from app.db.repositories import link_repo, permission_repo, user_repo, workspace_repo
from app.models.permission import ROLE_OWNER
from app.services.identity import Caller, IdentityProvider

logger = logging.getLogger(__name__)


class OnboardingOutcome(str, enum.Enum):
    CREATED = "created"
    ALREADY_ONBOARDED = "already_onboarded"


@dataclass
class OnboardingResult:
    outcome: OnboardingOutcome
    user: User | None = None
    workspace: Workspace | None = None
    link: Link | None = None
    permission: Permission | None = None
    warning: str | None = None

    @property
    def is_already_onboarded(self) -> bool:
        return self.outcome is OnboardingOutcome.ALREADY_ONBOARDED


_CONSTRAINT_ERRORS = {
    "uq_users_username": lambda d: DuplicateNameError("This username is already taken", field="username"),
    "uq_users_email": lambda d: DuplicateEmailError("An account with this email already exists", field="email"),
    "uq_links_slug": lambda d: SlugConflictError(f'The link "{d}" is already taken', field="username"),
}


async def _existing_tenant(db: AsyncSession, user_id: str) -> OnboardingResult | None:
    user = await user_repo.get_user_by_id(db, user_id)
    if user is None:
        return None
    logger.info("User %s is already onboarded", user_id)
    return OnboardingResult(
        outcome=OnboardingOutcome.ALREADY_ONBOARDED,
        user=user,
        workspace=await workspace_repo.get_workspace_by_user(db, user_id),
    )


async def complete_onboarding(
    db: AsyncSession,
    caller: Caller,
    username: str,
    identity_provider: IdentityProvider,
    workspace_name: str | None = None,
) -> OnboardingResult:
    """Bootstrap a tenant for ``caller`` or report that it already exists."""
    user_id = require_caller(caller)

    existing = await _existing_tenant(db, user_id)
    if existing is not None:
        return existing

    clean_username = sanitize_username(username)
    profile = await identity_provider.resolve_profile(user_id)
    email = profile.resolve_email()
    if not email:
        raise ValidationError("A valid email address is required to complete onboarding", field="email")
    email = email.lower()
    slug = default_link_slug(clean_username)
    name = (workspace_name or "").strip() or settings.default_workspace_name

    async def _bootstrap(session: AsyncSession) -> OnboardingResult:
        existing = await _existing_tenant(session, user_id)
        if existing is not None:
            return existing
        if await user_repo.get_user_by_username(session, clean_username) is not None:
            raise DuplicateNameError("This username is already taken", field="username")
        if await user_repo.get_user_by_email(session, email) is not None:
            raise DuplicateEmailError("An account with this email already exists", field="email")
        if await link_repo.get_link_by_slug(session, slug) is not None:
            raise SlugConflictError(f'The link "{slug}" is already taken', field="username")

        user = await user_repo.insert_user(
            session,
            User(
                id=user_id,
                email=email,
                username=clean_username,
                first_name=profile.first_name,
                last_name=profile.last_name,
                storage_used=0,
            ),
        )
        workspace = await workspace_repo.insert_workspace(session, user.id, name)
        link = await link_repo.insert_link(
            session,
            Link(
                workspace_id=workspace.id,
                slug=slug,
                title=f"{profile.display_name or clean_username}'s files",
                link_type="base",
            ),
        )
        permission = await permission_repo.insert_permission(session, link.id, email, ROLE_OWNER)
        return OnboardingResult(
            outcome=OnboardingOutcome.CREATED,
            user=user,
            workspace=workspace,
            link=link,
            permission=permission,
        )

    try:
        result = await run_in_transaction(
            db,
            "onboarding",
            _bootstrap,
            max_retries=settings.onboarding_max_retries,
            context={"user_id": user_id},
        )
    except DuplicateRecordError as e:
        # A concurrent onboarding of the same caller won the insert
        existing = await _existing_tenant(db, user_id)
        if existing is not None:
            return existing
        error_factory = _CONSTRAINT_ERRORS.get(e.constraint or "")
        if error_factory is not None:
            raise error_factory(slug) from e
        raise ConflictError("Onboarding failed because of a conflicting record; nothing was saved") from e

    if result.is_already_onboarded:
        return result

    logger.info("Onboarded user %s with workspace %s", user_id, result.workspace.id)  # type: ignore[union-attr]

    try:
        await identity_provider.update_username(user_id, clean_username)
    except Exception as e:
        logger.warning("Username sync failed for %s: %s", user_id, e)
        result.warning = f"Onboarding completed but username sync failed: {e}"
    return result


async def get_onboarding_status(db: AsyncSession, caller: Caller) -> dict[str, object]:
    user_id = require_caller(caller)
    workspace = await workspace_repo.get_workspace_by_user(db, user_id)
    user = await user_repo.get_user_by_id(db, user_id)
    return {
        "has_workspace": workspace is not None,
        "workspace_id": workspace.id if workspace else None,
        "username": user.username if user else None,
    }
