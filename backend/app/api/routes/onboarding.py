"""Onboarding endpoints."""

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import CurrentCaller, DbSession, Identity, rate_limited
from app.core import onboarding
from app.core.rate_limit import RateLimitPresets
from app.models.envelope import success_response
from app.models.link import LinkResponse
from app.models.onboarding import OnboardingBody, OnboardingStatus

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/status")
async def onboarding_status(caller: CurrentCaller, db: DbSession) -> dict:
    status = await onboarding.get_onboarding_status(db, caller)
    return success_response(OnboardingStatus(**status).model_dump())


@router.post("", dependencies=[Depends(rate_limited("onboarding", RateLimitPresets.STRICT))])
async def complete_onboarding(body: OnboardingBody, caller: CurrentCaller, db: DbSession, identity: Identity) -> dict:
    """Create the caller's user, workspace, default link and owner permission.

    An already onboarded caller gets ``is_already_onboarded: true`` and a
    success status so the client can route to its normal flow.
    """
    result = await onboarding.complete_onboarding(
        db, caller, body.username, identity, workspace_name=body.workspace_name
    )
    meta: dict[str, object] = {"is_already_onboarded": result.is_already_onboarded}
    if result.warning:
        meta["warning"] = result.warning
    return success_response(
        {
            "outcome": result.outcome.value,
            "user_id": result.user.id if result.user else None,
            "username": result.user.username if result.user else None,
            "workspace_id": result.workspace.id if result.workspace else None,
            "link": LinkResponse.model_validate(result.link).model_dump() if result.link else None,
        },
        **meta,
    )
