"""Onboarding Pydantic schemas."""

from pydantic import BaseModel


class OnboardingBody(BaseModel):
    username: str
    workspace_name: str | None = None


class OnboardingStatus(BaseModel):
    has_workspace: bool
    workspace_id: str | None = None
    username: str | None = None
