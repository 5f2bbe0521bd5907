"""Admin override endpoints."""
from fastapi import APIRouter, Request
from pydantic import BaseModel

from marketplace.config import AdminOverrides

router = APIRouter()


class OnboardingResponse(BaseModel):
    skip_onboarding: bool
    force_onboarding: bool
    show_onboarding: bool


def get_admin_overrides(request: Request) -> AdminOverrides:
    return getattr(request.app.state, "admin_overrides", AdminOverrides())


@router.get("/onboarding", response_model=OnboardingResponse)
def onboarding(request: Request, completed: bool = False):
    """Whether a client should show onboarding, given its own completion state."""
    overrides = get_admin_overrides(request)
    return OnboardingResponse(
        skip_onboarding=overrides.skip_onboarding,
        force_onboarding=overrides.force_onboarding,
        show_onboarding=overrides.should_show_onboarding(completed),
    )
