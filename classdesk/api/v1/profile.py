"""
SA profile endpoints.
"""

from fastapi import APIRouter

from classdesk.api.deps import AssistantPrincipal, StoreDep
from classdesk.engines.profiles import ProfileService
from classdesk.schemas.course import ProfileResponse, ProfileUpdate

router = APIRouter()


@router.get("", response_model=ProfileResponse)
async def get_profile(principal: AssistantPrincipal, store: StoreDep):
    """The caller's display name, falling back to the identity's own name."""
    service = ProfileService(store)
    profile = await service.get_profile(principal.user_id)
    if profile:
        return ProfileResponse(stored=True, **profile)
    return ProfileResponse(
        user_id=principal.user_id,
        display_name=await service.effective_name(principal),
    )


@router.put("", response_model=ProfileResponse)
async def update_profile(data: ProfileUpdate, principal: AssistantPrincipal, store: StoreDep):
    """Set the name stamped on future claims and replies."""
    profile = await ProfileService(store).set_display_name(principal.user_id, data.display_name)
    return ProfileResponse(stored=True, **profile)
