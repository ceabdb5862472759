"""
SA display-name profiles.
"""

from typing import Optional

from classdesk.kernel.errors import ValidationError
from classdesk.kernel.events.event_store import EventStore
from classdesk.kernel.identity.principal import Principal
from classdesk.kernel.models.event_log import EventType
from classdesk.kernel.store.capabilities import Row, Store

FALLBACK_NAME = "SA"
MAX_DISPLAY_NAME = 100


class ProfileService:
    def __init__(self, store: Store):
        self.store = store
        self.events = EventStore(store)

    async def get_profile(self, user_id: str) -> Optional[Row]:
        rows = await self.store.select("sa_profiles", {"user_id": user_id})
        return rows[0] if rows else None

    async def set_display_name(self, user_id: str, display_name: str) -> Row:
        name = (display_name or "").strip()
        if not name:
            raise ValidationError("Display name must not be empty", field="display_name")
        if len(name) > MAX_DISPLAY_NAME:
            raise ValidationError(
                f"Display name is limited to {MAX_DISPLAY_NAME} characters", field="display_name"
            )
        row = await self.store.upsert(
            "sa_profiles", {"user_id": user_id, "display_name": name}, keys=("user_id",)
        )
        await self.events.log(
            event_type=EventType.PROFILE_UPDATED,
            entity_type="sa_profile",
            entity_key=user_id,
            user_id=user_id,
            payload={"display_name": name},
        )
        return row

    async def effective_name(self, principal: Principal) -> str:
        """Profile name, else the principal's own name or email, else "SA"."""
        profile = await self.get_profile(principal.user_id)
        if profile and profile.get("display_name"):
            return profile["display_name"]
        return principal.name or principal.full_name or principal.email or FALLBACK_NAME
