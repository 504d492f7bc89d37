"""Supabase repository for user profiles."""

from dataclasses import dataclass

from supabase import Client

from menu_planner.domain.menus import UserProfile
from menu_planner.services.orchestrator import ProfileRepository


@dataclass
class SupabaseProfileRepository(ProfileRepository):
    """Reads generation context from ``user_profiles``."""

    client: Client

    def get_profile(self, user_id: str) -> UserProfile:
        """Return the stored profile or defaults."""
        response = (
            self.client.table("user_profiles")
            .select(
                "id, allergies, dislikes, diet_goal, daily_calorie_target, "
                "family_size, notes"
            )
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return UserProfile(user_id=user_id)
        row = response.data[0]
        target = row.get("daily_calorie_target")
        return UserProfile(
            user_id=user_id,
            allergies=_as_tuple(row.get("allergies")),
            dislikes=_as_tuple(row.get("dislikes")),
            diet_goal=row.get("diet_goal"),
            daily_calorie_target=int(target) if target else None,
            family_size=int(row.get("family_size") or 1),
            notes=row.get("notes"),
        )


def _as_tuple(value: object) -> tuple[str, ...]:
    if isinstance(value, list):
        return tuple(str(item) for item in value if item)
    if isinstance(value, str) and value.strip():
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return ()
