"""Protocols for the data collaborators the pipeline reads from and writes to."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ProfileStore(Protocol):
    """Read access to user profiles and recent food history."""

    def get_profile(self, user_id: str) -> dict[str, Any]:
        """Return the user's profile data, or ``{}`` when the user has none."""
        ...

    def get_recent_activity(self, user_id: str, days: int = 7) -> str:
        """Return a plain-text summary of the user's logged meals for the last *days*."""
        ...


@runtime_checkable
class ArtifactStore(Protocol):
    def update_artifact(self, artifact_id: str, owner_id: str, payload: dict[str, Any]) -> None:
        """Store *payload* on the artifact owned by *owner_id*. Raises on failure."""
        ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    def schedule(
        self,
        user_id: str,
        kind: str,
        payload: dict[str, Any],
        when: datetime,
    ) -> None:
        """Schedule a user notification. Raises on failure; callers treat it as best-effort."""
        ...


NO_RECENT_ACTIVITY = "No food entries for the last {days} days."


def summarize_food_entries(entries: list[dict[str, Any]], days: int = 7) -> str:
    """One line per logged meal with per-item macros; newest first as given."""
    if not entries:
        return NO_RECENT_ACTIVITY.format(days=days)
    lines = []
    for entry in entries:
        items = entry.get("food_items") or []
        foods = "; ".join(
            f"{item.get('name')}({item.get('calories')}kcal P:{item.get('protein')}g "
            f"C:{item.get('carbs')}g F:{item.get('fats')}g)"
            for item in items
        ) or "N/A"
        lines.append(
            f"Date: {entry.get('date')}, Meal: {entry.get('meal_type')}, "
            f"Cals: {entry.get('total_calories')}, Foods: {foods}"
        )
    return "\n".join(lines)
