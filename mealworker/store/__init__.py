"""Profile, meal plan and notification stores."""

from mealworker.store.base import (
    ArtifactStore,
    NotificationDispatcher,
    ProfileStore,
    summarize_food_entries,
)

__all__ = [
    "ArtifactStore",
    "NotificationDispatcher",
    "ProfileStore",
    "summarize_food_entries",
]
