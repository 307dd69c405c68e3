"""Background job schema, status and the meal plan job payload."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

MEAL_PLAN_GENERATION = "meal_plan_generation"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class BackgroundJob(BaseModel):
    """A job row as returned by the queue's claim function."""

    job_id: str
    user_id: str | None = None
    job_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    related_record_id: str | None = None
    related_record_type: str | None = None
    attempts: int = 0


# ---------------------------------------------------------------------------
# meal_plan_generation payload (camelCase on the wire)
# ---------------------------------------------------------------------------

class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CheatDay(_WireModel):
    date: dt.date
    calories: int = Field(ge=0)


class FoodPreferences(_WireModel):
    """User food preferences captured when the plan was requested."""

    meals_per_day: int = Field(default=3, ge=1, alias="mealsPerDay")
    goal: str | None = None
    dietary_restrictions: list[str] = Field(default_factory=list, alias="dietaryRestrictions")
    diet_types: list[str] = Field(default_factory=list, alias="dietTypes")
    cuisine_preferences: list[str] = Field(default_factory=list, alias="cuisinePreferences")
    liked_ingredients: list[str] = Field(default_factory=list, alias="likedIngredients")
    disliked_ingredients: list[str] = Field(default_factory=list, alias="dislikedIngredients")
    allergies: list[str] = Field(default_factory=list)
    budget: str | None = None
    cooking_skill: str | None = Field(default=None, alias="cookingSkill")
    spice_level: str | None = Field(default=None, alias="spiceLevel")
    cooking_time: str | None = Field(default=None, alias="cookingTime")
    favorite_dishes: list[str] = Field(default_factory=list, alias="favoriteDishes")
    allow_meal_repeats: bool | None = Field(default=None, alias="allowMealRepeats")
    measurement_system: Literal["metric", "imperial"] | None = Field(
        default=None, alias="measurementSystem"
    )
    cheat_days: list[CheatDay] = Field(default_factory=list, alias="cheatDays")


class AuthContext(_WireModel):
    """Who asked for the plan. Carried through; not enforced by the worker."""

    requested_user_id: str = Field(alias="requestedUserId")
    authenticated_user_id: str | None = Field(default=None, alias="authenticatedUserId")


class MealPlanJobPayload(_WireModel):
    user_id: str = Field(alias="userId")
    plan_id: str = Field(alias="planId")
    user_preferences: FoodPreferences = Field(alias="userPreferences")
    request_timestamp: str | None = Field(default=None, alias="requestTimestamp")
    auth_context: AuthContext | None = Field(default=None, alias="authContext")
