"""Background job models and queue access."""

from mealworker.jobs.models import (
    MEAL_PLAN_GENERATION,
    BackgroundJob,
    FoodPreferences,
    JobStatus,
    MealPlanJobPayload,
)
from mealworker.jobs.source import InMemoryJobSource, JobSource, PostgresJobSource, get_job_source

__all__ = [
    "MEAL_PLAN_GENERATION",
    "BackgroundJob",
    "FoodPreferences",
    "InMemoryJobSource",
    "JobSource",
    "JobStatus",
    "MealPlanJobPayload",
    "PostgresJobSource",
    "get_job_source",
]
