"""Meal plan generation pipeline.

Stages, in order, for one ``meal_plan_generation`` job:

1. context fetch: profile and recent food history (degrades to defaults)
2. calorie targets for the next seven days
3. plan generation through the LLM (aborts the job on an unusable plan)
4. meal images (degrades to default images)
5. improvement cards through the LLM (degrades to no cards)

The plan is then saved to the meal plan row and the user is notified.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from mealworker.calories import (
    PLAN_DAYS,
    DayTarget,
    NutritionGoals,
    calorie_map,
    compute_daily_calorie_targets,
)
from mealworker.errors import (
    InvalidPayloadError,
    InvalidPlanError,
    PersistenceError,
    StructuredOutputError,
)
from mealworker.images import ImageSearchProvider, MealImageResolver
from mealworker.jobs.models import BackgroundJob, FoodPreferences, MealPlanJobPayload
from mealworker.llm.base import LLMProvider
from mealworker.prompts import DIET_CARD_ICONS, build_diet_cards_prompt, build_meal_plan_prompt
from mealworker.schemas import DietCard, MealPlanResult, build_plan_data
from mealworker.store.base import (
    NO_RECENT_ACTIVITY,
    ArtifactStore,
    NotificationDispatcher,
    ProfileStore,
)

logger = logging.getLogger(__name__)

PLAN_TEMPERATURE = 0.3
CARDS_TEMPERATURE = 0.2
MAX_DIET_CARDS = 5
FALLBACK_CARD_ICON = "lightbulb"

NOTIFICATION_KIND = "immediate"
NOTIFICATION_TITLE = "🍽️ Your meal plan is ready!"
NOTIFICATION_BODY = "Your personalized nutrition plan has been generated. Check it out now!"
NOTIFICATION_TIMEZONE = "GMT+00:00"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Plan reconciliation
# ---------------------------------------------------------------------------

def reconcile_plan(document: Any, targets: list[DayTarget]) -> MealPlanResult:
    """Validate the LLM's plan document and pin each day to its requested date.

    The document must be an object with a ``days`` list of exactly seven day
    objects. Days are matched to the requested dates by their ``date`` when the
    LLM returned exactly the requested set, otherwise by position. Each day's
    ``date``, ``daily_calorie_target`` and ``isCheatDay`` are then overwritten
    from *targets*.
    """
    if not isinstance(document, dict):
        raise InvalidPlanError(
            f"Invalid meal plan from AI: expected a JSON object, got {type(document).__name__}"
        )
    days = document.get("days")
    if days is None:
        raise InvalidPlanError("Invalid meal plan from AI: missing 'days'")
    if not isinstance(days, list):
        raise InvalidPlanError("Invalid meal plan from AI: 'days' is not a list")
    if len(days) != len(targets):
        raise InvalidPlanError(
            f"Invalid meal plan from AI: 'days' has {len(days)} entries, expected {len(targets)}"
        )
    if not all(isinstance(d, dict) for d in days):
        raise InvalidPlanError("Invalid meal plan from AI: every entry in 'days' must be an object")

    requested = [t.date.isoformat() for t in targets]
    returned = [str(d.get("date", "")) for d in days]
    if sorted(returned) == sorted(requested) and len(set(returned)) == len(returned):
        by_date = {str(d.get("date")): d for d in days}
        ordered = [by_date[iso] for iso in requested]
    else:
        if returned != requested:
            logger.warning(
                "AI plan dates %s do not match requested dates %s; aligning by position",
                returned,
                requested,
            )
        ordered = list(days)

    reconciled = []
    for day, target in zip(ordered, targets):
        day = dict(day)
        day.pop("is_cheat_day", None)
        day["date"] = target.date.isoformat()
        day["daily_calorie_target"] = target.calories
        day["isCheatDay"] = target.is_cheat_day
        if not day.get("day"):
            day["day"] = target.date.strftime("%A")
        reconciled.append(day)

    # diet cards come from their own call
    fields = {k: v for k, v in document.items() if k != "diet_cards"}
    try:
        return MealPlanResult.model_validate({**fields, "days": reconciled})
    except ValidationError as e:
        raise InvalidPlanError(f"Invalid meal plan from AI: {e}") from e


# ---------------------------------------------------------------------------
# Diet cards
# ---------------------------------------------------------------------------

def normalize_diet_cards(document: Any) -> list[DietCard]:
    """Accept a list of cards or an object holding one; unknown icons become ``lightbulb``."""
    if isinstance(document, dict):
        items = document.get("cards")
        if not isinstance(items, list):
            items = next((v for v in document.values() if isinstance(v, list)), [])
    elif isinstance(document, list):
        items = document
    else:
        items = []

    cards: list[DietCard] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        title = item.get("title")
        description = item.get("description")
        if not title or not description:
            continue
        icon = item.get("icon")
        if icon not in DIET_CARD_ICONS:
            icon = FALLBACK_CARD_ICON
        cards.append(DietCard(title=str(title), description=str(description), icon=icon))
        if len(cards) == MAX_DIET_CARDS:
            break
    return cards


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class MealPlanPipeline:
    """Handler for ``meal_plan_generation`` jobs.

    Collaborators are injected so the same pipeline runs against Postgres in
    production and against in-memory fakes in tests. *today* and *clock* fix the
    plan start date and completion timestamps.
    """

    def __init__(
        self,
        llm: LLMProvider,
        profile_store: ProfileStore,
        artifact_store: ArtifactStore,
        notifier: NotificationDispatcher,
        image_search: ImageSearchProvider | None = None,
        today: Callable[[], date] = date.today,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._llm = llm
        self._profiles = profile_store
        self._artifacts = artifact_store
        self._notifier = notifier
        self._image_search = image_search
        self._today = today
        self._clock = clock

    def __call__(self, job: BackgroundJob) -> dict[str, Any]:
        return self.run(job)

    def run(self, job: BackgroundJob) -> dict[str, Any]:
        """Generate, save and announce the plan; return the job result."""
        try:
            payload = MealPlanJobPayload.model_validate(job.payload)
        except ValidationError as e:
            raise InvalidPayloadError(f"Invalid meal plan job payload: {e}") from e
        prefs = payload.user_preferences
        logger.info("Job %s: generating meal plan %s for user %s", job.job_id, payload.plan_id, payload.user_id)

        profile, recent_activity = self.fetch_context(job.job_id, payload.user_id)
        goals = NutritionGoals.from_profile(profile)
        targets = compute_daily_calorie_targets(goals.calories, prefs.cheat_days, start=self._today())
        logger.info("Job %s: calorie targets %s", job.job_id, calorie_map(targets))

        result = self.generate_plan(prefs, profile, goals, targets, recent_activity)

        MealImageResolver(self._image_search).enrich(result.days)

        result.diet_cards = self.generate_diet_cards(
            job.job_id, prefs, recent_activity, profile.get("language")
        )

        self.persist(payload, result)
        completed_at = self._clock()
        self.notify(job.job_id, payload, completed_at)
        logger.info("Job %s: meal plan %s saved", job.job_id, payload.plan_id)
        return {"planId": payload.plan_id, "completedAt": completed_at.isoformat()}

    def fetch_context(self, job_id: str, user_id: str) -> tuple[dict[str, Any], str]:
        try:
            profile = self._profiles.get_profile(user_id) or {}
        except Exception as e:
            logger.warning("Job %s: could not load profile for %s: %s", job_id, user_id, e)
            profile = {}
        try:
            recent_activity = self._profiles.get_recent_activity(user_id, days=PLAN_DAYS)
        except Exception as e:
            logger.warning("Job %s: could not load food history for %s: %s", job_id, user_id, e)
            recent_activity = NO_RECENT_ACTIVITY.format(days=PLAN_DAYS)
        return profile, recent_activity

    def generate_plan(
        self,
        prefs: FoodPreferences,
        profile: dict[str, Any],
        goals: NutritionGoals,
        targets: list[DayTarget],
        recent_activity: str,
    ) -> MealPlanResult:
        measurement_system = prefs.measurement_system or profile.get("measurementSystem") or "metric"
        system_prompt, user_prompt = build_meal_plan_prompt(
            prefs, profile, goals, targets, measurement_system, recent_activity
        )
        try:
            document = self._llm.complete_structured(
                system_prompt, user_prompt, temperature=PLAN_TEMPERATURE
            )
        except StructuredOutputError as e:
            raise InvalidPlanError(f"Invalid meal plan from AI: {e}") from e
        return reconcile_plan(document, targets)

    def generate_diet_cards(
        self,
        job_id: str,
        prefs: FoodPreferences,
        recent_activity: str,
        language: str | None,
    ) -> list[DietCard]:
        system_prompt, user_prompt = build_diet_cards_prompt(prefs, recent_activity, language)
        try:
            document = self._llm.complete_structured(
                system_prompt, user_prompt, temperature=CARDS_TEMPERATURE
            )
        except Exception as e:
            logger.warning("Job %s: diet card generation failed: %s", job_id, e)
            return []
        cards = normalize_diet_cards(document)
        if not cards:
            logger.warning("Job %s: AI returned no usable diet cards", job_id)
        return cards

    def persist(self, payload: MealPlanJobPayload, result: MealPlanResult) -> None:
        plan_data = build_plan_data(result)
        try:
            self._artifacts.update_artifact(payload.plan_id, payload.user_id, plan_data)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save meal plan: {e}") from e

    def notify(self, job_id: str, payload: MealPlanJobPayload, when: datetime) -> None:
        notification = {
            "title": NOTIFICATION_TITLE,
            "body": NOTIFICATION_BODY,
            "timezone": NOTIFICATION_TIMEZONE,
            "data": {
                "type": "meal_plan_ready",
                "planId": payload.plan_id,
                "timestamp": when.isoformat(),
            },
        }
        try:
            self._notifier.schedule(payload.user_id, NOTIFICATION_KIND, notification, when)
        except Exception as e:
            logger.warning("Job %s: could not schedule notification: %s", job_id, e)
