"""Pytest configuration and shared fakes."""

from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest

from mealworker.jobs.models import MEAL_PLAN_GENERATION, BackgroundJob
from mealworker.store.base import NO_RECENT_ACTIVITY

PLAN_START = date(2025, 3, 3)
FIXED_NOW = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)


class FakeProfileStore:
    def __init__(self, profile: dict | None = None, activity: str | None = None, fail: bool = False):
        self.profile = profile if profile is not None else {"calorieGoal": 2000, "language": "en"}
        self.activity = activity or NO_RECENT_ACTIVITY.format(days=7)
        self.fail = fail

    def get_profile(self, user_id: str) -> dict[str, Any]:
        if self.fail:
            raise ConnectionError("profile store unavailable")
        return self.profile

    def get_recent_activity(self, user_id: str, days: int = 7) -> str:
        if self.fail:
            raise ConnectionError("profile store unavailable")
        return self.activity


class FakeArtifactStore:
    def __init__(self, error: Exception | None = None):
        self.writes: list[tuple[str, str, dict]] = []
        self.error = error

    def update_artifact(self, artifact_id: str, owner_id: str, payload: dict[str, Any]) -> None:
        if self.error is not None:
            raise self.error
        self.writes.append((artifact_id, owner_id, payload))


class FakeNotifier:
    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, str, dict, datetime]] = []
        self.fail = fail

    def schedule(self, user_id: str, kind: str, payload: dict[str, Any], when: datetime) -> None:
        if self.fail:
            raise ConnectionError("notification service down")
        self.sent.append((user_id, kind, payload, when))


class ScriptedLLM:
    """Returns queued responses in order; an Exception in the queue is raised instead."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def complete(self, system_prompt: str, user_prompt: str, **kwargs: Any) -> str:
        raise NotImplementedError

    def complete_structured(self, system_prompt: str, user_prompt: str, **kwargs: Any) -> Any:
        self.calls.append({"system": system_prompt, "user": user_prompt, **kwargs})
        if not self.responses:
            raise AssertionError("ScriptedLLM ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeImageSearch:
    """Serves ``results[query]`` or a per-query unique URL; records every query."""

    def __init__(self, results: dict[str, list[str]] | None = None, error: Exception | None = None):
        self.results = results
        self.error = error
        self.queries: list[str] = []

    def search(self, query: str) -> list[str]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        if self.results is not None:
            return list(self.results.get(query, []))
        return [f"https://img.test/{len(self.queries)}.jpg"]


def make_meal(meal_type: str, name: str, keywords: list[str] | None = None) -> dict[str, Any]:
    return {
        "type": meal_type,
        "name": name,
        "englishName": name,
        "description": f"A tasty {name.lower()}",
        "image_search_keywords": keywords if keywords is not None else [name.split()[0].lower()],
        "nutritionalInfo": {"calories": 600, "protein": 40, "carbs": 60, "fats": 20},
        "ingredients": ["100g something"],
        "instructions": ["Step 1: cook"],
        "preparationTime": "Approx. 20 minutes",
        "portionSize": "1 serving",
    }


def make_plan_document(
    start: date = PLAN_START,
    days: int = 7,
    dates: list[str] | None = None,
) -> dict[str, Any]:
    """A well-formed plan document as the LLM would return it."""
    dates = dates or [(start + timedelta(days=i)).isoformat() for i in range(days)]
    return {
        "overview": {"goal": "lose weight", "average_calorie_target": 2000, "summary": "Balanced"},
        "days": [
            {
                "day": f"Day {i + 1}",
                "date": d,
                "daily_calorie_target": 1,
                "isCheatDay": False,
                "meals": [
                    make_meal("Breakfast", f"Oat Porridge {i}"),
                    make_meal("Lunch", f"Chicken Salad {i}"),
                    make_meal("Dinner", f"Salmon Bowl {i}"),
                ],
                "daily_totals": {"calories": 1800, "protein": 120, "carbs": 180, "fats": 60},
            }
            for i, d in enumerate(dates)
        ],
        "shopping_list": [{"category": "Produce", "items": [{"name": "Spinach", "quantity_needed_for_week": "200g"}]}],
        "recommendations": {"meal_timing_suggestions": ["Breakfast: 7-9 AM"]},
        "guidelines": [{"title": "Stay Hydrated", "description": "Drink water.", "action_items": ["Carry bottle"]}],
    }


def make_cards_document() -> dict[str, Any]:
    return {
        "cards": [
            {"title": "More Protein", "description": "Add chicken to lunch.", "icon": "food-steak"},
            {"title": "Hydrate", "description": "Drink 2L of water.", "icon": "water"},
            {"title": "Sleep", "description": "Aim for 8 hours.", "icon": "sleep"},
        ]
    }


def make_payload(**preferences: Any) -> dict[str, Any]:
    prefs = {"mealsPerDay": 3, "goal": "lose weight", "allergies": ["peanuts"]}
    prefs.update(preferences)
    return {
        "userId": "user-1",
        "planId": "plan-1",
        "userPreferences": prefs,
        "requestTimestamp": "2025-03-03T08:00:00Z",
        "authContext": {"requestedUserId": "user-1", "authenticatedUserId": "user-1"},
    }


def make_job(job_id: str = "job-1", job_type: str = MEAL_PLAN_GENERATION, payload: dict | None = None) -> BackgroundJob:
    return BackgroundJob(
        job_id=job_id,
        user_id="user-1",
        job_type=job_type,
        payload=payload if payload is not None else make_payload(),
        related_record_id="plan-1",
        related_record_type="meal_plan",
    )


@pytest.fixture
def profile_store():
    return FakeProfileStore()


@pytest.fixture
def artifact_store():
    return FakeArtifactStore()


@pytest.fixture
def notifier():
    return FakeNotifier()
