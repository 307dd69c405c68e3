"""Seven-day calorie targets with cheat-day overrides.

Cheat days keep their literal calorie value; the remaining days share what is
left of the weekly budget (``7 × baseline``) equally, so the week still adds
up to the user's goal.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from mealworker.jobs.models import CheatDay

PLAN_DAYS = 7

DEFAULT_CALORIE_GOAL = 2000
DEFAULT_PROTEIN_GOAL = 125
DEFAULT_CARBS_GOAL = 225
DEFAULT_FATS_GOAL = 67


@dataclass(frozen=True)
class NutritionGoals:
    calories: int = DEFAULT_CALORIE_GOAL
    protein: int = DEFAULT_PROTEIN_GOAL
    carbs: int = DEFAULT_CARBS_GOAL
    fats: int = DEFAULT_FATS_GOAL

    @classmethod
    def from_profile(cls, profile: dict) -> NutritionGoals:
        return cls(
            calories=_positive_int(profile.get("calorieGoal"), DEFAULT_CALORIE_GOAL),
            protein=_positive_int(profile.get("proteinGoal"), DEFAULT_PROTEIN_GOAL),
            carbs=_positive_int(profile.get("carbsGoal"), DEFAULT_CARBS_GOAL),
            fats=_positive_int(profile.get("fatsGoal"), DEFAULT_FATS_GOAL),
        )


@dataclass(frozen=True)
class DayTarget:
    date: date
    calories: int
    is_cheat_day: bool


def _positive_int(value: object, default: int) -> int:
    try:
        n = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return n if n > 0 else default


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def week_dates(start: date | None = None) -> list[date]:
    """The plan's calendar dates: *start* (default today) and the six days after it."""
    start = start or date.today()
    return [start + timedelta(days=i) for i in range(PLAN_DAYS)]


def compute_daily_calorie_targets(
    baseline: int,
    cheat_days: Iterable[CheatDay] = (),
    start: date | None = None,
) -> list[DayTarget]:
    """Effective calorie target for each plan date, in date order.

    Only cheat days that fall inside the plan window count; a repeated date
    keeps its last value.
    """
    dates = week_dates(start)
    window = set(dates)
    cheat_map = {cd.date: cd.calories for cd in cheat_days if cd.date in window}

    normal_days = len(dates) - len(cheat_map)
    if cheat_map and normal_days > 0:
        remaining = len(dates) * baseline - sum(cheat_map.values())
        normal_calories = _round_half_up(remaining / normal_days)
    else:
        normal_calories = baseline

    return [
        DayTarget(
            date=d,
            calories=cheat_map.get(d, normal_calories),
            is_cheat_day=d in cheat_map,
        )
        for d in dates
    ]


def calorie_map(targets: Iterable[DayTarget]) -> dict[str, int]:
    """``{"YYYY-MM-DD": kcal}`` view used in prompts and logs."""
    return {t.date.isoformat(): t.calories for t in targets}
