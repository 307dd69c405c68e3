"""Prompt construction for meal plan and diet card generation (Jinja2 templates)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from mealworker.calories import DayTarget, NutritionGoals
from mealworker.jobs.models import FoodPreferences

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

LANGUAGE_INSTRUCTIONS = {
    "en": "Generate all content in English.",
    "es": "Genera todo el contenido en español.",
    "fr": "Générez tout le contenu en français.",
    "de": "Generieren Sie alle Inhalte auf Deutsch.",
    "it": "Genera tutti i contenuti in italiano.",
    "pt": "Gere todo o conteúdo em português.",
    "ru": "Генерируйте весь контент на русском языке.",
    "zh": "用中文生成所有内容。",
    "ja": "全てのコンテンツを日本語で生成してください。",
    "ko": "모든 콘텐츠를 한국어로 생성하세요.",
    "ro": "Generați tot conținutul în română.",
}

DIET_CARD_ICONS = (
    "food-apple", "food-steak", "tea", "water", "dumbbell", "leaf", "silverware",
    "clock-outline", "fire", "fish", "heart-pulse", "rice", "bread-slice", "meditation",
    "run-fast", "sleep", "clock-time-eight", "scale-bathroom", "pot-steam", "oil",
    "baguette", "carrot", "cupcake", "weight-lifter", "apple", "lightbulb",
    "food-variant", "nutrition", "chart-line", "water-outline", "food-drumstick", "egg",
    "food-croissant", "glass-wine", "food-off", "timer-outline", "calendar-check", "target",
)

MEAL_PLAN_SYSTEM_PROMPT = (
    "You are an expert nutritionist and chef. Respond ONLY with the specified JSON structure. "
    "Be meticulous with details, especially ingredients, instructions, and the shopping list."
)


def language_instruction(language: str | None) -> str:
    return LANGUAGE_INSTRUCTIONS.get((language or "en").lower(), LANGUAGE_INSTRUCTIONS["en"])


def meal_structure_instruction(meals_per_day: int) -> str:
    if meals_per_day == 1:
        return "provide 1 main meal per day (typically a large, nutritionally complete meal)"
    if meals_per_day == 2:
        return (
            "provide exactly 2 meals per day. For 2-meal days, use either: "
            "(1) Breakfast and Dinner (intermittent fasting style), or "
            "(2) Lunch and Dinner (skip breakfast). "
            "Make each meal substantial to meet daily calorie targets"
        )
    if meals_per_day == 4:
        return "provide exactly 4 meals per day (breakfast, lunch, dinner, and 1 snack)"
    if meals_per_day == 5:
        return "provide exactly 5 meals per day (breakfast, lunch, dinner, and 2 snacks)"
    if meals_per_day >= 6:
        return (
            f"provide exactly {meals_per_day} meals per day "
            f"(breakfast, lunch, dinner, and {meals_per_day - 3} snacks)"
        )
    return "provide exactly 3 meals per day (breakfast, lunch, and dinner)"


def _render(template_name: str, **kwargs: Any) -> str:
    env = Environment(loader=FileSystemLoader(str(TEMPLATES_DIR)))
    return env.get_template(template_name).render(**kwargs)


def build_meal_plan_prompt(
    preferences: FoodPreferences,
    profile: dict[str, Any],
    goals: NutritionGoals,
    targets: list[DayTarget],
    measurement_system: str,
    recent_activity: str,
) -> tuple[str, str]:
    """Return (system_prompt, user_prompt) for the seven-day plan."""
    user_prompt = _render(
        "meal_plan.j2",
        language_instruction=language_instruction(profile.get("language")),
        measurement_system=measurement_system,
        prefs=preferences,
        profile_goal=profile.get("goal"),
        goals=goals,
        targets=targets,
        cheat_dates=[t.date.isoformat() for t in targets if t.is_cheat_day],
        plan_dates=[t.date.isoformat() for t in targets],
        meal_structure=meal_structure_instruction(preferences.meals_per_day),
        recent_activity=recent_activity,
    )
    return MEAL_PLAN_SYSTEM_PROMPT, user_prompt


def build_diet_cards_prompt(
    preferences: FoodPreferences,
    recent_activity: str,
    language: str | None,
) -> tuple[str, str]:
    """Return (system_prompt, user_prompt) for the improvement-tip cards."""
    instruction = language_instruction(language)
    system_prompt = (
        f"Expert nutritionist. {instruction} "
        'Respond ONLY with a JSON object of the form {"cards": [...]}. Icons strictly from list.'
    )
    user_prompt = _render(
        "diet_cards.j2",
        language_instruction=instruction,
        recent_activity=recent_activity,
        goal=preferences.goal or "maintaining health",
        icons=DIET_CARD_ICONS,
    )
    return system_prompt, user_prompt
