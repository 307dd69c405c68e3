"""Pydantic models for the generated meal plan (the persisted artifact).

Models are lenient: unknown keys from the LLM are kept, every field the
prompt asks for has a default, and mistyped values are coerced (numbers to
text, ``null`` to empty lists, non-object entries dropped) so only the
``days`` list itself can make a plan unusable. Wire keys (``isCheatDay``,
``nutritionalInfo`` ...) are preserved on dump via aliases.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_optional_text(value: Any) -> str | None:
    return None if value is None else _as_text(value)


def _as_text_list(value: Any) -> list[str]:
    return [_as_text(v) for v in _as_list(value) if v is not None]


def _as_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def _as_optional_number(value: Any) -> int | float | None:
    return None if value is None else _as_number(value)


def _objects(value: Any) -> list[Any]:
    """Keep only the entries that can become a model."""
    return [v for v in _as_list(value) if isinstance(v, (dict, BaseModel))]


def _object_or_none(value: Any) -> Any:
    return value if isinstance(value, (dict, BaseModel)) else None


def _object_or_empty(value: Any) -> Any:
    return value if isinstance(value, (dict, BaseModel)) else {}


Text = Annotated[str, BeforeValidator(_as_text)]
OptionalText = Annotated[str | None, BeforeValidator(_as_optional_text)]
TextList = Annotated[list[str], BeforeValidator(_as_text_list)]
AnyList = Annotated[list[Any], BeforeValidator(_as_list)]
Number = Annotated[int | float, BeforeValidator(_as_number)]
OptionalNumber = Annotated[int | float | None, BeforeValidator(_as_optional_number)]


class _PlanModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class NutritionTotals(_PlanModel):
    calories: Number = 0
    protein: Number = 0
    carbs: Number = 0
    fats: Number = 0


class Meal(_PlanModel):
    type: Text = ""
    name: Text = ""
    english_name: OptionalText = Field(default=None, alias="englishName")
    description: Text = ""
    image_search_keywords: TextList = Field(default_factory=list)
    nutritional_info: Annotated[NutritionTotals | None, BeforeValidator(_object_or_none)] = Field(
        default=None, alias="nutritionalInfo"
    )
    ingredients: AnyList = Field(default_factory=list)
    instructions: AnyList = Field(default_factory=list)
    preparation_time: OptionalText = Field(default=None, alias="preparationTime")
    portion_size: OptionalText = Field(default=None, alias="portionSize")
    image: OptionalText = None


class MealPlanDay(_PlanModel):
    day: Text = ""
    date: Text = ""
    daily_calorie_target: OptionalNumber = None
    is_cheat_day: bool = Field(default=False, alias="isCheatDay")
    meals: Annotated[list[Meal], BeforeValidator(_objects)] = Field(default_factory=list)
    daily_totals: Annotated[NutritionTotals | None, BeforeValidator(_object_or_none)] = None


class ShoppingItem(_PlanModel):
    name: Text = ""
    quantity_needed_for_week: Text = ""


class ShoppingListCategory(_PlanModel):
    category: Text = ""
    items: Annotated[list[ShoppingItem], BeforeValidator(_objects)] = Field(default_factory=list)


class FoodCategories(_PlanModel):
    recommended: TextList = Field(default_factory=list)
    limit: TextList = Field(default_factory=list)
    avoid: TextList = Field(default_factory=list)


class Recommendations(_PlanModel):
    meal_timing_suggestions: TextList = Field(default_factory=list)
    food_categories: Annotated[FoodCategories, BeforeValidator(_object_or_empty)] = Field(
        default_factory=FoodCategories
    )


class Guideline(_PlanModel):
    title: Text = ""
    description: Text = ""
    action_items: TextList = Field(default_factory=list)


class Overview(_PlanModel):
    goal: OptionalText = None
    average_calorie_target: OptionalNumber = None
    average_protein_target: OptionalNumber = None
    average_carbs_target: OptionalNumber = None
    average_fats_target: OptionalNumber = None
    summary: OptionalText = None
    measurement_system_used: OptionalText = None


class DietCard(BaseModel):
    title: str
    description: str
    icon: str


class MealPlanResult(_PlanModel):
    overview: Annotated[Overview, BeforeValidator(_object_or_empty)] = Field(default_factory=Overview)
    days: list[MealPlanDay]
    shopping_list: Annotated[list[ShoppingListCategory], BeforeValidator(_objects)] = Field(
        default_factory=list
    )
    recommendations: Annotated[Recommendations, BeforeValidator(_object_or_empty)] = Field(
        default_factory=Recommendations
    )
    guidelines: Annotated[list[Guideline], BeforeValidator(_objects)] = Field(default_factory=list)
    diet_cards: list[DietCard] = Field(default_factory=list)

PLAN_TYPE = "diet_plan_v2"


def build_plan_data(result: MealPlanResult) -> dict[str, Any]:
    """The ``plan_data`` document stored on the meal plan row."""
    raw = result.model_dump(mode="json", by_alias=True)
    return {
        "raw_ai_response": raw,
        "diet_plan_overview": raw["overview"],
        "diet_plan_recommendations": raw["recommendations"],
        "diet_plan_guidelines": raw["guidelines"],
        "diet_cards": raw["diet_cards"],
        "plan_type": PLAN_TYPE,
        "days": raw["days"],
        "shopping_list": raw["shopping_list"],
    }
