"""Meal image lookup (Unsplash) with per-plan de-duplication and fixed fallbacks."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from mealworker.schemas import Meal, MealPlanDay

logger = logging.getLogger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"

GENERIC_FOOD_IMAGE = "https://images.unsplash.com/photo-1512621776951-a57141f2eefd?q=80&w=800&auto=format&fit=crop"
DEFAULT_IMAGES_BY_TYPE = {
    "Breakfast": "https://images.unsplash.com/photo-1533089860892-a7c6f0a88666?q=80&w=800&auto=format&fit=crop",
    "Lunch": "https://images.unsplash.com/photo-1547496502-affa22d38842?q=80&w=800&auto=format&fit=crop",
    "Dinner": "https://images.unsplash.com/photo-1576402187878-974f70c890a5?q=80&w=800&auto=format&fit=crop",
    "Snack": "https://images.unsplash.com/photo-1482049016688-2d3e1b311543?q=80&w=800&auto=format&fit=crop",
}
CHEAT_DAY_MEAL_TYPE = "Cheat Day"
CHEAT_DAY_IMAGE = "https://images.unsplash.com/photo-1576402187878-974f70c890a5?q=80&w=800&auto=format&fit=crop"
CHEAT_DAY_KEYWORDS = ["celebration", "feast", "indulgent food"]


class ImageSearchProvider(Protocol):
    def search(self, query: str) -> list[str]:
        """Candidate image URLs for *query*, best first. Raises on provider errors."""
        ...


class UnsplashImageSearch:
    """Unsplash photo search returning ``urls.regular`` for each hit."""

    def __init__(self, access_key: str, timeout: float = 10.0, per_page: int = 5):
        self._access_key = access_key
        self._timeout = timeout
        self._per_page = per_page

    def search(self, query: str) -> list[str]:
        params = {
            "query": query,
            "per_page": self._per_page,
            "orientation": "landscape",
            "content_filter": "high",
            "client_id": self._access_key,
        }
        with httpx.Client(timeout=self._timeout) as client:
            response = client.get(UNSPLASH_SEARCH_URL, params=params)
            response.raise_for_status()
            data = response.json()
        urls = []
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            return urls
        for result in results:
            if not isinstance(result, dict):
                continue
            links = result.get("urls")
            url = links.get("regular") if isinstance(links, dict) else None
            if isinstance(url, str) and url:
                urls.append(url)
        return urls


def default_image(meal_type: str) -> str:
    if meal_type == CHEAT_DAY_MEAL_TYPE:
        return CHEAT_DAY_IMAGE
    return DEFAULT_IMAGES_BY_TYPE.get(meal_type, GENERIC_FOOD_IMAGE)


def search_query(meal_name: str, keywords: list[str] | None) -> str:
    """First keyword if the LLM gave one, else the first two words of the meal name."""
    term = next((k.strip() for k in keywords or [] if k and k.strip()), "")
    if not term:
        term = " ".join(meal_name.split()[:2])
    return f"{term} food dish"


class MealImageResolver:
    """Assigns images to the meals of one plan.

    Create one resolver per pipeline run: ``used_urls`` tracks the searched
    images already given out in this plan so no two meals share one.
    """

    def __init__(self, search: ImageSearchProvider | None, used_urls: set[str] | None = None):
        self._search = search
        self.used_urls: set[str] = used_urls if used_urls is not None else set()

    def resolve(self, meal_name: str, meal_type: str, keywords: list[str] | None = None) -> str:
        fallback = default_image(meal_type)
        if self._search is None:
            return fallback
        query = search_query(meal_name, keywords)
        try:
            candidates = self._search.search(query)
        except Exception as e:
            logger.warning("Image search failed for %r (%s): %s", meal_name, query, e)
            return fallback
        candidates = [u for u in candidates or [] if isinstance(u, str) and u]
        for url in candidates:
            if url not in self.used_urls:
                self.used_urls.add(url)
                return url
        logger.debug("No unused image for %r (%d candidates)", meal_name, len(candidates))
        return fallback

    def enrich(self, days: list[MealPlanDay]) -> None:
        """Set ``image`` on every meal that has a name and type, in place."""
        if self._search is None:
            logger.warning("No image search configured, using default meal images")
        for day in days:
            for meal in day.meals:
                self._enrich_meal(meal, day.is_cheat_day)

    def _enrich_meal(self, meal: Meal, is_cheat_day: bool) -> None:
        if is_cheat_day:
            if meal.type == CHEAT_DAY_MEAL_TYPE:
                meal.image = self.resolve("Celebration feast gourmet", CHEAT_DAY_MEAL_TYPE, CHEAT_DAY_KEYWORDS)
            return
        if meal.name and meal.type:
            meal.image = self.resolve(meal.name, meal.type, meal.image_search_keywords)
