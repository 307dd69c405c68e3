"""Abstract LLM provider protocol and JSON response parsing."""

import json
import re
from typing import Any, Protocol

from mealworker.errors import StructuredOutputError


class LLMProvider(Protocol):
    """Protocol for LLM backends (OpenAI, Anthropic)."""

    def complete(self, system_prompt: str, user_prompt: str, **kwargs: Any) -> str:
        """Return raw text completion."""
        ...

    def complete_structured(self, system_prompt: str, user_prompt: str, **kwargs: Any) -> Any:
        """Return the completion parsed as a JSON document."""
        ...


def strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = re.sub(r"^```\w*\n?", "", text)
        text = re.sub(r"\n?```\s*$", "", text)
    return text.strip()


def parse_json_document(raw: str | None) -> Any:
    """Parse an LLM response as JSON, tolerating a markdown code fence."""
    if not raw or not raw.strip():
        raise StructuredOutputError("LLM returned no content")
    try:
        return json.loads(strip_code_fence(raw))
    except json.JSONDecodeError as e:
        raise StructuredOutputError(f"Failed to parse AI response: {e}") from e
