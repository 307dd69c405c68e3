"""Anthropic LLM implementation with structured output via JSON parse."""

from typing import Any

from anthropic import Anthropic

from mealworker.llm.base import parse_json_document


class AnthropicProvider:
    """Anthropic chat completion with optional structured (JSON) output."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-3-5-sonnet-20241022",
    ):
        self._client = Anthropic(api_key=api_key)
        self._model = model

    def complete(self, system_prompt: str, user_prompt: str, **kwargs: Any) -> str:
        extra = {}
        if "temperature" in kwargs:
            extra["temperature"] = kwargs["temperature"]
        response = self._client.messages.create(
            model=kwargs.get("model") or self._model,
            max_tokens=kwargs.get("max_tokens", 8192),
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            **extra,
        )
        return response.content[0].text if response.content else ""

    def complete_structured(self, system_prompt: str, user_prompt: str, **kwargs: Any) -> Any:
        instruction = "Respond with raw JSON only. No markdown, no code fence, no explanation."
        raw = self.complete(system_prompt, f"{user_prompt}\n\n{instruction}", **kwargs)
        return parse_json_document(raw)
