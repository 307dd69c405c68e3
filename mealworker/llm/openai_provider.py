"""OpenAI LLM implementation with structured output via JSON mode."""

from typing import Any

from openai import OpenAI

from mealworker.llm.base import parse_json_document


class OpenAIProvider:
    """OpenAI chat completion with optional structured (JSON object) output."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
    ):
        self._client = OpenAI(api_key=api_key)
        self._model = model

    def complete(self, system_prompt: str, user_prompt: str, **kwargs: Any) -> str:
        # OpenAI exceptions propagate as-is; the pipeline decides whether they abort the job
        response = self._client.chat.completions.create(
            model=kwargs.get("model") or self._model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            **{k: v for k, v in kwargs.items() if k not in ("model",)},
        )
        msg = response.choices[0].message
        return msg.content or ""

    def complete_structured(self, system_prompt: str, user_prompt: str, **kwargs: Any) -> Any:
        raw = self.complete(
            system_prompt,
            user_prompt,
            response_format={"type": "json_object"},
            **kwargs,
        )
        return parse_json_document(raw)
