from __future__ import annotations

from typing import Any

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from revgate_core.decision import DECISION_FUNCTION, FINALIZE_REVIEW_TOOL, ToolCall
from revgate_core.providers.base import BaseReviewer


class OpenAIReviewer(BaseReviewer):
    MODEL = "gpt-4o"
    TEMPERATURE = 0.2

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
        extra_params: dict[str, Any] | None = None,
    ):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. Install it with: pip install openai"
            )
        super().__init__(model=model, extra_params=extra_params)
        self.client = _OpenAI(api_key=api_key, base_url=base_url)

    def _call_api(self, system_prompt: str, user_prompt: str) -> list[ToolCall]:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            tools=[FINALIZE_REVIEW_TOOL],
            tool_choice={"type": "function", "function": {"name": DECISION_FUNCTION}},
            **self._request_params(),
        )
        message = response.choices[0].message
        return [
            ToolCall(name=call.function.name, arguments=call.function.arguments or "")
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]
