from __future__ import annotations

import json
from typing import Any

from revgate_core.decision import DECISION_DESCRIPTION, DECISION_FUNCTION, DECISION_PARAMETERS, ToolCall
from revgate_core.providers.base import BaseReviewer


class AnthropicReviewer(BaseReviewer):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.2

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
        extra_params: dict[str, Any] | None = None,
    ):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'revgate[anthropic]'"
            )
        super().__init__(model=model, extra_params=extra_params)
        self.client = Anthropic(api_key=api_key, base_url=base_url)

    def _call_api(self, system_prompt: str, user_prompt: str) -> list[ToolCall]:
        # Imported inside the method because the anthropic package is optional;
        # __init__ already validated it is installed before we reach here.
        from anthropic.types import ToolUseBlock

        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            tools=[
                {
                    "name": DECISION_FUNCTION,
                    "description": DECISION_DESCRIPTION,
                    "input_schema": DECISION_PARAMETERS,
                }
            ],
            tool_choice={"type": "tool", "name": DECISION_FUNCTION},
            **self._request_params(),
        )
        return [
            ToolCall(name=block.name, arguments=json.dumps(block.input))
            for block in response.content
            if isinstance(block, ToolUseBlock)
        ]
