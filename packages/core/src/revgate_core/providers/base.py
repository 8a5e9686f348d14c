"""Base reviewer implementing the Template Method pattern.

All providers share the same review algorithm:
    review() → _call_with_retry() → _call_api()   ← only this differs per provider
             → validate_decision()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call forcing ``finalize_review`` and return
    the response's function calls as provider-neutral ToolCall values

Retries cover transport failures only. A response that arrives but does not
carry a valid decision raises DecisionValidationError straight away.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from revgate_core.decision import ToolCall, validate_decision
from revgate_core.errors import ProviderError

if TYPE_CHECKING:
    from revgate_core.models import BlockReview, PassReview
    from revgate_core.request import ReviewMessages

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_MAX_TOKENS = 4096


class BaseReviewer(ABC):
    MODEL: str = ""
    TEMPERATURE: float = 0.2
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    def __init__(self, model: str | None = None, extra_params: dict[str, Any] | None = None):
        self.model = model or self.MODEL
        self.extra_params = dict(extra_params or {})

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def review(self, messages: ReviewMessages) -> PassReview | BlockReview:
        """Send one review request and return the validated decision."""
        tool_calls = self._call_with_retry(messages.system, messages.user)
        return validate_decision(tool_calls)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> list[ToolCall]:
        """Make a single API call and return the function calls it produced.

        Should raise on transport failure; _call_with_retry handles retries
        and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _request_params(self) -> dict[str, Any]:
        """Sampling parameters, with configured extra params taking precedence."""
        params: dict[str, Any] = {"temperature": self.TEMPERATURE, "max_tokens": self.MAX_TOKENS}
        params.update(self.extra_params)
        return params

    def _call_with_retry(self, system_prompt: str, user_prompt: str) -> list[ToolCall]:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(system_prompt, user_prompt)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise ProviderError(
                        f"{self.__class__.__name__} API failed after {self.MAX_RETRIES} attempts: {e}"
                    ) from e
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        raise ProviderError(f"{self.__class__.__name__} made no API attempts")
