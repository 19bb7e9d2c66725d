#  Proactive Engine - AI Provider
#
#  Thin adapter over anthropic.AsyncAnthropic: one prompt in, one text
#  completion out, with token usage and wall-clock duration.
#  Every failure mode surfaces as ProviderError.
#
#  Depends on: config.py, exceptions.py
#  Used by:    container.py, services/ceremonies.py

import asyncio
import logging
import time
from dataclasses import dataclass

import anthropic

from proactive_engine.config import AI_MODEL, API_TIMEOUT
from proactive_engine.exceptions import ProviderError

logger = logging.getLogger("proactive.ai")


@dataclass
class Completion:
    text: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    duration_ms: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class AIProvider:
    """Single-turn completions against the Anthropic Messages API."""

    def __init__(self, client: anthropic.AsyncAnthropic, model: str = AI_MODEL,
                 timeout: float = API_TIMEOUT):
        self._client = client
        self.model = model
        self._timeout = timeout

    async def complete(
        self,
        prompt: str,
        *,
        system: str = "",
        max_tokens: int = 800,
        model: str | None = None,
    ) -> Completion:
        model = model or self.model
        start = time.monotonic()
        try:
            # wait_for bounds retries inside the SDK as well as each request
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=model,
                    max_tokens=max_tokens,
                    system=system,
                    messages=[{"role": "user", "content": prompt}],
                    timeout=self._timeout,
                ),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, anthropic.APITimeoutError) as e:
            logger.warning("AI call timed out after %ss (model=%s)", self._timeout, model)
            raise ProviderError(f"AI provider timed out after {self._timeout}s") from e
        except anthropic.APIError as e:
            logger.warning("AI call failed (model=%s): %s", model, e)
            raise ProviderError(f"AI provider error: {e}") from e

        duration_ms = int((time.monotonic() - start) * 1000)

        if not response.content:
            raise ProviderError("AI provider returned an empty response")
        text = getattr(response.content[0], "text", None)
        if not text:
            raise ProviderError("AI provider returned no text content")

        return Completion(
            text=text,
            model=model,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            duration_ms=duration_ms,
        )
