"""Anthropic LLM client used for card generation, with rate limiting and retries."""

import json
import logging
import time
from collections import deque

import anthropic
from tenacity import retry, stop_after_attempt, wait_exponential

from backend.config import settings
from backend.errors import GenerationError

logger = logging.getLogger(__name__)


class LLMClient:
    """Wrapper around the Anthropic API with rate limiting and retry logic."""

    def __init__(self) -> None:
        self.client = anthropic.Anthropic(api_key=settings.anthropic_api_key)
        self.model = settings.anthropic_model
        self.max_rpm = settings.anthropic_rate_limit_rpm
        self._request_timestamps: deque[float] = deque()

    def _enforce_rate_limit(self) -> None:
        now = time.monotonic()
        # Drop requests older than the one-minute window
        while self._request_timestamps and now - self._request_timestamps[0] > 60:
            self._request_timestamps.popleft()
        if len(self._request_timestamps) >= self.max_rpm:
            sleep_time = 60 - (now - self._request_timestamps[0])
            if sleep_time > 0:
                logger.info("Rate limit reached, sleeping %.1fs", sleep_time)
                time.sleep(sleep_time)
        self._request_timestamps.append(time.monotonic())

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    def create_message(
        self,
        prompt: str,
        system: str = "",
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> str:
        """Send a single-turn prompt and return the response text."""
        self._enforce_rate_limit()
        kwargs: dict = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        response = self.client.messages.create(**kwargs)
        logger.debug(
            "Tokens used: %d in, %d out",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        return response.content[0].text

    def create_json(self, prompt: str, system: str = "", temperature: float = 0.7) -> dict:
        """Prompt for a JSON object and parse the first one found in the reply."""
        text = self.create_message(prompt, system=system, temperature=temperature)
        return extract_json_object(text)


def extract_json_object(text: str) -> dict:
    """Pull the outermost ``{...}`` block out of a model reply and parse it.

    Models often wrap JSON in prose or code fences; anything outside the
    first opening and last closing brace is ignored.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise GenerationError("Model reply did not contain a JSON object")
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise GenerationError(f"Model reply was not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise GenerationError("Model reply JSON was not an object")
    return data


# Created on first use so importing the app never needs an API key.
_llm_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Return the shared LLMClient, creating it on first call."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
