"""Text generation providers behind one async interface."""

import logging
from typing import Protocol

import anthropic
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from newsroom.config import Settings, get_settings
from newsroom.exceptions import LLMError
from newsroom.utils.retry import with_retry

logger = logging.getLogger(__name__)

ANTHROPIC_TRANSIENT = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


class TextGenerator(Protocol):
    """Single-turn completion used by every text-generation primitive."""

    async def complete(
        self,
        prompt: str,
        *,
        system: str = "",
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
        task: str = "generic",
    ) -> str: ...


class AnthropicGenerator:
    """Claude via the async Anthropic SDK."""

    def __init__(self, api_key: str, default_model: str, attempts: int = 3):
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.default_model = default_model
        self.attempts = attempts

    async def complete(
        self,
        prompt: str,
        *,
        system: str = "",
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
        task: str = "generic",
    ) -> str:
        model = model or self.default_model

        async def call() -> str:
            response = await self.client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system or anthropic.NOT_GIVEN,
                messages=[{"role": "user", "content": prompt}],
            )
            return "".join(block.text for block in response.content if block.type == "text")

        try:
            text = await with_retry(call, attempts=self.attempts, retry_on=ANTHROPIC_TRANSIENT, label=f"claude {task}")
        except anthropic.APIError as e:
            raise LLMError(f"Claude {task} call failed: {e}") from e

        if not text.strip():
            raise LLMError(f"Claude returned an empty {task} response")
        return text.strip()


class GeminiGenerator:
    """Gemini via google-genai."""

    def __init__(self, api_key: str, default_model: str, attempts: int = 3):
        self.client = genai.Client(api_key=api_key)
        self.default_model = default_model
        self.attempts = attempts

    async def complete(
        self,
        prompt: str,
        *,
        system: str = "",
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
        task: str = "generic",
    ) -> str:
        # Claude model ids configured per capability do not apply here
        model = self.default_model if not model or model.startswith("claude") else model

        async def call() -> str:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system or None,
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            )
            return response.text or ""

        try:
            text = await with_retry(
                call, attempts=self.attempts, retry_on=genai_errors.ServerError, label=f"gemini {task}"
            )
        except genai_errors.APIError as e:
            raise LLMError(f"Gemini {task} call failed: {e}") from e

        if not text.strip():
            raise LLMError(f"Gemini returned an empty {task} response")
        return text.strip()


def get_text_generator(settings: Settings | None = None) -> TextGenerator:
    """Get text generator based on configured LLM provider."""
    settings = settings or get_settings()

    if settings.llm_provider == "gemini":
        return GeminiGenerator(settings.gemini_api_key, settings.gemini_model, settings.llm_retry_attempts)
    # Default to Claude
    return AnthropicGenerator(settings.anthropic_api_key, settings.summary_model, settings.llm_retry_attempts)
