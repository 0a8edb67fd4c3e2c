"""Gemini-backed remote completion capability.

The marking engine only depends on the CompletionClient protocol:
complete(system_prompt, user_prompt, max_output_tokens, temperature) -> text.
GeminiCompletionClient implements it with the google-genai SDK and maps
provider failures onto RateLimitedError / PayloadTooLargeError /
TransientFailureError.
"""

import logging
from typing import Optional, Protocol

from google import genai
from google.genai import types

from app.config import get_settings
from app.utils.errors import classify_provider_error

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_TEXT = "No response generated"


class CompletionClient(Protocol):
    """Narrow remote completion capability used by the marking engine."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int,
        temperature: float,
    ) -> str:
        ...


def get_gemini_client() -> genai.Client:
    """Initialize and return a Gemini API client.

    Returns:
        genai.Client: Initialized Gemini client ready for API calls.

    Raises:
        ValueError: If GEMINI_API_KEY is not set in environment.
    """
    settings = get_settings()

    if not settings.gemini_api_key:
        raise ValueError(
            "GEMINI_API_KEY not set in environment. "
            "Please set this variable in your .env file or environment."
        )

    return genai.Client(api_key=settings.gemini_api_key)


class GeminiCompletionClient:
    """CompletionClient implementation over the Gemini async API.

    Args:
        client: Gemini client (defaults to get_gemini_client())
        model: Model name (defaults to settings.model_name)
    """

    def __init__(self, client: Optional[genai.Client] = None, model: Optional[str] = None):
        self._client = client or get_gemini_client()
        self.model = model or get_settings().model_name

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int,
        temperature: float,
    ) -> str:
        """Generate a completion for one marking request.

        Raises:
            RateLimitedError: Provider reported a rate limit (429)
            PayloadTooLargeError: Provider rejected the request size
            TransientFailureError: Server-side or network failure
        """
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=user_prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    max_output_tokens=max_output_tokens,
                    temperature=temperature,
                ),
            )
        except Exception as e:
            mapped = classify_provider_error(e)
            if mapped is e:
                raise
            raise mapped from e

        text = (response.text or "").strip()
        if not text:
            logger.warning("Gemini returned an empty response (model=%s)", self.model)
            return EMPTY_RESPONSE_TEXT
        return text
