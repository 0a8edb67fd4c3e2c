"""Shared fixtures for the marking test suite."""

from typing import List

import pytest

from app.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are lru_cached; reset them around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Environment with remote marking configured."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-api-key")
    monkeypatch.setenv("MODEL_NAME", "gemini-3-flash-preview")


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults, independent of the process environment."""
    return Settings(_env_file=None, gemini_api_key=None, trusted_proxies="")


class RecordingSleep:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


class FakeCompletionClient:
    """CompletionClient returning scripted responses and recording calls.

    Each scripted item is either a string to return or an exception to raise.
    When the script runs out, the last item repeats.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or ["Total: 7/10 (70%)"]
        self.calls: List[dict] = []

    async def complete(self, system_prompt, user_prompt, max_output_tokens, temperature):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "max_output_tokens": max_output_tokens,
            "temperature": temperature,
        })
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def make_client():
    """Factory for FakeCompletionClient with a custom script."""
    return FakeCompletionClient
