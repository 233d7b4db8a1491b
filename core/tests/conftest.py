"""Shared fixtures for flowengine tests."""

from pathlib import Path

import pytest

from flowengine.credentials import CredentialProvider
from flowengine.llm.provider import LLMProvider, LLMResponse
from flowengine.observability import clear_trace_context


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch):
    """Keep tests away from a real ~/.flowengine/configuration.json."""
    monkeypatch.setenv("FLOWENGINE_CONFIG", str(tmp_path / "no-config.json"))
    clear_trace_context()
    yield
    clear_trace_context()


@pytest.fixture
def credentials(tmp_path: Path) -> CredentialProvider:
    return CredentialProvider.for_testing(
        {
            "openai": "sk-test",
            "anthropic": "ant-test",
            "gemini": "gem-test",
            "grok": "xai-test",
            "replicate": "r8-test",
        },
        dotenv_path=tmp_path / "missing.env",
    )


class FakeChat(LLMProvider):
    """Chat provider that records prompts and echoes them back."""

    def __init__(self, reply: str | None = None):
        self.reply = reply
        self.calls: list[dict] = []

    async def complete(self, provider, model, prompt, api_key, temperature=0.7, max_tokens=1000):
        self.calls.append(
            {
                "provider": provider,
                "model": model,
                "prompt": prompt,
                "api_key": api_key,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        content = self.reply if self.reply is not None else f"reply to: {prompt}"
        return LLMResponse(content=content, model=model, input_tokens=3, output_tokens=5)


@pytest.fixture
def fake_chat() -> FakeChat:
    return FakeChat()
