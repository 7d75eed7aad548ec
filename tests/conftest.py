import pytest

from config import AppConfig

PROVIDER_ENV = (
    "AI_PROVIDER",
    "AI_MODEL",
    "AI_MAX_TOKENS",
    "AI_TEMPERATURE",
    "AI_REQUEST_TIMEOUT",
    "OPENAI_API_KEY",
    "GOOGLE_API_KEY",
    "ANTHROPIC_API_KEY",
    "OLLAMA_HOST",
    "OLLAMA_PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep the developer's real keys and .env file out of every test."""
    for name in PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def make_settings():
    """Build an AppConfig from keyword arguments only."""
    def _make(**kwargs):
        return AppConfig(_env_file=None, **kwargs)
    return _make
