# config.py
#
# Description: Centralized configuration for Sheikh Chat. It uses Pydantic
#              to load settings from a .env file or environment variables
#              and resolves them into the read-only provider configuration
#              that the response dispatcher is constructed with.
#

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations  # enable postponed evaluation of annotations
from pathlib import Path            # for handling filesystem paths
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings  # for loading settings from env

# --------------------------------------------------------------------------- #
# provider constants
# --------------------------------------------------------------------------- #
PROVIDER_OPENAI = "openai"
PROVIDER_GOOGLE = "google"
PROVIDER_ANTHROPIC = "anthropic"
PROVIDER_OLLAMA = "ollama"

# Providers that authenticate with an API key, in auto-selection order.
API_KEY_ENV_VARS: Dict[str, str] = {
    PROVIDER_OPENAI: "OPENAI_API_KEY",
    PROVIDER_GOOGLE: "GOOGLE_API_KEY",
    PROVIDER_ANTHROPIC: "ANTHROPIC_API_KEY",
}

KNOWN_PROVIDERS = (*API_KEY_ENV_VARS, PROVIDER_OLLAMA)

DEFAULT_MODELS: Dict[str, str] = {
    PROVIDER_OPENAI: "gpt-4o-mini",
    PROVIDER_GOOGLE: "gemini-1.5-flash",
    PROVIDER_ANTHROPIC: "claude-3-5-haiku-latest",
    PROVIDER_OLLAMA: "llama3.2",
}


# --------------------------------------------------------------------------- #
# settings
# --------------------------------------------------------------------------- #
class AppConfig(BaseSettings):
    """
    Load all application settings from environment variables or defaults.
    One instance is built at startup and handed to the components that
    need it; nothing reads the environment after that.

    Returns:
        AppConfig: A populated and validated settings instance.
    """

    # --- Provider Selection ---
    ai_provider: Optional[str] = Field(
        default=None,
        description="Provider id to use. When unset, the first provider with an API key wins."
    )
    ai_model: Optional[str] = Field(
        default=None,
        description="Model identifier. Defaults to the provider's default model."
    )

    # --- Generation Parameters ---
    ai_max_tokens: int = Field(
        default=1000,
        gt=0,
        description="Maximum number of tokens the provider may generate per reply."
    )
    ai_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature passed to the provider."
    )
    ai_request_timeout: Optional[float] = Field(
        default=None,
        description="Optional request timeout in seconds. No timeout when unset."
    )

    # --- Credentials ---
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key.")
    google_api_key: Optional[str] = Field(default=None, description="Google AI API key.")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API key.")

    # --- Ollama Settings ---
    ollama_host: str = Field(
        default="http://localhost",
        description="Ollama server host URL. Use 'https://' for non-local hosts."
    )
    ollama_port: int = Field(
        default=11434,
        description="Ollama server port."
    )

    # --- UI ---
    theme_store_path: Path = Field(
        default=Path(".sheikh_chat/preferences.json"),
        description="File holding the persisted theme preference."
    )
    log_level: str = Field(default="INFO", description="Log level for application loggers.")

    # pydantic v2 style configuration
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("ai_provider")
    @classmethod
    def _check_provider(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        provider = value.strip().lower()
        if provider not in KNOWN_PROVIDERS:
            raise ValueError(
                f"Unsupported provider: {value}. "
                f"Supported providers: {', '.join(KNOWN_PROVIDERS)}"
            )
        return provider

    def api_key_for(self, provider: str) -> Optional[str]:
        """Return the configured API key for ``provider``, or None when blank."""
        key = getattr(self, f"{provider}_api_key", None)
        if key is None or not key.strip():
            return None
        return key.strip()


class ProviderConfig(BaseModel):
    """Read-only description of the provider every dispatch talks to."""

    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    max_tokens: int
    temperature: float
    api_key: Optional[str] = Field(default=None, repr=False)
    base_url: Optional[str] = None
    timeout: Optional[float] = None


# --------------------------------------------------------------------------- #
# resolution
# --------------------------------------------------------------------------- #
def select_provider(settings: AppConfig) -> Optional[str]:
    """
    Pick the provider id to use, or None when nothing usable is configured.

    An explicit ``AI_PROVIDER`` wins but still needs its API key. Ollama
    runs locally without a key, so it is only used when asked for.
    """
    if settings.ai_provider is not None:
        if settings.ai_provider == PROVIDER_OLLAMA:
            return PROVIDER_OLLAMA
        if settings.api_key_for(settings.ai_provider):
            return settings.ai_provider
        return None

    for provider in API_KEY_ENV_VARS:
        if settings.api_key_for(provider):
            return provider
    return None


def resolve_provider_config(settings: AppConfig) -> Optional[ProviderConfig]:
    """Build the ProviderConfig for ``settings``, or None when not configured."""
    provider = select_provider(settings)
    if provider is None:
        return None

    base_url = None
    if provider == PROVIDER_OLLAMA:
        base_url = f"{settings.ollama_host.rstrip('/')}:{settings.ollama_port}"

    return ProviderConfig(
        provider=provider,
        model=settings.ai_model or DEFAULT_MODELS[provider],
        max_tokens=settings.ai_max_tokens,
        temperature=settings.ai_temperature,
        api_key=settings.api_key_for(provider) if provider in API_KEY_ENV_VARS else None,
        base_url=base_url,
        timeout=settings.ai_request_timeout,
    )


def load_settings(**overrides) -> AppConfig:
    """Read settings from the environment (and ``.env``), applying overrides."""
    return AppConfig(**overrides)
