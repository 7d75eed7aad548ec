# chat_actions.py
# Description: Server-side chat actions. Decides whether an AI provider is
# configured, sends the conversation to it, and turns every failure into a
# message the chat can display. Callers always get a string back.

from __future__ import annotations

import enum
import logging
from typing import Callable, List, Optional, Sequence, TypedDict

from chat_state import ROLE_USER, Message
from config import API_KEY_ENV_VARS, AppConfig, ProviderConfig, resolve_provider_config
from providers import (
    ProviderInfo,
    ProviderMessage,
    generate_ai_response,
    get_available_providers,
    provider_name,
)

logger = logging.getLogger(__name__)

SendFn = Callable[..., str]

# ---------------------------------------------------------------------------
# user-facing strings
# ---------------------------------------------------------------------------
NO_USER_MESSAGE = "Please send a message first."

API_KEY_WARNING = (
    "⚠️ AI provider not configured. "
    "Please check your API keys in the environment variables."
)
API_KEY_SETUP_WARNING = (
    "⚠️ AI provider not configured. Please set up your API keys in the "
    "environment variables.\n\nSupported providers:\n"
    + "\n".join(f"• {provider_name(p)} ({env})" for p, env in API_KEY_ENV_VARS.items())
)
RATE_LIMIT_WARNING = "⏳ Rate limit exceeded. Please try again in a moment."
QUOTA_WARNING = "💳 API quota exceeded. Please check your account limits."
GENERIC_APOLOGY = (
    "❌ Sorry, I encountered an error while generating a response. Please try again."
)

_SETUP_LINES = "\n".join(
    f"• {provider_name(p)}: Set `{env}`" for p, env in API_KEY_ENV_VARS.items()
)

GREETING_RESPONSE = (
    "Hello! I'm Sheikh Chat, but I'm not connected to an AI provider yet. "
    "To enable real AI responses, please set up your API keys:\n\n"
    "🔧 **Setup Required:**\n"
    f"{_SETUP_LINES}\n\n"
    "Once configured, I'll be able to have real conversations with you!"
)
HELP_RESPONSE = (
    "I'm Sheikh Chat, but I need AI provider configuration to function properly. "
    "Once you set up your API keys, I can:\n\n"
    "🤖 **AI Capabilities:**\n"
    "• Answer questions across many topics\n"
    "• Help with problem-solving and analysis\n"
    "• Assist with writing and creative tasks\n"
    "• Engage in meaningful conversations\n"
    "• Provide explanations and insights\n\n"
    "🔧 **To Enable:**\n"
    "Add your preferred AI provider's API key to the environment variables."
)
DEFAULT_FALLBACK_TEMPLATE = (
    'I understand you\'re asking about "{message}". To provide real AI-powered '
    "responses, please configure an AI provider by setting the appropriate API key "
    "in your environment variables. I'm currently running in fallback mode with "
    "limited functionality."
)

# Checked in order; the first category with a matching phrase wins.
GREETING_TRIGGERS = ("hello", "hi")
HELP_TRIGGERS = ("help", "what can you do")

PROBE_MESSAGE = (
    'Hello! Please respond with "Connection successful" if you can see this message.'
)
PROBE_MAX_TOKENS = 50
PROBE_TEMPERATURE = 0.1
NOT_CONFIGURED_MESSAGE = "No AI provider configured. Please set up your API keys."


# ---------------------------------------------------------------------------
# error classification
# ---------------------------------------------------------------------------
class FailureKind(enum.Enum):
    NOT_CONFIGURED = "not_configured"
    AUTH_FAILURE = "auth_failure"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNKNOWN_FAILURE = "unknown_failure"
    MALFORMED_INPUT = "malformed_input"


# NOTE: matching on message text breaks silently if a provider rewords its
# errors. The exception types in providers.py carry the same information.
_FAILURE_MARKERS = (
    ("API key", FailureKind.AUTH_FAILURE),
    ("rate limit", FailureKind.RATE_LIMITED),
    ("quota", FailureKind.QUOTA_EXCEEDED),
)


def classify_failure(error: BaseException) -> FailureKind:
    """Map an error to a FailureKind by looking at its message."""
    text = str(error)
    for marker, kind in _FAILURE_MARKERS:
        if marker in text:
            return kind
    return FailureKind.UNKNOWN_FAILURE


def failure_message(kind: FailureKind, api_key_warning: str = API_KEY_WARNING) -> str:
    if kind is FailureKind.AUTH_FAILURE:
        return api_key_warning
    if kind is FailureKind.RATE_LIMITED:
        return RATE_LIMIT_WARNING
    if kind is FailureKind.QUOTA_EXCEEDED:
        return QUOTA_WARNING
    if kind is FailureKind.MALFORMED_INPUT:
        return NO_USER_MESSAGE
    return GENERIC_APOLOGY


def fallback_response(user_message: str) -> str:
    """Canned reply used while no provider is configured."""
    lowered = user_message.lower()
    if any(trigger in lowered for trigger in GREETING_TRIGGERS):
        return GREETING_RESPONSE
    if any(trigger in lowered for trigger in HELP_TRIGGERS):
        return HELP_RESPONSE
    return DEFAULT_FALLBACK_TEMPLATE.format(message=user_message)


def to_provider_messages(history: Sequence[Message]) -> List[ProviderMessage]:
    return [{"role": m.role, "content": m.content} for m in history]


# ---------------------------------------------------------------------------
# status records
# ---------------------------------------------------------------------------
class AIStatus(TypedDict):
    configured: bool
    provider: str
    model: str
    availableProviders: List[ProviderInfo]


class ConnectionTestResult(TypedDict):
    success: bool
    message: str
    provider: str
    model: str


# ---------------------------------------------------------------------------
# dispatcher
# ---------------------------------------------------------------------------
class ResponseDispatcher:
    """
    Produces the assistant's reply for a conversation.

    The provider configuration is resolved once from ``settings`` when the
    dispatcher is built. ``send`` performs the network call and can be
    swapped out in tests.
    """

    def __init__(self, settings: AppConfig, send: Optional[SendFn] = None) -> None:
        self.settings = settings
        self.provider_config: Optional[ProviderConfig] = resolve_provider_config(settings)
        self._send: SendFn = send or generate_ai_response

    def is_configured(self) -> bool:
        return self.provider_config is not None

    def respond(self, history: Sequence[Message]) -> str:
        """
        Return the assistant reply for ``history``.

        Never raises for provider failures: they are logged and mapped to
        one of the fixed warning strings.
        """
        last = history[-1] if history else None
        if last is None or last.role != ROLE_USER:
            return failure_message(FailureKind.MALFORMED_INPUT)

        config = self.provider_config
        if config is None:
            return fallback_response(last.content)

        return self._dispatch(config, to_provider_messages(history), API_KEY_WARNING)

    def respond_to(self, user_message: str) -> str:
        """Single-turn variant: only ``user_message`` is sent to the provider."""
        config = self.provider_config
        if config is None:
            return fallback_response(user_message)
        return self._dispatch(
            config, [{"role": ROLE_USER, "content": user_message}], API_KEY_SETUP_WARNING
        )

    def _dispatch(
        self, config: ProviderConfig, messages: List[ProviderMessage], api_key_warning: str
    ) -> str:
        try:
            return self._send(
                messages,
                config,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
            )
        except Exception as e:
            kind = classify_failure(e)
            logger.error(
                "AI response generation failed",
                extra={
                    "provider": config.provider,
                    "model": config.model,
                    "failure": kind.value,
                    "error": str(e),
                },
                exc_info=True,
            )
            return failure_message(kind, api_key_warning)

    def get_status(self) -> AIStatus:
        config = self.provider_config
        return {
            "configured": config is not None,
            "provider": config.provider if config else "none",
            "model": config.model if config else "none",
            "availableProviders": get_available_providers(),
        }

    def test_connection(self) -> ConnectionTestResult:
        """Send a small probe message and report whether the provider answered."""
        config = self.provider_config
        if config is None:
            return {
                "success": False,
                "message": NOT_CONFIGURED_MESSAGE,
                "provider": "none",
                "model": "none",
            }

        try:
            self._send(
                [{"role": ROLE_USER, "content": PROBE_MESSAGE}],
                config,
                max_tokens=PROBE_MAX_TOKENS,
                temperature=PROBE_TEMPERATURE,
            )
        except Exception as e:
            logger.error("AI connection test failed", extra={"error": str(e)})
            return {
                "success": False,
                "message": str(e) or "Unknown error occurred",
                "provider": "error",
                "model": "error",
            }

        logger.info(
            "AI connection test succeeded",
            extra={"provider": config.provider, "model": config.model},
        )
        return {
            "success": True,
            "message": f"AI connection successful! Model: {config.model}",
            "provider": config.provider,
            "model": config.model,
        }


def status_lines(status: AIStatus) -> List[str]:
    """Render an AIStatus record as short human-readable lines."""
    lines = [
        "AI: connected" if status["configured"] else "AI: not configured (fallback mode)",
        f"Provider: {status['provider']}",
        f"Model: {status['model']}",
        "Available providers:",
    ]
    for info in status["availableProviders"]:
        lines.append(f"  {info['name']} ({info['id']}): {', '.join(info['models'])}")
    return lines
