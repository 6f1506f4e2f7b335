"""Client construction entrypoints.

Architectural role:
    Bridges process configuration (`provider_config`, environment, key files) and
    optional caller preferences to a ready `ChatbotClient`. Terminal and HTTP
    adapters construct their client here.

Model call flow:
    env / preferences -> `client_from_env` -> `ChatbotClient(...)`.

Determinism:
    Deterministic for a fixed environment, key files and preference mapping.
"""

from chatbridge.llm import provider_config
from chatbridge.llm.client import ChatbotClient
from chatbridge.llm.errors import ConfigurationError
from chatbridge.llm.transport import HttpTransport
from chatbridge.llm.types import Provider


def create_chatbot_client(provider, api_key, model=None, temperature=None, max_tokens=None, transport=None):
    """Construct a `ChatbotClient` from explicit settings."""
    return ChatbotClient(
        provider,
        api_key,
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        transport=transport,
    )


def client_from_env(preferences=None, transport=None):
    """Build a client from environment configuration.

    Args:
        preferences: Optional mapping (for example a persisted UI preference
            store) that may supply `provider` and `model`. Its values win over
            the environment.
        transport: Optional transport override.

    Returns:
        `ChatbotClient`.

    Parameter semantics:
        - Provider: `preferences["provider"]` or `CHATBRIDGE_PROVIDER`.
        - Model: `preferences["model"]`, else `CHATBRIDGE_MODEL` when the
          provider came from the environment, else the provider default.
        - Temperature / max tokens: `CHATBRIDGE_TEMPERATURE` /
          `CHATBRIDGE_MAX_TOKENS`.
        - Credential: `provider_config.load_key(provider)`.

    Failure scenarios:
        Unknown provider or missing key -> `ConfigurationError`.
    """
    preferences = dict(preferences or {})

    try:
        provider = Provider.parse(preferences.get("provider") or provider_config.PROVIDER)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    model = preferences.get("model")
    if not model and not preferences.get("provider"):
        # An env model only applies to the env provider.
        model = provider_config.MODEL_NAME

    api_key = provider_config.load_key(provider)
    if not api_key:
        raise ConfigurationError(
            f"API key is required for {provider.value}: set "
            f"{provider.value.upper()}_API_KEY or {provider_config.PROVIDERS[provider]['key_file']}"
        )

    return ChatbotClient(
        provider,
        api_key,
        model=model or None,
        temperature=provider_config.TEMPERATURE,
        max_tokens=provider_config.MAX_TOKENS,
        transport=transport or HttpTransport(timeout=provider_config.DEFAULT_TIMEOUT),
    )
