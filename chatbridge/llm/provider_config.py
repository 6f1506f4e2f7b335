"""Provider/runtime configuration for the LLM layer.

Architectural role:
    Centralizes endpoint tables, default models, environment-driven generation
    defaults, and credential lookup for `chatbridge.llm.adapters`,
    `chatbridge.llm.transport` and `chatbridge.llm.service`.

Determinism:
    Deterministic for a fixed process environment and key files. Environment values
    are resolved at import time (after `load_dotenv()`); key files are read at
    call time in `load_key`.

Failure behavior:
    Missing key material is represented as `None`. Turning that into a
    `ConfigurationError` is the client's job.
"""

import os
from dotenv import load_dotenv

from chatbridge.llm.types import Provider

load_dotenv()


# Provider endpoint and default-model map.
PROVIDERS = {

    Provider.GROQ: {
        "url": "https://api.groq.com/openai/v1/chat/completions",
        "default_model": "mixtral-8x7b-32768",
        "key_file": "config/groq.key",
    },

    Provider.GEMINI: {
        "url": "https://generativelanguage.googleapis.com/v1beta/models",
        "default_model": "gemini-2.0-flash",
        "key_file": "config/gemini.key",
    },

    Provider.HUGGINGFACE: {
        "url": "https://api-inference.huggingface.co/models",
        "default_model": "mistralai/Mistral-7B-Instruct-v0.1",
        "key_file": "config/huggingface.key",
    },

}


GEMINI_URL_TEMPLATE = PROVIDERS[Provider.GEMINI]["url"] + "/{model}:{method}"

HUGGINGFACE_URL_TEMPLATE = PROVIDERS[Provider.HUGGINGFACE]["url"] + "/{model}"


DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048
TEMPERATURE_RANGE = (0.0, 2.0)

# Per-request timeout in seconds (connect and read).
DEFAULT_TIMEOUT = float(os.getenv("CHATBRIDGE_TIMEOUT", "120"))

# Primary model routing controls.
PROVIDER = os.getenv("CHATBRIDGE_PROVIDER", Provider.GROQ.value)
MODEL_NAME = os.getenv("CHATBRIDGE_MODEL") or None
TEMPERATURE = float(os.getenv("CHATBRIDGE_TEMPERATURE", str(DEFAULT_TEMPERATURE)))
MAX_TOKENS = int(os.getenv("CHATBRIDGE_MAX_TOKENS", str(DEFAULT_MAX_TOKENS)))

LOG_LEVEL = os.getenv("CHATBRIDGE_LOG_LEVEL", "WARNING")


def default_model(provider) -> str:
    """Return the fixed default model identifier for `provider`."""
    return PROVIDERS[Provider.parse(provider)]["default_model"]


def load_key(provider):
    """Load the API key for `provider` from the environment or its key file.

    Resolution order:
        1. `<PROVIDER>_API_KEY` environment variable (for example `GEMINI_API_KEY`).
        2. Stripped contents of the configured key file (`config/<provider>.key`).

    Args:
        provider: `Provider` member or provider name.

    Returns:
        Key string or `None` when not available.

    Edge cases:
        - Empty environment value falls through to the key file.
        - Missing or empty key file returns `None`.
    """
    provider = Provider.parse(provider)
    env_value = os.getenv(provider.value.upper() + "_API_KEY")
    if env_value:
        return env_value.strip()
    path = PROVIDERS[provider]["key_file"]
    if not path or not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return f.read().strip() or None
