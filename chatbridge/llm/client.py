"""Unified multi-provider chat client.

Architectural role:
    `ChatbotClient` is the caller-facing facade. It owns the generation
    configuration, selects one provider adapter at construction and dispatches
    `chat` / `chat_stream` through it and the HTTP transport.

Model invocation flow:
    `chat(messages)` -> adapter.build_request -> transport.request_json
    -> adapter.parse_buffered_response -> `ChatResult`.
    `chat_stream(messages, ...)` -> adapter.build_request(stream=True)
    -> transport.open_stream -> adapter.decode_stream -> sink callbacks.

Retry behavior:
    None. A single failed attempt is terminal for that call.

Thread safety:
    The configuration is the only shared mutable state and is guarded by a lock.
    Each call takes one snapshot of it before building its request, so
    `update_config` running concurrently never changes an in-flight call.

Failure handling model:
    - Construction: `ConfigurationError` before any request is attempted.
    - `chat`: raises `ProviderError` / `TransportError` / `RequestCancelledError`.
    - `chat_stream`: delivers the same errors once through `on_error`; raises
      them only when no `on_error` sink was given.
"""

import dataclasses
import logging
import threading

from chatbridge.llm.adapters import get_adapter
from chatbridge.llm.errors import ChatbridgeError, ConfigurationError
from chatbridge.llm.provider_config import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    TEMPERATURE_RANGE,
    default_model,
)
from chatbridge.llm.transport import HttpTransport
from chatbridge.llm.types import (
    GenerationConfig,
    Provider,
    StreamError,
    StreamSink,
    coerce_messages,
)


logger = logging.getLogger(__name__)


def _check_temperature(value):
    low, high = TEMPERATURE_RANGE
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"temperature must be a number, got {value!r}")
    if not low <= value <= high:
        raise ConfigurationError(f"temperature must be within [{low}, {high}], got {value}")
    return float(value)


def _check_max_tokens(value):
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"max_tokens must be a positive integer, got {value!r}")
    return value


def _check_model(value):
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"model must be a non-empty string, got {value!r}")
    return value.strip()


class ChatbotClient:
    """Chat with Groq, Gemini or HuggingFace through one contract.

    Args:
        provider: `Provider` member or its name (`"groq"`, `"gemini"`,
            `"huggingface"`). Fixed for the lifetime of the client.
        api_key: Provider credential. Required.
        model: Model identifier; defaults to the provider's default model.
        temperature: Sampling temperature in [0, 2]; default 0.7.
        max_tokens: Maximum generated tokens (> 0); default 2048.
        transport: Object with `request_json` / `open_stream`; defaults to
            `HttpTransport()`.

    Raises:
        ConfigurationError: Unknown provider, missing credential or invalid
            generation parameters.
    """

    def __init__(
        self,
        provider,
        api_key,
        model=None,
        temperature=None,
        max_tokens=None,
        transport=None,
    ):
        try:
            provider = Provider.parse(provider)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        if not isinstance(api_key, str) or not api_key.strip():
            raise ConfigurationError(f"API key is required for {provider.value}")

        self._config = GenerationConfig(
            provider=provider,
            api_key=api_key.strip(),
            model=_check_model(model) if model is not None else default_model(provider),
            temperature=_check_temperature(
                DEFAULT_TEMPERATURE if temperature is None else temperature
            ),
            max_tokens=_check_max_tokens(
                DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens
            ),
        )
        self._lock = threading.Lock()
        self._adapter = get_adapter(provider)
        self._transport = transport or HttpTransport()

    @property
    def provider(self) -> Provider:
        return self._config.provider

    def _snapshot(self) -> GenerationConfig:
        with self._lock:
            return dataclasses.replace(self._config)

    # =========================================================
    # Buffered chat
    # =========================================================

    def chat(self, messages, cancel_token=None):
        """Send the conversation and wait for the full answer.

        Args:
            messages: Sequence of `Message` or `{"role", "content"}` mappings.
            cancel_token: Optional `CancelToken` aborting the request.

        Returns:
            `ChatResult`.

        Raises:
            ProviderError: Non-2xx response.
            TransportError: Network failure; `RequestCancelledError` on cancel.
        """
        config = self._snapshot()
        request = self._adapter.build_request(coerce_messages(messages), config)
        logger.info(
            "chat provider=%s model=%s url=%s",
            config.provider.value, config.model, request.redacted_url,
        )
        try:
            data = self._transport.request_json(
                request, config.provider.label, cancel_token=cancel_token
            )
        except ChatbridgeError as exc:
            logger.warning("chat failed provider=%s: %s", config.provider.value, exc)
            raise
        return self._adapter.parse_buffered_response(data, config)

    # =========================================================
    # Streaming chat
    # =========================================================

    def chat_stream(
        self,
        messages,
        on_chunk=None,
        on_error=None,
        on_complete=None,
        cancel_token=None,
    ):
        """Stream the answer through callbacks.

        Args:
            messages: Sequence of `Message` or `{"role", "content"}` mappings.
            on_chunk: Called with each text delta, in order.
            on_error: Called once with the terminal error.
            on_complete: Called once when the stream ends normally.
            cancel_token: Optional `CancelToken`; cancelling routes to `on_error`
                with `RequestCancelledError`.

        Exactly one of `on_complete` / `on_error` fires per call. Text delivered
        through `on_chunk` before an error is a truncated answer, not an invalid
        one.
        """
        config = self._snapshot()
        sink = StreamSink(on_chunk=on_chunk, on_error=on_error, on_complete=on_complete)
        request = self._adapter.build_request(coerce_messages(messages), config, stream=True)
        logger.info(
            "chat_stream provider=%s model=%s url=%s",
            config.provider.value, config.model, request.redacted_url,
        )
        try:
            byte_stream = self._transport.open_stream(
                request, config.provider.label, cancel_token=cancel_token
            )
        except ChatbridgeError as exc:
            logger.warning("chat_stream failed provider=%s: %s", config.provider.value, exc)
            if on_error is None:
                raise
            sink.emit(StreamError(exc))
            return

        state = self._adapter.decode_stream(byte_stream, sink)
        logger.debug("chat_stream finished provider=%s state=%s", config.provider.value, state.value)
        if on_error is None and sink.error is not None:
            raise sink.error

    # =========================================================
    # Configuration
    # =========================================================

    def get_config(self):
        """Return a `ClientConfig` snapshot without the credential."""
        with self._lock:
            return self._config.public()

    def update_config(self, model=None, temperature=None, max_tokens=None):
        """Change model / temperature / max_tokens; `None` keeps the prior value.

        Provider and credential cannot be changed; create a new client instead.
        """
        changes = {}
        if model is not None:
            changes["model"] = _check_model(model)
        if temperature is not None:
            changes["temperature"] = _check_temperature(temperature)
        if max_tokens is not None:
            changes["max_tokens"] = _check_max_tokens(max_tokens)
        if not changes:
            return
        with self._lock:
            for name, value in changes.items():
                setattr(self._config, name, value)
        logger.debug("config updated: %s", changes)
