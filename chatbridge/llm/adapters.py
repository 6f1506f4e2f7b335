"""Per-provider request building, response parsing and stream decoding.

Architectural role:
    One adapter per `Provider` member. `ChatbotClient` selects its adapter once at
    construction through `get_adapter` and never inspects response shapes itself.

Provider handling:
    - Groq: OpenAI-compatible payload, roles kept verbatim, bearer auth,
      `data: ` SSE framing.
    - Gemini: `contents`/`parts` payload with `assistant -> model` role remap,
      API key in the `key` query parameter, line-delimited JSON streaming.
    - HuggingFace: whole history flattened into one `"{role}: {content}"` prompt,
      bearer auth, token-event streaming.

Parameter handling:
    `temperature` and `max_tokens` are mapped to each provider's own field names
    (`max_tokens`, `generationConfig.maxOutputTokens`, `parameters.max_new_tokens`).

Failure handling:
    Response parsing never raises on missing or malformed fields. Absent content
    becomes `""`; usage is attached only when the provider reports it.
"""

from urllib.parse import quote, urlencode

from chatbridge.llm.decoders import (
    EventStreamDecoder,
    JsonLinesDecoder,
    TokenEventDecoder,
    dig,
    drive_stream,
    text_at,
)
from chatbridge.llm.provider_config import (
    GEMINI_URL_TEMPLATE,
    HUGGINGFACE_URL_TEMPLATE,
    PROVIDERS,
)
from chatbridge.llm.types import ChatResult, Provider, ProviderRequest, Usage


JSON_HEADERS = {"Content-Type": "application/json"}


def _count(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


class ProviderAdapter:
    """Common adapter surface; subclasses fill in the provider specifics."""

    provider = None
    decoder_class = None

    def build_request(self, messages, config, stream=False) -> ProviderRequest:
        raise NotImplementedError

    def parse_buffered_response(self, data, config) -> ChatResult:
        raise NotImplementedError

    def create_decoder(self):
        return self.decoder_class()

    def decode_stream(self, byte_source, sink):
        """Decode `byte_source` with this provider's framing into `sink`."""
        return drive_stream(self.create_decoder(), byte_source, sink)

    def _bearer_headers(self, api_key) -> dict:
        headers = dict(JSON_HEADERS)
        headers["Authorization"] = f"Bearer {api_key}"
        return headers


class GroqAdapter(ProviderAdapter):
    provider = Provider.GROQ
    decoder_class = EventStreamDecoder

    def build_request(self, messages, config, stream=False):
        body = {
            "model": config.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        if stream:
            body["stream"] = True
        return ProviderRequest(
            url=PROVIDERS[self.provider]["url"],
            headers=self._bearer_headers(config.api_key),
            body=body,
        )

    def parse_buffered_response(self, data, config):
        model = dig(data, "model", default="")
        usage = dig(data, "usage")
        return ChatResult(
            content=text_at(data, "choices", 0, "message", "content"),
            model=model if isinstance(model, str) and model else config.model,
            provider=self.provider,
            usage=Usage(
                prompt_tokens=_count(usage.get("prompt_tokens")),
                completion_tokens=_count(usage.get("completion_tokens")),
                total_tokens=_count(usage.get("total_tokens")),
            ) if isinstance(usage, dict) else None,
        )


class GeminiAdapter(ProviderAdapter):
    provider = Provider.GEMINI
    decoder_class = JsonLinesDecoder

    def build_request(self, messages, config, stream=False):
        method = "streamGenerateContent" if stream else "generateContent"
        url = GEMINI_URL_TEMPLATE.format(model=quote(config.model, safe="/-._"), method=method)
        return ProviderRequest(
            url=f"{url}?{urlencode({'key': config.api_key})}",
            headers=dict(JSON_HEADERS),
            body={
                "contents": [
                    {
                        "role": "model" if m.role == "assistant" else "user",
                        "parts": [{"text": m.content}],
                    }
                    for m in messages
                ],
                "generationConfig": {
                    "temperature": config.temperature,
                    "maxOutputTokens": config.max_tokens,
                },
            },
        )

    def parse_buffered_response(self, data, config):
        usage = dig(data, "usageMetadata")
        return ChatResult(
            content=text_at(data, "candidates", 0, "content", "parts", 0, "text"),
            model=config.model,
            provider=self.provider,
            usage=Usage(
                prompt_tokens=_count(usage.get("promptTokenCount")),
                completion_tokens=_count(usage.get("candidatesTokenCount")),
                total_tokens=_count(usage.get("totalTokenCount")),
            ) if isinstance(usage, dict) else None,
        )


class HuggingFaceAdapter(ProviderAdapter):
    provider = Provider.HUGGINGFACE
    decoder_class = TokenEventDecoder

    @staticmethod
    def format_prompt(messages) -> str:
        """Flatten the history into one prompt; roles survive only as text."""
        return "\n".join(f"{m.role}: {m.content}" for m in messages)

    def build_request(self, messages, config, stream=False):
        parameters = {
            "max_new_tokens": config.max_tokens,
            "temperature": config.temperature,
        }
        body = {"inputs": self.format_prompt(messages), "parameters": parameters}
        if stream:
            parameters["details"] = True
            body["stream"] = True
        return ProviderRequest(
            url=HUGGINGFACE_URL_TEMPLATE.format(model=config.model),
            headers=self._bearer_headers(config.api_key),
            body=body,
        )

    def parse_buffered_response(self, data, config):
        if isinstance(data, list):
            content = text_at(data, 0, "generated_text")
        else:
            content = text_at(data, "generated_text")
        return ChatResult(content=content, model=config.model, provider=self.provider)


ADAPTERS = {
    Provider.GROQ: GroqAdapter,
    Provider.GEMINI: GeminiAdapter,
    Provider.HUGGINGFACE: HuggingFaceAdapter,
}


def get_adapter(provider) -> ProviderAdapter:
    """Return a fresh adapter instance for `provider`."""
    return ADAPTERS[Provider.parse(provider)]()
