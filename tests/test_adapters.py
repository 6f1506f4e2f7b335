import pytest

from chatbridge.llm.adapters import (
    GeminiAdapter,
    GroqAdapter,
    HuggingFaceAdapter,
    get_adapter,
)
from chatbridge.llm.decoders import EventStreamDecoder, JsonLinesDecoder, TokenEventDecoder
from chatbridge.llm.types import GenerationConfig, Message, Provider, Usage


HISTORY = [Message("user", "hi"), Message("assistant", "hello")]


def config_for(provider, model, api_key="secret-key"):
    return GenerationConfig(
        provider=provider, api_key=api_key, model=model, temperature=0.3, max_tokens=64
    )


GROQ = config_for(Provider.GROQ, "mixtral-8x7b-32768")
GEMINI = config_for(Provider.GEMINI, "gemini-2.0-flash")
HF = config_for(Provider.HUGGINGFACE, "mistralai/Mistral-7B-Instruct-v0.1")


# =========================================================
# Request building
# =========================================================

def test_groq_request_keeps_roles_and_uses_bearer():
    request = GroqAdapter().build_request(HISTORY, GROQ)

    assert request.url == "https://api.groq.com/openai/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer secret-key"
    assert request.body == {
        "model": "mixtral-8x7b-32768",
        "messages": [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ],
        "temperature": 0.3,
        "max_tokens": 64,
    }


def test_groq_stream_request_sets_stream_flag():
    request = GroqAdapter().build_request(HISTORY, GROQ, stream=True)

    assert request.body["stream"] is True


def test_gemini_request_remaps_roles_into_parts():
    history = [Message("system", "be brief")] + HISTORY

    request = GeminiAdapter().build_request(history, GEMINI)

    assert request.body == {
        "contents": [
            {"role": "user", "parts": [{"text": "be brief"}]},
            {"role": "user", "parts": [{"text": "hi"}]},
            {"role": "model", "parts": [{"text": "hello"}]},
        ],
        "generationConfig": {"temperature": 0.3, "maxOutputTokens": 64},
    }


def test_gemini_key_travels_as_query_parameter():
    adapter = GeminiAdapter()

    buffered = adapter.build_request(HISTORY, GEMINI)
    streaming = adapter.build_request(HISTORY, GEMINI, stream=True)

    base = "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash"
    assert buffered.url == base + ":generateContent?key=secret-key"
    assert streaming.url == base + ":streamGenerateContent?key=secret-key"
    assert "Authorization" not in buffered.headers
    assert buffered.redacted_url == base + ":generateContent"


def test_huggingface_flattens_history_into_prompt():
    request = HuggingFaceAdapter().build_request(HISTORY, HF)

    assert request.url == (
        "https://api-inference.huggingface.co/models/mistralai/Mistral-7B-Instruct-v0.1"
    )
    assert request.headers["Authorization"] == "Bearer secret-key"
    assert request.body == {
        "inputs": "user: hi\nassistant: hello",
        "parameters": {"max_new_tokens": 64, "temperature": 0.3},
    }


def test_huggingface_stream_request_asks_for_details():
    request = HuggingFaceAdapter().build_request(HISTORY, HF, stream=True)

    assert request.body["stream"] is True
    assert request.body["parameters"]["details"] is True


@pytest.mark.parametrize(
    "adapter,config,in_url,in_header",
    [
        (GroqAdapter(), GROQ, False, True),
        (GeminiAdapter(), GEMINI, True, False),
        (HuggingFaceAdapter(), HF, False, True),
    ],
)
@pytest.mark.parametrize("stream", [False, True])
def test_credential_appears_only_in_its_auth_slot(adapter, config, in_url, in_header, stream):
    request = adapter.build_request(HISTORY, config, stream=stream)

    header_values = " ".join(request.headers.values())
    assert ("secret-key" in request.url) is in_url
    assert ("secret-key" in header_values) is in_header
    assert "secret-key" not in repr(request.body)
    assert "x-goog-api-key" not in {k.lower() for k in request.headers}


# =========================================================
# Buffered response parsing
# =========================================================

def test_groq_parses_content_model_and_usage():
    data = {
        "model": "llama3-70b-8192",
        "choices": [{"message": {"role": "assistant", "content": "Hi there"}}],
        "usage": {"prompt_tokens": 5, "completion_tokens": 3, "total_tokens": 8},
    }

    result = GroqAdapter().parse_buffered_response(data, GROQ)

    assert result.content == "Hi there"
    assert result.model == "llama3-70b-8192"
    assert result.provider is Provider.GROQ
    assert result.usage == Usage(prompt_tokens=5, completion_tokens=3, total_tokens=8)


def test_groq_missing_fields_degrade_to_empty():
    result = GroqAdapter().parse_buffered_response({"choices": []}, GROQ)

    assert result.content == ""
    assert result.model == GROQ.model
    assert result.usage is None


def test_gemini_parses_text_and_usage_metadata():
    data = {
        "candidates": [{"content": {"role": "model", "parts": [{"text": "Bonjour"}]}}],
        "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 2, "totalTokenCount": 6},
    }

    result = GeminiAdapter().parse_buffered_response(data, GEMINI)

    assert result.content == "Bonjour"
    assert result.model == "gemini-2.0-flash"
    assert result.usage == Usage(prompt_tokens=4, completion_tokens=2, total_tokens=6)


def test_gemini_blocked_prompt_yields_empty_content():
    data = {"promptFeedback": {"blockReason": "SAFETY"}}

    result = GeminiAdapter().parse_buffered_response(data, GEMINI)

    assert result.content == ""
    assert result.usage is None


@pytest.mark.parametrize(
    "data,expected",
    [
        ([{"generated_text": "list form"}], "list form"),
        ({"generated_text": "dict form"}, "dict form"),
        ([], ""),
        ({"error": "loading"}, ""),
        (None, ""),
        ([{"generated_text": 42}], ""),
    ],
)
def test_huggingface_response_shapes(data, expected):
    result = HuggingFaceAdapter().parse_buffered_response(data, HF)

    assert result.content == expected
    assert result.provider is Provider.HUGGINGFACE
    assert result.usage is None


def test_non_integer_usage_counts_as_zero():
    data = {"choices": [{"message": {"content": "x"}}], "usage": {"prompt_tokens": "5"}}

    result = GroqAdapter().parse_buffered_response(data, GROQ)

    assert result.usage == Usage(prompt_tokens=0, completion_tokens=0, total_tokens=0)


# =========================================================
# Selection
# =========================================================

@pytest.mark.parametrize(
    "provider,adapter_class,decoder_class",
    [
        ("groq", GroqAdapter, EventStreamDecoder),
        ("GEMINI", GeminiAdapter, JsonLinesDecoder),
        (Provider.HUGGINGFACE, HuggingFaceAdapter, TokenEventDecoder),
    ],
)
def test_get_adapter_selects_by_provider(provider, adapter_class, decoder_class):
    adapter = get_adapter(provider)

    assert isinstance(adapter, adapter_class)
    assert isinstance(adapter.create_decoder(), decoder_class)


def test_get_adapter_rejects_unknown_provider():
    with pytest.raises(ValueError):
        get_adapter("openai")
