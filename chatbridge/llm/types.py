"""Provider-agnostic data contracts for the LLM layer.

Architectural role:
    Defines the message, configuration, result, request, and stream-event shapes
    shared by `provider_config`, `adapters`, `decoders`, `transport`, and the
    `client` facade. Nothing in this module performs I/O.

Mutability:
    - `Message`, `ChatResult`, `Usage`, `ProviderRequest`, `ClientConfig` and the
      stream events are frozen.
    - `GenerationConfig` is mutable and owned exclusively by `ChatbotClient`.

Security considerations:
    `GenerationConfig.api_key` is excluded from `repr` and never copied into
    `ClientConfig`.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Union
from urllib.parse import urlsplit, urlunsplit


ROLES = ("user", "assistant", "system")


class Provider(str, Enum):
    """Closed set of supported provider families."""

    GROQ = "groq"
    GEMINI = "gemini"
    HUGGINGFACE = "huggingface"

    @classmethod
    def parse(cls, value):
        """Resolve a `Provider` from an enum member or case-insensitive name.

        Raises:
            ValueError: Unknown provider label.
        """
        if isinstance(value, cls):
            return value
        label = str(value or "").strip().lower()
        for member in cls:
            if member.value == label:
                return member
        raise ValueError(f"Unsupported provider: {value!r}")

    @property
    def label(self) -> str:
        return {
            Provider.GROQ: "Groq",
            Provider.GEMINI: "Gemini",
            Provider.HUGGINGFACE: "HuggingFace",
        }[self]


@dataclass(frozen=True)
class Message:
    """One conversation turn.

    Attributes:
        role: `user`, `assistant` or `system`.
        content: Plain text content.
    """

    role: str
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid message role: {self.role!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        return cls(role=str(data.get("role", "")), content=str(data.get("content") or ""))

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


MessageLike = Union[Message, Mapping[str, Any]]


def coerce_messages(messages: Optional[Iterable[MessageLike]]) -> list:
    """Normalize an iterable of `Message` objects or role/content mappings."""
    out = []
    for item in messages or []:
        if isinstance(item, Message):
            out.append(item)
        else:
            out.append(Message.from_dict(item))
    return out


@dataclass(frozen=True)
class Usage:
    """Token counters reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class ChatResult:
    """Normalized result of one buffered chat call."""

    content: str
    model: str
    provider: Provider
    usage: Optional[Usage] = None

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "model": self.model,
            "provider": self.provider.value,
            "usage": self.usage.to_dict() if self.usage is not None else None,
        }


@dataclass
class GenerationConfig:
    """Full generation settings, credential included.

    Only `model`, `temperature` and `max_tokens` change after construction.
    """

    provider: Provider
    api_key: str = field(repr=False)
    model: str
    temperature: float = 0.7
    max_tokens: int = 2048

    def public(self) -> "ClientConfig":
        return ClientConfig(
            provider=self.provider,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )


@dataclass(frozen=True)
class ClientConfig:
    """Credential-free configuration snapshot returned by `get_config()`."""

    provider: Provider
    model: str
    temperature: float
    max_tokens: int

    def to_dict(self) -> dict:
        return {
            "provider": self.provider.value,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }


@dataclass(frozen=True)
class ProviderRequest:
    """Provider-specific HTTP request produced by an adapter."""

    url: str
    headers: dict
    body: dict

    @property
    def redacted_url(self) -> str:
        """URL without query string, safe to log."""
        parts = urlsplit(self.url)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


# =========================================================
# Stream events
# =========================================================

@dataclass(frozen=True)
class TextDelta:
    """Incremental fragment of generated text."""

    text: str


@dataclass(frozen=True)
class StreamComplete:
    """End of a stream that finished normally."""


@dataclass(frozen=True)
class StreamError:
    """Terminal failure of a stream."""

    cause: BaseException


StreamEvent = Union[TextDelta, StreamComplete, StreamError]


class StreamSink:
    """Dispatches stream events to caller callbacks.

    Guarantees at most one terminal callback: once `on_complete` or `on_error`
    has fired, later terminal events are dropped. Text deltas arriving after a
    terminal event are dropped as well.
    """

    def __init__(
        self,
        on_chunk: Optional[Callable[[str], Any]] = None,
        on_error: Optional[Callable[[BaseException], Any]] = None,
        on_complete: Optional[Callable[[], Any]] = None,
    ):
        self.on_chunk = on_chunk
        self.on_error = on_error
        self.on_complete = on_complete
        self.terminated = False
        self.error = None

    def emit(self, event: StreamEvent) -> None:
        if self.terminated:
            return
        if isinstance(event, TextDelta):
            if self.on_chunk is not None:
                self.on_chunk(event.text)
        elif isinstance(event, StreamComplete):
            self.terminated = True
            if self.on_complete is not None:
                self.on_complete()
        elif isinstance(event, StreamError):
            self.terminated = True
            self.error = event.cause
            if self.on_error is not None:
                self.on_error(event.cause)
        else:
            raise TypeError(f"Unknown stream event: {event!r}")
