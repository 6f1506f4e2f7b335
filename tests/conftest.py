import pytest

from chatbridge.llm.client import ChatbotClient


class FakeByteSource:
    """Byte source double: yields `chunks`, then optionally raises `error`."""

    def __init__(self, chunks=(), error=None):
        self.chunks = list(chunks)
        self.error = error
        self.reads = 0
        self.closed = False

    def __iter__(self):
        for chunk in self.chunks:
            self.reads += 1
            yield chunk
        if self.error is not None:
            raise self.error

    def close(self):
        self.closed = True


class FakeTransport:
    """Transport double recording every request."""

    def __init__(self, json_body=None, chunks=(), error=None, stream_error=None):
        self.json_body = json_body
        self.chunks = chunks
        self.error = error
        self.stream_error = stream_error
        self.requests = []
        self.sources = []

    def request_json(self, request, provider_label="Provider", cancel_token=None):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.json_body

    def open_stream(self, request, provider_label="Provider", cancel_token=None):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        source = FakeByteSource(self.chunks, self.stream_error)
        self.sources.append(source)
        return source


class Recorder:
    """Collects sink callbacks in call order."""

    def __init__(self):
        self.events = []

    def on_chunk(self, text):
        self.events.append(("chunk", text))

    def on_error(self, error):
        self.events.append(("error", error))

    def on_complete(self):
        self.events.append(("complete", None))

    @property
    def text(self):
        return "".join(value for kind, value in self.events if kind == "chunk")

    def count(self, kind):
        return sum(1 for k, _ in self.events if k == kind)

    def callbacks(self):
        return {
            "on_chunk": self.on_chunk,
            "on_error": self.on_error,
            "on_complete": self.on_complete,
        }


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def make_client():
    def _make(provider="groq", transport=None, **kwargs):
        transport = transport if transport is not None else FakeTransport()
        return ChatbotClient(provider, "secret-key", transport=transport, **kwargs), transport

    return _make
