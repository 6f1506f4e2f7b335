"""Incremental stream decoders for the three provider framings.

Architectural role:
    Turns a raw byte stream (arbitrary chunk boundaries) into an ordered sequence of
    `TextDelta`, `StreamComplete` and `StreamError` events. Adapters pick the decoder;
    `drive_stream` runs it against a byte source and a `StreamSink`.

State machine:
    READING   -> DRAINING  (end of input: flush partial bytes and the last line)
    DRAINING  -> COMPLETED (exactly one `StreamComplete`)
    READING   -> COMPLETED (event-prefixed `[DONE]` sentinel)
    READING   -> FAILED    (transport read failure, one `StreamError`)
    COMPLETED and FAILED are terminal; feeding or finishing a terminal decoder
    yields nothing.

Framing:
    - `EventStreamDecoder`: OpenAI-compatible SSE. Only `data: ` lines are records,
      `[DONE]` ends the stream, `choices[0].delta.content` is the delta.
    - `JsonLinesDecoder`: one JSON object per line,
      `candidates[0].content.parts[0].text` is the delta.
    - `TokenEventDecoder`: one JSON token event per line (optionally `data:`
      prefixed), `token.text` is the delta.

Malformed records:
    A record that is not a JSON object is skipped. The skip is counted on
    `decoder.skipped` and logged at debug level; it never terminates the stream.

Determinism:
    Output depends only on the byte sequence, not on how it was chunked.
"""

import codecs
import json
import logging
from enum import Enum

from chatbridge.llm.errors import TransportError
from chatbridge.llm.types import StreamComplete, StreamError, TextDelta


logger = logging.getLogger(__name__)


class StreamState(Enum):
    READING = "reading"
    DRAINING = "draining"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = (StreamState.COMPLETED, StreamState.FAILED)


def dig(data, *path, default=None):
    """Walk dict keys / list indexes in `path`, returning `default` on any miss.

    Example:
        `dig(obj, "choices", 0, "delta", "content", default="")`
    """
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return default
            current = current[key]
        else:
            if not isinstance(current, dict) or key not in current:
                return default
            current = current[key]
    if current is None:
        return default
    return current


def text_at(data, *path) -> str:
    """`dig` for text fields: anything that is not a string becomes `""`."""
    value = dig(data, *path, default="")
    return value if isinstance(value, str) else ""


class LineStreamDecoder:
    """Shared machinery: incremental UTF-8 decoding and newline record splitting.

    Subclasses implement `_handle_record(line)`, returning an iterable of events.
    """

    def __init__(self):
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self.state = StreamState.READING
        self.skipped = 0

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def feed(self, chunk: bytes):
        """Decode one chunk of bytes and yield events for every complete record.

        A trailing partial line, and a trailing partial multi-byte character, are
        kept until the next call.
        """
        if self.done:
            return
        self._pending += self._utf8.decode(chunk)
        lines = self._pending.split("\n")
        self._pending = lines.pop()
        for line in lines:
            if self.done:
                # Records after the sentinel are not delivered.
                self._pending = ""
                return
            yield from self._handle_record(line.rstrip("\r"))

    def finish(self):
        """End of input: flush the remainder and yield exactly one completion."""
        if self.done:
            return
        self.state = StreamState.DRAINING
        tail = self._pending + self._utf8.decode(b"", final=True)
        self._pending = ""
        if tail:
            yield from self._handle_record(tail.rstrip("\r"))
        if self.state is StreamState.DRAINING:
            self.state = StreamState.COMPLETED
            yield StreamComplete()

    def fail(self, cause: BaseException):
        """Move to FAILED and yield one `StreamError`."""
        if self.done:
            return
        self.state = StreamState.FAILED
        self._pending = ""
        yield StreamError(cause)

    def _complete(self):
        self.state = StreamState.COMPLETED
        return StreamComplete()

    def _parse(self, payload: str):
        """Parse one record payload; `None` means skip."""
        try:
            obj = json.loads(payload)
        except ValueError:
            obj = None
        if not isinstance(obj, dict):
            self.skipped += 1
            logger.debug("Skipping malformed stream record: %.80r", payload)
            return None
        return obj

    def _handle_record(self, line: str):
        raise NotImplementedError


class EventStreamDecoder(LineStreamDecoder):
    """OpenAI-compatible `data: ` framing with the `[DONE]` sentinel."""

    PREFIX = "data: "
    SENTINEL = "[DONE]"

    def _handle_record(self, line):
        if not line.startswith(self.PREFIX):
            return
        payload = line[len(self.PREFIX):]
        if payload.strip() == self.SENTINEL:
            yield self._complete()
            return
        obj = self._parse(payload)
        if obj is None:
            return
        text = text_at(obj, "choices", 0, "delta", "content")
        if text:
            yield TextDelta(text)


class JsonLinesDecoder(LineStreamDecoder):
    """One JSON object per line (Gemini `streamGenerateContent`)."""

    def _handle_record(self, line):
        if not line.strip():
            return
        obj = self._parse(line)
        if obj is None:
            return
        text = text_at(obj, "candidates", 0, "content", "parts", 0, "text")
        if text:
            yield TextDelta(text)


class TokenEventDecoder(LineStreamDecoder):
    """One token event per line (HuggingFace text-generation streaming)."""

    def _handle_record(self, line):
        payload = line.strip()
        if not payload:
            return
        if payload.startswith("data:"):
            payload = payload[len("data:"):].strip()
        obj = self._parse(payload)
        if obj is None:
            return
        text = text_at(obj, "token", "text")
        if text:
            yield TextDelta(text)


def _release(source):
    close = getattr(source, "close", None)
    if close is not None:
        close()


def drive_stream(decoder: LineStreamDecoder, byte_source, sink):
    """Run `decoder` over `byte_source`, dispatching events to `sink`.

    Args:
        decoder: Fresh decoder in the READING state.
        byte_source: Iterable of `bytes` chunks. Read failures must surface as
            `TransportError` (see `chatbridge.llm.transport.ByteStream`). Closed on
            every exit path when it has a `close()` method.
        sink: `StreamSink` receiving the events.

    Returns:
        The decoder's final `StreamState` (COMPLETED or FAILED).

    Failure handling:
        - `TransportError` while reading -> FAILED, one `StreamError` to the sink.
        - Exceptions raised by sink callbacks propagate after the source is closed.
    """
    chunks = iter(byte_source)
    try:
        while not decoder.done:
            try:
                chunk = next(chunks)
            except StopIteration:
                for event in decoder.finish():
                    sink.emit(event)
                break
            except TransportError as exc:
                logger.warning("Stream read failed: %s", exc)
                for event in decoder.fail(exc):
                    sink.emit(event)
                break
            for event in decoder.feed(chunk):
                sink.emit(event)
    finally:
        if chunks is not byte_source:
            _release(chunks)
        _release(byte_source)
    if decoder.skipped:
        logger.debug("Stream finished with %d skipped record(s)", decoder.skipped)
    return decoder.state
