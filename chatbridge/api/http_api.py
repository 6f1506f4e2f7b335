"""
HTTP API adapter for chatbridge.

Architectural role:
- Expose `ChatbotClient` chat, streaming chat and configuration over HTTP.
- Validate request bodies with pydantic models.
- Map package errors to HTTP status codes.

Endpoint responsibilities:
- `GET /v1/config`: current generation settings (never the credential).
- `PATCH /v1/config`: update model / temperature / max_tokens.
- `POST /v1/chat`: buffered JSON answer, or SSE when `stream` is true.

Streaming response formatting:
- `data: {"content": "..."}` per text delta.
- `data: {"error": "...", "cancelled": bool}` once on failure.
- `data: [DONE]` once on normal completion.

Error handling strategy:
- Empty message list / invalid role / invalid config values -> 400.
- `ProviderError` -> 502, `TransportError` -> 504 (buffered mode only;
  in stream mode errors arrive as an SSE error frame).
- Client disconnects (polled while the stream is idle, or delivered as task
  cancellation) stop the SSE generator, which cancels the upstream request.

Side effects:
- Builds one process-wide client from the environment on first use.
"""

from dotenv import load_dotenv

load_dotenv()

import asyncio
import json
import logging
import threading
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from chatbridge.llm.errors import ConfigurationError, ProviderError, TransportError
from chatbridge.llm.service import client_from_env
from chatbridge.llm.transport import CancelToken
from chatbridge.llm.types import Message


logger = logging.getLogger(__name__)

app = FastAPI(title="chatbridge")


# ============================================================
# Client lifecycle
# ============================================================

_client = None
_client_lock = threading.Lock()


def get_client():
    """Return the process-wide client, building it from the environment once."""
    global _client
    with _client_lock:
        if _client is None:
            try:
                _client = client_from_env()
            except ConfigurationError as e:
                raise HTTPException(status_code=503, detail=str(e))
        return _client


# ============================================================
# Request schemas
# ============================================================

class MessageIn(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    messages: List[MessageIn]
    stream: bool = False


class ConfigUpdate(BaseModel):
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


def to_messages(request: ChatRequest):
    if not request.messages:
        raise HTTPException(status_code=400, detail="No messages provided")
    try:
        return [Message(role=m.role, content=m.content) for m in request.messages]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ============================================================
# Configuration
# ============================================================

@app.get("/v1/config")
def read_config(client=Depends(get_client)):
    return client.get_config().to_dict()


@app.patch("/v1/config")
def update_config(update: ConfigUpdate, client=Depends(get_client)):
    try:
        client.update_config(
            model=update.model,
            temperature=update.temperature,
            max_tokens=update.max_tokens,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return client.get_config().to_dict()


# ============================================================
# Chat
# ============================================================

def sse(payload) -> str:
    if isinstance(payload, str):
        return f"data: {payload}\n\n"
    return f"data: {json.dumps(payload)}\n\n"


_END = object()

DISCONNECT_POLL_INTERVAL = 0.5


async def stream_events(client, messages, token, http_request=None):
    """Yield SSE frames while `client.chat_stream` runs on a worker thread.

    - Worker callbacks hand events to the event loop through an `asyncio.Queue`.
    - While no event is pending, `http_request.is_disconnected()` is polled.
    - Disconnect, task cancellation or `aclose()` all cancel `token`.
    """
    loop = asyncio.get_running_loop()
    events = asyncio.Queue()

    def push(kind, value=None):
        try:
            loop.call_soon_threadsafe(events.put_nowait, (kind, value))
        except RuntimeError:
            # Event loop already closed: the stream was abandoned.
            logger.debug("Dropping %s event for a closed stream", kind)

    def run():
        try:
            client.chat_stream(
                messages,
                on_chunk=lambda text: push("chunk", text),
                on_error=lambda error: push("error", error),
                on_complete=lambda: push("complete"),
                cancel_token=token,
            )
        finally:
            push(_END)

    worker = threading.Thread(target=run, daemon=True)
    worker.start()
    try:
        while True:
            try:
                kind, value = await asyncio.wait_for(events.get(), DISCONNECT_POLL_INTERVAL)
            except asyncio.TimeoutError:
                if http_request is not None and await http_request.is_disconnected():
                    logger.info("Client disconnected during stream")
                    break
                continue
            if kind is _END:
                break
            if kind == "chunk":
                yield sse({"content": value})
            elif kind == "error":
                yield sse({"error": str(value), "cancelled": bool(getattr(value, "cancelled", False))})
            elif kind == "complete":
                yield sse("[DONE]")
    finally:
        token.cancel()


@app.post("/v1/chat")
def chat(request: ChatRequest, http_request: Request, client=Depends(get_client)):
    """Chat endpoint.

    Non-stream response: `{content, model, provider, usage}`.
    Stream response: `text/event-stream` frames as documented in the module header.
    """
    messages = to_messages(request)

    if request.stream:
        token = CancelToken()
        return StreamingResponse(
            stream_events(client, messages, token, http_request),
            media_type="text/event-stream",
        )

    try:
        result = client.chat(messages)
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except TransportError as e:
        raise HTTPException(status_code=504, detail=str(e))
    return result.to_dict()
