"""HTTP transport for provider requests.

Architectural role:
    Executes `ProviderRequest` objects built by `chatbridge.llm.adapters` and hands
    back either a parsed JSON body (buffered calls) or a `ByteStream` (streaming
    calls). Provider semantics are not interpreted here.

Retry behavior:
    No retry loop is implemented. Each HTTP call is attempted once with
    `DEFAULT_TIMEOUT` seconds for connect and read.

Cancellation:
    With a `CancelToken`, the send phase (connect and wait for headers) runs on a
    daemon worker thread while the caller waits on the token. Cancelling returns
    `RequestCancelledError` at once; a response that arrives later is closed
    unread.
    After headers, the token is bound to the in-flight `requests.Response`.
    Cancelling closes that response from the calling thread, which aborts a
    blocked read. Every request is sent with `stream=True` so buffered bodies are
    read in chunks and stay cancellable too.

Failure handling model:
    - Non-2xx status -> `ProviderError` (status, reason, raw body).
    - `requests` exceptions -> `TransportError`.
    - Any failure after cancellation -> `RequestCancelledError`.

Security considerations:
    Only `ProviderRequest.redacted_url` is logged; query-string credentials and
    headers never reach the log.
"""

import json
import logging
import threading

import requests

from chatbridge.llm.errors import ProviderError, RequestCancelledError, TransportError
from chatbridge.llm.provider_config import DEFAULT_TIMEOUT


logger = logging.getLogger(__name__)


CHUNK_SIZE = 1024
SEND_POLL_INTERVAL = 0.05


class CancelToken:
    """Thread-safe cancellation signal for one chat call."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._response = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation and abort the bound response, if any."""
        with self._lock:
            self._event.set()
            response = self._response
        if response is not None:
            response.close()

    def wait(self, timeout=None) -> bool:
        """Block until cancelled or `timeout` elapses; returns `cancelled`."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelledError("Request cancelled")

    def bind(self, response) -> None:
        """Attach the in-flight response; closes it at once if already cancelled."""
        with self._lock:
            self._response = response
            cancelled = self._event.is_set()
        if cancelled:
            response.close()

    def unbind(self, response) -> None:
        with self._lock:
            if self._response is response:
                self._response = None


def _translate(exc, cancel_token):
    """Map a read/send failure to the package error taxonomy."""
    if cancel_token is not None and cancel_token.cancelled:
        return RequestCancelledError("Request cancelled")
    return TransportError(f"HTTP transport failure: {exc}")


class _PendingSend:
    """One `session.post` running on a daemon thread.

    `abandon()` hands back the response if it already arrived; otherwise the
    worker closes it as soon as it does.
    """

    def __init__(self, send):
        self.finished = threading.Event()
        self.response = None
        self.error = None
        self._abandoned = False
        self._lock = threading.Lock()
        threading.Thread(target=self._run, args=(send,), daemon=True).start()

    def _run(self, send):
        response = error = None
        try:
            response = send()
        except Exception as exc:
            error = exc
        with self._lock:
            self.response, self.error = response, error
            abandoned = self._abandoned
            self.finished.set()
        if abandoned and response is not None:
            response.close()

    def abandon(self):
        with self._lock:
            if not self.finished.is_set():
                self._abandoned = True
                return None
            return self.response


class ByteStream:
    """Iterable of raw body chunks for one streaming response.

    Usable as a context manager. `close()` is idempotent and releases the
    connection back to the pool.
    """

    def __init__(self, response, cancel_token=None, chunk_size=CHUNK_SIZE):
        self._response = response
        self._cancel_token = cancel_token
        self._chunk_size = chunk_size
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __iter__(self):
        token = self._cancel_token
        try:
            for chunk in self._response.iter_content(chunk_size=self._chunk_size):
                if token is not None:
                    token.raise_if_cancelled()
                if chunk:
                    yield chunk
            if token is not None:
                token.raise_if_cancelled()
        except TransportError:
            raise
        except requests.exceptions.RequestException as exc:
            raise _translate(exc, token) from exc
        except (OSError, ValueError, AttributeError) as exc:
            # A response closed from another thread surfaces as one of these.
            if self.closed or (token is not None and token.cancelled):
                raise _translate(exc, token) from exc
            raise

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._cancel_token is not None:
            self._cancel_token.unbind(self._response)
        self._response.close()


class HttpTransport:
    """`requests`-based transport used by `ChatbotClient`.

    Args:
        session: Optional `requests.Session` (connection pooling, test doubles).
        timeout: Connect/read timeout in seconds.
    """

    def __init__(self, session=None, timeout=DEFAULT_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def _post(self, request):
        return self.session.post(
            request.url,
            headers=request.headers,
            json=request.body,
            stream=True,
            timeout=self.timeout,
        )

    def _post_cancellable(self, request, cancel_token):
        pending = _PendingSend(lambda: self._post(request))
        while not pending.finished.wait(SEND_POLL_INTERVAL):
            if cancel_token.cancelled:
                late = pending.abandon()
                if late is not None:
                    late.close()
                logger.debug("Send cancelled before headers: %s", request.redacted_url)
                raise RequestCancelledError("Request cancelled")
        if pending.error is not None:
            raise pending.error
        return pending.response

    def _send(self, request, provider_label, cancel_token):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        logger.debug("POST %s", request.redacted_url)
        try:
            if cancel_token is None:
                response = self._post(request)
            else:
                response = self._post_cancellable(request, cancel_token)
        except requests.exceptions.RequestException as exc:
            raise _translate(exc, cancel_token) from exc

        if cancel_token is not None:
            cancel_token.bind(response)

        if not 200 <= response.status_code < 300:
            try:
                body = self._read_body(response, cancel_token)
            finally:
                self._release(response, cancel_token)
            raise ProviderError(
                provider_label,
                response.status_code,
                response.reason,
                body.decode("utf-8", errors="replace"),
            )
        return response

    def _read_body(self, response, cancel_token) -> bytes:
        with ByteStream(response, cancel_token) as chunks:
            return b"".join(chunks)

    def _release(self, response, cancel_token):
        if cancel_token is not None:
            cancel_token.unbind(response)
        response.close()

    def request_json(self, request, provider_label="Provider", cancel_token=None):
        """Perform one buffered round trip.

        Returns:
            Parsed JSON body, or `None` when the body is not valid JSON.

        Raises:
            ProviderError: Non-2xx status.
            TransportError: Network failure (`RequestCancelledError` on cancel).
        """
        response = self._send(request, provider_label, cancel_token)
        try:
            raw = self._read_body(response, cancel_token)
        finally:
            self._release(response, cancel_token)
        try:
            return json.loads(raw.decode("utf-8", errors="replace"))
        except ValueError:
            logger.warning(
                "%s returned a non-JSON body from %s", provider_label, request.redacted_url
            )
            return None

    def open_stream(self, request, provider_label="Provider", cancel_token=None) -> ByteStream:
        """Send a streaming request and return its body as a `ByteStream`.

        Raises:
            ProviderError: Non-2xx status (body is read and the response closed).
            TransportError: Network failure (`RequestCancelledError` on cancel).
        """
        response = self._send(request, provider_label, cancel_token)
        return ByteStream(response, cancel_token)
