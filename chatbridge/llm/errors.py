"""Error taxonomy for the LLM layer.

Hierarchy:
    ChatbridgeError
    ├── ConfigurationError   invalid construction/update parameters (also a ValueError)
    ├── ProviderError        provider answered with a non-2xx status
    └── TransportError       network failure
        └── RequestCancelledError   caller-triggered cancellation

Retry behavior:
    None of these errors is retried inside the package. Retry policy belongs to the
    caller.
"""


class ChatbridgeError(Exception):
    """Base class for all package errors."""


class ConfigurationError(ChatbridgeError, ValueError):
    """Raised for a missing credential, unknown provider or out-of-range setting."""


class ProviderError(ChatbridgeError):
    """Non-2xx HTTP response from a provider.

    Attributes:
        provider: Provider label used in the message.
        status_code: HTTP status code.
        reason: HTTP status text.
        body: Raw response body text.
    """

    def __init__(self, provider: str, status_code: int, reason: str, body: str):
        self.provider = provider
        self.status_code = status_code
        self.reason = reason or ""
        self.body = body or ""
        message = f"{provider} API error: {status_code} {self.reason}".rstrip()
        if self.body:
            message = f"{message} - {self.body}"
        super().__init__(message)


class TransportError(ChatbridgeError):
    """Connection-level failure while sending a request or reading a response."""

    cancelled = False


class RequestCancelledError(TransportError):
    """The caller cancelled the request through its `CancelToken`."""

    cancelled = True
