"""Short-term chat session buffer.

Purpose of this abstraction:
    Keep the active conversation as a thread-safe in-memory list so terminal and
    HTTP adapters can hand a complete history to `ChatbotClient` on every turn.

Persistence:
    None. The buffer lives for the process; starting a new session discards it.

Message identity:
    Each stored message gets an id (`msg_<ms>_<random>`) so a streaming answer can
    be created empty and filled in as deltas arrive.
"""

import random
import string
import threading
import time
from dataclasses import dataclass, field

from chatbridge.llm.types import ROLES, Message


def _token(prefix):
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


@dataclass
class SessionMessage:
    """Stored turn with bookkeeping fields the client does not need."""

    id: str
    role: str
    content: str
    timestamp: float = field(default_factory=time.time)
    error: str | None = None

    def to_message(self) -> Message:
        return Message(role=self.role, content=self.content)


class ChatSession:
    """In-memory conversation history for one chat session."""

    def __init__(self):
        self._lock = threading.Lock()
        self._messages = []
        self.session_id = _token("session")

    def add_message(self, role, content="") -> str:
        """Append a turn and return its id.

        Raises:
            ValueError: Unknown role.
        """
        if role not in ROLES:
            raise ValueError(f"Invalid message role: {role!r}")
        message = SessionMessage(id=_token("msg"), role=role, content=content)
        with self._lock:
            self._messages.append(message)
        return message.id

    def update_message(self, message_id, content=None, error=None) -> bool:
        """Replace content and/or error of one turn; False if the id is unknown."""
        with self._lock:
            for message in self._messages:
                if message.id == message_id:
                    if content is not None:
                        message.content = content
                    if error is not None:
                        message.error = error
                    return True
        return False

    def append_to_message(self, message_id, text) -> bool:
        with self._lock:
            for message in self._messages:
                if message.id == message_id:
                    message.content += text
                    return True
        return False

    def remove_message(self, message_id) -> bool:
        with self._lock:
            before = len(self._messages)
            self._messages = [m for m in self._messages if m.id != message_id]
            return len(self._messages) != before

    def clear(self) -> None:
        with self._lock:
            self._messages = []

    def start_new_session(self) -> str:
        """Discard the history and return the new session id."""
        with self._lock:
            self._messages = []
            self.session_id = _token("session")
            return self.session_id

    def messages(self) -> list:
        """History as `Message` objects, skipping empty or failed turns."""
        with self._lock:
            return [
                m.to_message()
                for m in self._messages
                if m.content and m.error is None
            ]

    def entries(self) -> list:
        with self._lock:
            return list(self._messages)

    def message_count(self) -> int:
        with self._lock:
            return len(self._messages)
