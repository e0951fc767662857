"""Bounded per-tab console history."""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Iterable, List

from .models import ConsoleMessage

DEFAULT_CONSOLE_BUFFER_SIZE = 1000


def console_message_from_event(msg: Any) -> ConsoleMessage:
    """Normalize a Playwright ``ConsoleMessage`` into our immutable record."""
    msg_type = getattr(msg, "type", None)
    text = getattr(msg, "text", "")
    if callable(msg_type):
        msg_type = msg_type()
    if callable(text):
        text = text()
    return ConsoleMessage(
        type=str(msg_type) if msg_type is not None else None,
        text=str(text or ""),
    )


def console_message_from_page_error(err: Any) -> ConsoleMessage:
    message = getattr(err, "message", None)
    return ConsoleMessage(type="error", text=str(message if message is not None else err))


class ConsoleMessageBuffer:
    """Keep the most recent console messages for one tab."""

    def __init__(self, max_size: int = DEFAULT_CONSOLE_BUFFER_SIZE):
        if max_size <= 0:
            raise ValueError("Console buffer size must be positive")
        self.max_size = int(max_size)
        self._messages: Deque[ConsoleMessage] = deque(maxlen=self.max_size)

    def __len__(self) -> int:
        return len(self._messages)

    def record(self, message: ConsoleMessage) -> None:
        self._messages.append(message)

    def messages(self) -> List[ConsoleMessage]:
        return list(self._messages)

    def tail(self, count: int) -> List[ConsoleMessage]:
        if count <= 0:
            return []
        items = list(self._messages)
        return items[-count:]

    def replace(self, messages: Iterable[Any]) -> None:
        """Swap the history for stored messages (hydration)."""
        self._messages.clear()
        for item in messages:
            self._messages.append(ConsoleMessage.from_wire(item))

    def clear(self) -> None:
        self._messages.clear()
