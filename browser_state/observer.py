"""Side-channel observers for session events."""

from __future__ import annotations

import logging
from typing import Any, Optional


class SessionObserver:
    """Receives diagnostic events from the session runtime. Does nothing by default."""

    def error(self, error: BaseException, message: str, **fields: Any) -> None:
        pass

    def debug(self, message: str, **fields: Any) -> None:
        pass


NullObserver = SessionObserver


class LoggingObserver(SessionObserver):
    """Forward session events to a stdlib-style logger."""

    def __init__(self, logger: Optional[Any] = None):
        self.logger = logger if logger is not None else logging.getLogger("browser_state")

    def error(self, error: BaseException, message: str, **fields: Any) -> None:
        self.logger.warning(
            "%s: %s: %s%s",
            message,
            type(error).__name__,
            error,
            _format_fields(fields),
            exc_info=(type(error), error, error.__traceback__),
        )

    def debug(self, message: str, **fields: Any) -> None:
        self.logger.debug("%s%s", message, _format_fields(fields))


def _format_fields(fields: Any) -> str:
    if not fields:
        return ""
    return " " + " ".join(f"{k}={v!r}" for k, v in sorted(fields.items()))
