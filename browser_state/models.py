"""Shared models for the browser session-state runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TypedDict


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class SessionConfig:
    """Immutable session-level configuration."""

    headless: bool = True
    timeout_ms: int = 30000
    output_dir: str = "/tmp/browser_state"
    max_tabs_to_track: Optional[int] = None
    console_buffer_size: int = 1000
    keep_context_alive: bool = False
    cdp_endpoint: Optional[str] = None
    accept_downloads: bool = True

    @classmethod
    def from_env(cls) -> SessionConfig:
        max_tabs_raw = os.environ.get("BROWSER_STATE_MAX_TABS", "").strip()
        return cls(
            headless=_env_flag("BROWSER_STATE_HEADLESS", True),
            timeout_ms=int(os.environ.get("BROWSER_STATE_TIMEOUT_MS", "30000")),
            output_dir=os.environ.get("BROWSER_STATE_OUTPUT_DIR", "/tmp/browser_state"),
            max_tabs_to_track=int(max_tabs_raw) if max_tabs_raw else None,
            console_buffer_size=int(os.environ.get("BROWSER_STATE_CONSOLE_BUFFER", "1000")),
            keep_context_alive=_env_flag("BROWSER_STATE_KEEP_ALIVE", False),
            cdp_endpoint=os.environ.get("BROWSER_STATE_CDP_ENDPOINT") or None,
            accept_downloads=_env_flag("BROWSER_STATE_ACCEPT_DOWNLOADS", True),
        )


@dataclass(frozen=True)
class ConsoleMessage:
    """One browser console entry, kept in emission order."""

    type: Optional[str]
    text: str

    def __str__(self) -> str:
        if not self.type:
            return self.text
        return f"[{self.type.upper()}] {self.text}"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}

    @classmethod
    def from_wire(cls, value: Any) -> ConsoleMessage:
        """Rebuild a message from its stored form (dict or bare string)."""
        if isinstance(value, ConsoleMessage):
            return value
        if isinstance(value, dict):
            msg_type = value.get("type")
            return cls(
                type=str(msg_type) if msg_type is not None else None,
                text=str(value.get("text") or ""),
            )
        return cls(type=None, text=str(value))


@dataclass
class DownloadEntry:
    """A download started by a tab, saved into the session output dir."""

    download: Any
    output_file: str
    finished: bool = False


@dataclass
class TabSnapshot:
    """Structural capture of one tab for inclusion in a tool response."""

    url: str
    title: str
    aria_snapshot: str
    modal_states: List[Any] = field(default_factory=list)
    console_messages: List[ConsoleMessage] = field(default_factory=list)
    downloads: List[DownloadEntry] = field(default_factory=list)


class LocalStorageItem(TypedDict):
    name: str
    value: str


class OriginStorage(TypedDict):
    origin: str
    localStorage: List[LocalStorageItem]


class BrowserStorageState(TypedDict):
    cookies: List[Dict[str, Any]]
    origins: List[OriginStorage]


class SerializedTab(TypedDict):
    url: str
    title: str
    index: int
    recentConsoleMessages: List[Dict[str, Any]]


class StateMetadata(TypedDict):
    lastUpdated: str
    serializedBy: str


class SerializedState(TypedDict):
    version: int
    browserStorageState: Optional[BrowserStorageState]
    tabs: List[SerializedTab]
    currentTabIndex: int
    metadata: StateMetadata
