"""Externalize a ContextSession into a portable snapshot and restore it."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .models import BrowserStorageState, SerializedState, SerializedTab
from .observer import SessionObserver
from .session import ContextSession

STATE_VERSION = 1
MAX_SERIALIZED_CONSOLE_MESSAGES = 50


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _serialized_by() -> str:
    return os.environ.get("HOSTNAME") or os.environ.get("USER") or "unknown"


class SessionStateManager:
    """Serialize, validate and hydrate session state for stateless worker pools.

    ``serialize`` is read-only on both the session and the browser. ``hydrate``
    restores bookkeeping only: it never navigates, closes or recreates tabs.
    Cookies and localStorage are applied when the browser context is created
    (see ``context_options``), not by ``hydrate``.
    """

    @staticmethod
    async def serialize(
        session: ContextSession,
        max_tabs_to_track: Optional[int] = None,
        observer: Optional[SessionObserver] = None,
    ) -> SerializedState:
        """Capture the session's storage state and per-tab bookkeeping.

        When ``max_tabs_to_track`` is positive only the leading N tabs are kept.
        Pages beyond that are assumed to be extras discovered in a pooled
        browser rather than part of the logical session.
        """
        observer = observer or session.observer
        current_tab = session.current_tab()
        tabs = session.tabs()
        if max_tabs_to_track is not None and max_tabs_to_track > 0:
            tabs = tabs[:max_tabs_to_track]

        browser_storage_state: Optional[BrowserStorageState] = None
        try:
            if current_tab is not None:
                storage_state = await current_tab.page.context.storage_state()
                browser_storage_state = {
                    "cookies": list(storage_state.get("cookies") or []),
                    "origins": list(storage_state.get("origins") or []),
                }
        except Exception as e:
            # Usually a context that is already closed.
            observer.error(e, "Failed to get browser storage state")
            browser_storage_state = None

        serialized_tabs: List[SerializedTab] = []
        for index, tab in enumerate(tabs):
            serialized_tabs.append(
                {
                    "url": str(tab.page.url),
                    "title": tab.last_title(),
                    "index": index,
                    "recentConsoleMessages": [
                        m.to_dict() for m in tab.recent_console_messages(MAX_SERIALIZED_CONSOLE_MESSAGES)
                    ],
                }
            )

        current_tab_index = -1
        for index, tab in enumerate(tabs):
            if tab is current_tab:
                current_tab_index = index
                break

        return {
            "version": STATE_VERSION,
            "browserStorageState": browser_storage_state,
            "tabs": serialized_tabs,
            "currentTabIndex": current_tab_index,
            "metadata": {
                "lastUpdated": _utc_timestamp(),
                "serializedBy": _serialized_by(),
            },
        }

    @staticmethod
    async def hydrate(
        browser_context: Any,
        state: SerializedState,
        session: Optional[ContextSession] = None,
    ) -> None:
        """Restore bookkeeping from ``state`` onto a freshly discovered context.

        Only call this with a state that passed ``is_valid_state``.
        """
        # Some remote/pooled backends shut the browser down once it has no pages.
        if len(browser_context.pages) == 0:
            await browser_context.new_page()

        stored_tabs = state["tabs"]
        if session is not None and len(stored_tabs) > 0:
            session.hydrate_tab_state(stored_tabs, state["currentTabIndex"], len(stored_tabs))

    @staticmethod
    def is_valid_state(state: Any) -> bool:
        try:
            if not isinstance(state, dict):
                return False
            if not _is_number(state.get("version")):
                return False
            tabs = state.get("tabs")
            if not isinstance(tabs, list):
                return False
            if not _is_number(state.get("currentTabIndex")):
                return False
            metadata = state.get("metadata")
            if not isinstance(metadata, dict) or not isinstance(metadata.get("lastUpdated"), str):
                return False
            for tab in tabs:
                if not isinstance(tab, dict):
                    return False
                if not isinstance(tab.get("url"), str):
                    return False
                if not isinstance(tab.get("title"), str):
                    return False
                if not _is_number(tab.get("index")):
                    return False
                if not isinstance(tab.get("recentConsoleMessages"), list):
                    return False
            return True
        except Exception:
            return False

    @staticmethod
    def dumps(state: SerializedState) -> str:
        return json.dumps(state, ensure_ascii=False, default=str)

    @classmethod
    def load_state(cls, raw: Any) -> Optional[SerializedState]:
        """Parse JSON text (or an already-decoded value) and admit it only if valid."""
        value = raw
        if isinstance(raw, (str, bytes, bytearray)):
            try:
                value = json.loads(raw)
            except ValueError:
                return None
        if not cls.is_valid_state(value):
            return None
        return value

    @staticmethod
    def context_options(state: Optional[SerializedState]) -> Dict[str, Any]:
        """Playwright ``new_context`` options that re-apply stored cookies and localStorage."""
        if not state:
            return {}
        storage = state.get("browserStorageState")
        if not isinstance(storage, dict):
            return {}
        return {
            "storage_state": {
                "cookies": list(storage.get("cookies") or []),
                "origins": list(storage.get("origins") or []),
            }
        }
