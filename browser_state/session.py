"""ContextSession: tab lifecycle against one browser context."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from .factory import BrowserContextFactory, ContextLease
from .models import SessionConfig
from .observer import SessionObserver
from .tab import Tab

NO_OPEN_PAGES_MESSAGE = (
    'No open pages available. Use the "browser_navigate" tool to navigate to a page first.'
)


def _tab_position(value: Any) -> Optional[int]:
    """Stored indices are JSON numbers; integral floats such as ``1.0`` count."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


class ContextSession:
    """Own the ordered tabs of one logical automation session.

    At most one tool runs per session at a time; ``set_running_tool`` rejects
    overlapping calls instead of queueing them.
    """

    def __init__(
        self,
        factory: BrowserContextFactory,
        config: Optional[SessionConfig] = None,
        observer: Optional[SessionObserver] = None,
    ):
        self.factory = factory
        self.config = config or SessionConfig()
        self.observer = observer or SessionObserver()
        self._tabs: List[Tab] = []
        self._current_tab: Optional[Tab] = None
        self._lease: Optional[ContextLease] = None
        self._lease_lock = asyncio.Lock()
        self._running_tool_name: Optional[str] = None
        self._idle = asyncio.Event()
        self._idle.set()

    def tabs(self) -> List[Tab]:
        return list(self._tabs)

    def current_tab(self) -> Optional[Tab]:
        return self._current_tab

    def current_tab_or_die(self) -> Tab:
        if self._current_tab is None:
            raise RuntimeError(NO_OPEN_PAGES_MESSAGE)
        return self._current_tab

    @property
    def browser_context(self) -> Any:
        return self._lease.browser_context if self._lease is not None else None

    async def ensure_browser_context(self) -> Any:
        """Create the context on first use and adopt the pages it already has."""
        async with self._lease_lock:
            if self._lease is None:
                lease = await self.factory.create_context()
                self._attach(lease)
            return self._lease.browser_context

    def _attach(self, lease: ContextLease) -> None:
        self._lease = lease
        context = lease.browser_context
        context.on("page", self._on_page_created)
        for page in list(context.pages):
            self._on_page_created(page)

    def _find_tab(self, page: Any) -> Optional[Tab]:
        for tab in self._tabs:
            if tab.page is page:
                return tab
        return None

    def _on_page_created(self, page: Any) -> None:
        if self._find_tab(page) is not None:
            return
        tab = Tab(self, page, self._on_tab_closed)
        self._tabs.append(tab)
        if self._current_tab is None:
            self._current_tab = tab
        self.observer.debug("Tab opened", index=len(self._tabs) - 1)

    def _on_tab_closed(self, tab: Tab) -> None:
        try:
            index = self._tabs.index(tab)
        except ValueError:
            return
        del self._tabs[index]
        if self._current_tab is tab:
            self._current_tab = self._tabs[max(index - 1, 0)] if self._tabs else None
        self.observer.debug("Tab closed", index=index)

    async def new_tab(self) -> Tab:
        context = await self.ensure_browser_context()
        page = await context.new_page()
        self._on_page_created(page)
        tab = self._find_tab(page)
        self._current_tab = tab
        return tab

    def _tab_at(self, index: int) -> Tab:
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(self._tabs):
            raise IndexError(f"Tab {index} not found")
        return self._tabs[index]

    async def select_tab(self, index: int) -> Tab:
        tab = self._tab_at(index)
        self._current_tab = tab
        try:
            await tab.page.bring_to_front()
        except Exception as e:
            self.observer.debug("bring_to_front failed", error=str(e))
        return tab

    async def ensure_tab(self) -> Tab:
        await self.ensure_browser_context()
        if self._current_tab is None:
            await self.new_tab()
        return self._current_tab

    async def close_tab(self, index: Optional[int] = None) -> str:
        """Close the tab at ``index`` (the current tab when ``None``) and return its URL."""
        if index is None:
            tab = self._current_tab
            if tab is None:
                raise RuntimeError(NO_OPEN_PAGES_MESSAGE)
        else:
            tab = self._tab_at(index)
        url = str(tab.page.url)
        await tab.page.close()
        # The "close" event normally removes the tab; this covers handles that do not emit it.
        self._on_tab_closed(tab)
        await tab.dispose()
        return url

    def hydrate_tab_state(
        self,
        stored_tabs: Iterable[Mapping[str, Any]],
        current_tab_index: Any,
        max_tabs: int,
    ) -> int:
        """Restore titles, console tails and the current tab onto discovered tabs.

        Tabs are matched by position; positions beyond what was discovered are
        skipped. Returns the number of tabs restored.
        """
        limit = min(int(max_tabs), len(self._tabs))
        restored = 0
        for position, entry in enumerate(stored_tabs):
            if position >= limit:
                break
            tab = self._tabs[position]
            tab.restore_title(entry.get("title", ""))
            tab.restore_console_messages(entry.get("recentConsoleMessages") or [])
            restored += 1
        position = _tab_position(current_tab_index)
        if position is not None and 0 <= position < limit:
            self._current_tab = self._tabs[position]
        self.observer.debug(
            "Hydrated tab state",
            restored=restored,
            discovered=len(self._tabs),
            current=current_tab_index,
        )
        return restored

    def output_file(self, name: str) -> str:
        safe = re.sub(r"[^\w.\-]+", "-", str(name or "")).strip("-.") or "output"
        out_dir = Path(self.config.output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        return str(out_dir / safe)

    # Single-flight tool bookkeeping

    def is_running_tool(self) -> bool:
        return self._running_tool_name is not None

    @property
    def running_tool_name(self) -> Optional[str]:
        return self._running_tool_name

    def set_running_tool(self, name: Optional[str]) -> None:
        if name is None:
            self._running_tool_name = None
            self._idle.set()
            return
        if self._running_tool_name is not None:
            raise RuntimeError(
                f"Tool {self._running_tool_name} is already running (requested {name})"
            )
        self._running_tool_name = str(name)
        self._idle.clear()

    # Disposal

    async def close_browser_context(self) -> None:
        lease = self._lease
        if lease is None:
            return
        self._lease = None
        tabs = list(self._tabs)
        self._tabs = []
        self._current_tab = None
        try:
            lease.browser_context.remove_listener("page", self._on_page_created)
        except Exception:
            pass
        for tab in tabs:
            await tab.dispose()
        await lease.close()

    async def dispose(self, timeout_s: Optional[float] = None) -> None:
        if timeout_s is None:
            await self._idle.wait()
        else:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout_s)
        await self.close_browser_context()
