"""Tab: one tracked Playwright page with its bookkeeping."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Set

from .console import (
    ConsoleMessageBuffer,
    console_message_from_event,
    console_message_from_page_error,
)
from .modal import (
    ModalState,
    ModalStateStack,
    dialog_modal_state,
    file_chooser_modal_state,
)
from .models import ConsoleMessage, DownloadEntry, TabSnapshot

if TYPE_CHECKING:
    from .session import ContextSession


class Tab:
    """Own a page handle plus its title cache, console history and modal states."""

    def __init__(self, session: ContextSession, page: Any, on_close: Callable[[Tab], None]):
        self.session = session
        self.page = page
        self._on_close = on_close
        self._last_title = "about:blank"
        self._console = ConsoleMessageBuffer(session.config.console_buffer_size)
        self._modal_states = ModalStateStack()
        self._downloads: List[DownloadEntry] = []
        self._tasks: Set[asyncio.Task[Any]] = set()
        self._handlers: Dict[str, Any] = {}
        self._attach_listeners()

    def _attach_listeners(self) -> None:
        def _on_console(msg: Any) -> None:
            self._console.record(console_message_from_event(msg))

        def _on_page_error(err: Any) -> None:
            self._console.record(console_message_from_page_error(err))

        def _on_dialog(dialog: Any) -> None:
            self.set_modal_state(dialog_modal_state(dialog))

        def _on_file_chooser(file_chooser: Any) -> None:
            self.set_modal_state(file_chooser_modal_state(file_chooser))

        def _on_download(download: Any) -> None:
            filename = str(getattr(download, "suggested_filename", "") or "download")
            entry = DownloadEntry(download=download, output_file=self.session.output_file(filename))
            self._downloads.append(entry)
            self._spawn(self._save_download(entry))

        def _on_frame_navigated(frame: Any) -> None:
            if getattr(frame, "parent_frame", None) is None:
                self._console.clear()

        def _on_close(*_: Any) -> None:
            self._detach_listeners()
            self._on_close(self)

        self._handlers = {
            "console": _on_console,
            "pageerror": _on_page_error,
            "dialog": _on_dialog,
            "filechooser": _on_file_chooser,
            "download": _on_download,
            "framenavigated": _on_frame_navigated,
            "close": _on_close,
        }
        for event, handler in self._handlers.items():
            self.page.on(event, handler)

    def _detach_listeners(self) -> None:
        for event, handler in self._handlers.items():
            try:
                self.page.remove_listener(event, handler)
            except Exception:
                pass
        self._handlers = {}

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _save_download(self, entry: DownloadEntry) -> None:
        try:
            await entry.download.save_as(entry.output_file)
        except Exception as e:
            self.session.observer.error(e, "Failed to save download", file=entry.output_file)
            return
        entry.finished = True

    # Modal states

    def modal_states(self) -> List[ModalState]:
        return self._modal_states.states()

    def set_modal_state(self, state: ModalState) -> None:
        self._modal_states.push(state)

    def clear_modal_state(self, state: ModalState) -> None:
        self._modal_states.remove(state)

    def modal_states_markdown(self) -> List[str]:
        return self._modal_states.markdown()

    def _javascript_blocked(self) -> bool:
        return self._modal_states.has_dialog()

    # Title / console

    async def update_title(self) -> None:
        if self._javascript_blocked():
            return
        try:
            self._last_title = await self.page.title()
        except Exception as e:
            self.session.observer.debug("Failed to read page title", error=str(e))

    def last_title(self) -> str:
        return self._last_title

    def restore_title(self, title: str) -> None:
        self._last_title = str(title)

    def console_messages(self) -> List[ConsoleMessage]:
        return self._console.messages()

    def recent_console_messages(self, count: int) -> List[ConsoleMessage]:
        return self._console.tail(count)

    def restore_console_messages(self, messages: Iterable[Any]) -> None:
        self._console.replace(messages)

    def downloads(self) -> List[DownloadEntry]:
        return list(self._downloads)

    def is_current_tab(self) -> bool:
        return self.session.current_tab() is self

    # Page operations

    async def navigate(self, url: str) -> None:
        target = str(url or "").strip()
        if not target:
            raise ValueError("URL is required")

        downloads_before = len(self._downloads)
        timeout_ms = self.session.config.timeout_ms
        try:
            await self.page.goto(target, wait_until="domcontentloaded", timeout=timeout_ms)
        except Exception:
            # Navigations that turn into downloads abort the page load.
            if len(self._downloads) > downloads_before:
                return
            raise
        await self._settle(min(5000, timeout_ms))

    async def wait_for_timeout(self, time_ms: int) -> None:
        if self._javascript_blocked():
            await asyncio.sleep(time_ms / 1000)
            return
        await self.page.wait_for_timeout(time_ms)

    async def wait_for_completion(self, callback: Callable[[], Awaitable[Any]]) -> None:
        await callback()
        if self._modal_states:
            return
        await self._settle(min(5000, self.session.config.timeout_ms))

    async def _settle(self, timeout_ms: int) -> None:
        try:
            await self.page.wait_for_load_state("load", timeout=timeout_ms)
        except Exception as e:
            self.session.observer.debug("Load state wait did not complete", error=str(e))

    async def capture_snapshot(self) -> TabSnapshot:
        aria_snapshot = ""
        if not self._javascript_blocked():
            await self.update_title()
            aria_snapshot = await self.page.locator(":root").aria_snapshot(
                timeout=self.session.config.timeout_ms
            )
        return TabSnapshot(
            url=str(self.page.url),
            title=self._last_title,
            aria_snapshot=aria_snapshot,
            modal_states=self.modal_states(),
            console_messages=self.console_messages(),
            downloads=self.downloads(),
        )

    async def dispose(self) -> None:
        self._detach_listeners()
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
