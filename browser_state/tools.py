"""Session tools: tab lifecycle and modal-state resolution."""

from __future__ import annotations

import inspect
import json
from typing import Any, Callable, Dict, List, Optional

from langchain_core.tools import StructuredTool

from .backend import ToolBackend
from .modal import (
    FILE_UPLOAD_TOOL,
    HANDLE_DIALOG_TOOL,
    DialogModalState,
    FileUploadModalState,
    ModalState,
    modal_state_kind,
)
from .response import Response
from .session import ContextSession
from .tab import Tab


def mcp_tool(
    _func: Optional[Callable[..., Any]] = None,
    *,
    name: Optional[str] = None,
    examples: Optional[List[str]] = None,
    clears_modal_state: Optional[type] = None,
) -> Any:
    """Decorator to mark a method as an MCP-exposed tool."""

    def _decorate(func: Callable[..., Any]) -> Callable[..., Any]:
        setattr(func, "_is_mcp_tool", True)
        setattr(func, "_mcp_name", name or func.__name__)
        setattr(func, "_mcp_examples", examples or [])
        setattr(
            func,
            "_mcp_clears_modal_state",
            modal_state_kind(clears_modal_state) if clears_modal_state is not None else None,
        )
        return func

    if _func is None:
        return _decorate
    return _decorate(_func)


def _pending_modal_state(tab: Tab, kind: type) -> Optional[ModalState]:
    for state in tab.modal_states():
        if not isinstance(state, (FileUploadModalState, DialogModalState)):
            raise TypeError(f"Unknown modal state: {state!r}")
        if isinstance(state, kind):
            return state
    return None


class SessionTools:
    """Expose ContextSession operations as tools that return protocol content blocks."""

    def __init__(self, backend: ToolBackend):
        self.backend = backend
        self._tools: List[Any] = []

    @property
    def session(self) -> ContextSession:
        return self.backend.session

    def get_tools(self) -> List[Any]:
        """Export session tools for LLM tool calling."""
        if self._tools:
            return self._tools

        tools: List[Any] = []
        for method_name in dir(self):
            method = getattr(self, method_name, None)
            if not callable(method):
                continue
            if not bool(getattr(method, "_is_mcp_tool", False)):
                continue

            tool_name = str(getattr(method, "_mcp_name", method.__name__) or method.__name__)
            doc = inspect.getdoc(method) or f"MCP tool: {tool_name}"
            examples = list(getattr(method, "_mcp_examples", []) or [])
            if examples:
                doc = f"{doc}\n\nExamples:\n" + "\n".join(f"- {x}" for x in examples)

            tools.append(
                StructuredTool.from_function(
                    name=tool_name,
                    description=doc,
                    coroutine=method,
                )
            )

        self._tools = tools
        return self._tools

    async def _run(self, method: Callable[..., Any], handler: Callable[..., Any], **arguments: Any) -> Dict[str, Any]:
        return await self.backend.call_tool(
            str(getattr(method, "_mcp_name", method.__name__)),
            {k: v for k, v in arguments.items() if v is not None},
            handler,
            clears_modal_state=getattr(method, "_mcp_clears_modal_state", None),
        )

    # Handlers

    async def list_tabs(self, response: Response) -> None:
        await self.session.ensure_browser_context()
        response.set_include_tabs()

    async def new_tab(self, response: Response, url: Optional[str] = None) -> None:
        tab = await self.session.new_tab()
        if url:
            await tab.navigate(url)
            response.add_code(f"await page.goto({json.dumps(url)})")
        response.set_include_tabs()
        response.set_include_snapshot()

    async def select_tab(self, response: Response, index: int) -> None:
        await self.session.ensure_browser_context()
        await self.session.select_tab(index)
        response.set_include_tabs()
        response.set_include_snapshot()

    async def close_tab(self, response: Response, index: Optional[int] = None) -> None:
        await self.session.ensure_browser_context()
        url = await self.session.close_tab(index)
        response.add_result(f"Closed tab {url}")
        response.set_include_tabs()
        response.set_include_snapshot()

    async def navigate(self, response: Response, url: str) -> None:
        tab = await self.session.ensure_tab()
        await tab.navigate(url)
        response.add_code(f"await page.goto({json.dumps(url)})")
        response.set_include_snapshot()

    async def snapshot(self, response: Response) -> None:
        await self.session.ensure_tab()
        response.set_include_snapshot()

    async def console_messages(self, response: Response) -> None:
        tab = self.session.current_tab_or_die()
        messages = tab.console_messages()
        if not messages:
            response.add_result("No console messages")
            return
        for message in messages:
            response.add_result(str(message))

    async def wait_for(self, response: Response, time: float) -> None:
        tab = self.session.current_tab_or_die()
        seconds = float(time)
        if seconds < 0:
            raise ValueError("Wait time must not be negative")
        await tab.wait_for_timeout(int(seconds * 1000))
        response.add_result(f"Waited for {seconds:g}s")
        response.add_code(f"await page.wait_for_timeout({int(seconds * 1000)})")
        response.set_include_snapshot()

    async def handle_dialog(self, response: Response, accept: bool, prompt_text: Optional[str] = None) -> None:
        tab = self.session.current_tab_or_die()
        state = _pending_modal_state(tab, DialogModalState)
        if state is None:
            raise RuntimeError("No dialog visible")
        tab.clear_modal_state(state)
        if accept:
            await tab.wait_for_completion(lambda: state.dialog.accept(prompt_text))
            response.add_code(f"await dialog.accept({json.dumps(prompt_text)})" if prompt_text else "await dialog.accept()")
        else:
            await tab.wait_for_completion(state.dialog.dismiss)
            response.add_code("await dialog.dismiss()")
        response.set_include_snapshot()

    async def file_upload(self, response: Response, paths: Optional[List[str]] = None) -> None:
        tab = self.session.current_tab_or_die()
        state = _pending_modal_state(tab, FileUploadModalState)
        if state is None:
            raise RuntimeError("No file chooser visible")
        files = [str(p) for p in (paths or [])]
        tab.clear_modal_state(state)
        await tab.wait_for_completion(lambda: state.file_chooser.set_files(files))
        response.add_code(f"await file_chooser.set_files({json.dumps(files)})")
        response.set_include_snapshot()

    # MCP wrappers

    @mcp_tool(name="browser_tabs_list", examples=["browser_tabs_list()"])
    async def mcp_browser_tabs_list(self) -> Dict[str, Any]:
        """
        List open browser tabs of this session.

        Returns:
            Tool content blocks with an "Open tabs" section; the current tab is
            marked `(current)`.
        """
        return await self._run(self.mcp_browser_tabs_list, self.list_tabs)

    @mcp_tool(
        name="browser_tab_new",
        examples=["browser_tab_new()", "browser_tab_new(url='https://example.com')"],
    )
    async def mcp_browser_tab_new(self, url: Optional[str] = None) -> Dict[str, Any]:
        """
        Open a new tab and make it current.

        Args:
            url (optional): URL to navigate the new tab to. Blank tab when omitted.

        Returns:
            Tool content blocks with the tab list and a snapshot of the new tab.
        """
        return await self._run(self.mcp_browser_tab_new, self.new_tab, url=url)

    @mcp_tool(name="browser_tab_select", examples=["browser_tab_select(index=1)"])
    async def mcp_browser_tab_select(self, index: int) -> Dict[str, Any]:
        """
        Make the tab at `index` current.

        Args:
            index: Zero-based tab position as shown by `browser_tabs_list`.

        Returns:
            Tool content blocks with the tab list and a snapshot of the selected tab.
            An out-of-range index yields an error result.
        """
        return await self._run(self.mcp_browser_tab_select, self.select_tab, index=index)

    @mcp_tool(
        name="browser_tab_close",
        examples=["browser_tab_close()", "browser_tab_close(index=2)"],
    )
    async def mcp_browser_tab_close(self, index: Optional[int] = None) -> Dict[str, Any]:
        """
        Close a tab.

        Args:
            index (optional): Zero-based tab position. Closes the current tab when omitted.

        Returns:
            Tool content blocks with the remaining tabs. When the current tab is
            closed the preceding tab becomes current.
        """
        return await self._run(self.mcp_browser_tab_close, self.close_tab, index=index)

    @mcp_tool(name="browser_navigate", examples=["browser_navigate(url='https://example.com')"])
    async def mcp_browser_navigate(self, url: str) -> Dict[str, Any]:
        """
        Navigate the current tab to a URL, opening a tab first if none exists.

        Args:
            url: Absolute URL to load.

        Returns:
            Tool content blocks with the code that ran and a page snapshot.
        """
        return await self._run(self.mcp_browser_navigate, self.navigate, url=url)

    @mcp_tool(name="browser_snapshot", examples=["browser_snapshot()"])
    async def mcp_browser_snapshot(self) -> Dict[str, Any]:
        """
        Capture an accessibility snapshot of the current tab.

        Returns:
            Tool content blocks with URL, title, aria snapshot, console messages and downloads.
        """
        return await self._run(self.mcp_browser_snapshot, self.snapshot)

    @mcp_tool(name="browser_console_messages", examples=["browser_console_messages()"])
    async def mcp_browser_console_messages(self) -> Dict[str, Any]:
        """
        Return console messages recorded for the current tab since its last navigation.
        """
        return await self._run(self.mcp_browser_console_messages, self.console_messages)

    @mcp_tool(name="browser_wait_for", examples=["browser_wait_for(time=2)"])
    async def mcp_browser_wait_for(self, time: float) -> Dict[str, Any]:
        """
        Wait for the given number of seconds on the current tab.

        Args:
            time: Seconds to wait.
        """
        return await self._run(self.mcp_browser_wait_for, self.wait_for, time=time)

    @mcp_tool(
        name=HANDLE_DIALOG_TOOL,
        examples=[
            "browser_handle_dialog(accept=True)",
            "browser_handle_dialog(accept=True, prompt_text='42')",
            "browser_handle_dialog(accept=False)",
        ],
        clears_modal_state=DialogModalState,
    )
    async def mcp_browser_handle_dialog(self, accept: bool, prompt_text: Optional[str] = None) -> Dict[str, Any]:
        """
        Accept or dismiss the pending JavaScript dialog of the current tab.

        Args:
            accept: `True` to accept, `False` to dismiss.
            prompt_text (optional): Text to enter into a `prompt()` dialog before accepting.

        Returns:
            Tool content blocks. Fails when no dialog is pending.
        """
        return await self._run(
            self.mcp_browser_handle_dialog,
            self.handle_dialog,
            accept=accept,
            prompt_text=prompt_text,
        )

    @mcp_tool(
        name=FILE_UPLOAD_TOOL,
        examples=[
            "browser_file_upload(paths=['/tmp/report.pdf'])",
            "browser_file_upload()",
        ],
        clears_modal_state=FileUploadModalState,
    )
    async def mcp_browser_file_upload(self, paths: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Answer the pending file chooser of the current tab.

        Args:
            paths (optional): Absolute paths of files to upload. Omit to cancel the chooser.

        Returns:
            Tool content blocks. Fails when no file chooser is pending.
        """
        return await self._run(self.mcp_browser_file_upload, self.file_upload, paths=paths)
