"""Per-call response builder for session tools."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .modal import resolving_tool
from .models import TabSnapshot

if TYPE_CHECKING:
    from .session import ContextSession
    from .tab import Tab


@dataclass(frozen=True)
class ImageContent:
    content_type: str
    data: bytes


def text_block(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def image_block(image: ImageContent) -> Dict[str, Any]:
    return {
        "type": "image",
        "data": base64.b64encode(image.data).decode("ascii"),
        "mimeType": image.content_type,
    }


class Response:
    """Accumulate one tool call's output, then project it to content blocks.

    Everything stays in memory until ``finish``, which may capture a snapshot
    of the current tab. An instance serves exactly one tool call.
    """

    def __init__(self, session: ContextSession, tool_name: str, tool_args: Optional[Dict[str, Any]] = None):
        self.session = session
        self.tool_name = str(tool_name)
        self.tool_args: Dict[str, Any] = dict(tool_args or {})
        self._result: List[str] = []
        self._errors: List[str] = []
        self._code: List[str] = []
        self._images: List[ImageContent] = []
        self._include_snapshot = False
        self._include_tabs = False
        self._tab_snapshot: Optional[TabSnapshot] = None
        self._finished = False

    def add_result(self, result: str) -> None:
        self._result.append(str(result))

    def add_error(self, error: str) -> None:
        self._errors.append(str(error))

    def is_error(self) -> bool:
        return bool(self._errors)

    def result(self) -> str:
        return "\n".join(self._result)

    def errors(self) -> str:
        return "\n".join(self._errors)

    def add_code(self, code: str) -> None:
        self._code.append(str(code))

    def code(self) -> str:
        return "\n".join(self._code)

    def add_image(self, content_type: str, data: bytes) -> None:
        self._images.append(ImageContent(content_type=str(content_type), data=bytes(data)))

    def images(self) -> List[ImageContent]:
        return list(self._images)

    def set_include_snapshot(self) -> None:
        self._include_snapshot = True

    def set_include_tabs(self) -> None:
        self._include_tabs = True

    def tab_snapshot(self) -> Optional[TabSnapshot]:
        return self._tab_snapshot

    async def finish(self) -> None:
        if self._finished:
            raise RuntimeError(f"Response for {self.tool_name} is already finished")
        self._finished = True
        current = self.session.current_tab()
        if self._include_snapshot and current is not None:
            self._tab_snapshot = await current.capture_snapshot()
        for tab in self.session.tabs():
            await tab.update_title()

    def serialize(self) -> Dict[str, Any]:
        lines: List[str] = []
        if self._errors:
            lines.append("### Error")
            lines.append("\n".join(self._errors))
            lines.append("")
        if self._result:
            lines.append("### Result")
            lines.append("\n".join(self._result))
            lines.append("")
        if self._code:
            lines.append("### Ran Playwright code")
            lines.append("```python")
            lines.extend(self._code)
            lines.append("```")
            lines.append("")

        tabs = self.session.tabs()
        if self._include_tabs or len(tabs) > 1:
            lines.extend(render_tabs_markdown(tabs, force=self._include_tabs))

        content: List[Dict[str, Any]] = []
        text = "\n".join(lines).strip()
        if text:
            content.append(text_block(text))
        for image in self._images:
            content.append(image_block(image))
        if self._tab_snapshot is not None:
            content.append(text_block(render_tab_snapshot(self._tab_snapshot)))
        if not content:
            content.append(text_block(""))
        return {"content": content, "isError": self.is_error()}


def render_tabs_markdown(tabs: List[Tab], force: bool = False) -> List[str]:
    if len(tabs) == 1 and not force:
        return []
    if not tabs:
        return [
            "### Open tabs",
            'No open tabs. Use the "browser_navigate" tool to navigate to a page first.',
            "",
        ]
    lines = ["### Open tabs"]
    for i, tab in enumerate(tabs):
        current = " (current)" if tab.is_current_tab() else ""
        lines.append(f"- {i}:{current} [{tab.last_title()}] ({tab.page.url})")
    lines.append("")
    return lines


def render_tab_snapshot(snapshot: TabSnapshot) -> str:
    lines: List[str] = []
    if snapshot.console_messages:
        lines.append("### New console messages")
        for message in snapshot.console_messages:
            lines.append(f"- {_trim(str(message), 100)}")
        lines.append("")

    if snapshot.downloads:
        lines.append("### Downloads")
        for entry in snapshot.downloads:
            name = getattr(entry.download, "suggested_filename", "") or entry.output_file
            if entry.finished:
                lines.append(f"- Downloaded file {name} to {entry.output_file}")
            else:
                lines.append(f"- Downloading file {name} ...")
        lines.append("")

    if snapshot.modal_states:
        lines.append("### Modal state")
        for state in snapshot.modal_states:
            lines.append(f'- [{state.description}]: can be handled by the "{resolving_tool(state)}" tool')
        lines.append("")
        return "\n".join(lines).strip()

    lines.append("### Page state")
    lines.append(f"- Page URL: {snapshot.url}")
    lines.append(f"- Page Title: {snapshot.title}")
    lines.append("- Page Snapshot:")
    lines.append("```yaml")
    lines.append(snapshot.aria_snapshot)
    lines.append("```")
    return "\n".join(lines).strip()


def _trim(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."
