"""Modal states: dialogs and file choosers that block page interaction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Union

HANDLE_DIALOG_TOOL = "browser_handle_dialog"
FILE_UPLOAD_TOOL = "browser_file_upload"


@dataclass(frozen=True, eq=False)
class FileUploadModalState:
    description: str
    file_chooser: Any
    type: str = "fileChooser"


@dataclass(frozen=True, eq=False)
class DialogModalState:
    description: str
    dialog: Any
    type: str = "dialog"


ModalState = Union[FileUploadModalState, DialogModalState]


def resolving_tool(state: ModalState) -> str:
    """Name of the tool that clears ``state``."""
    if isinstance(state, FileUploadModalState):
        return FILE_UPLOAD_TOOL
    if isinstance(state, DialogModalState):
        return HANDLE_DIALOG_TOOL
    raise TypeError(f"Unknown modal state: {state!r}")


def modal_state_kind(kind: Any) -> type:
    """Return ``kind`` if it is one of the modal state classes."""
    if kind is FileUploadModalState or kind is DialogModalState:
        return kind
    raise TypeError(f"Unknown modal state kind: {kind!r}")


def dialog_modal_state(dialog: Any) -> DialogModalState:
    dialog_type = getattr(dialog, "type", "dialog")
    message = getattr(dialog, "message", "")
    return DialogModalState(
        description=f'"{dialog_type}" dialog with message "{message}"',
        dialog=dialog,
    )


def file_chooser_modal_state(file_chooser: Any) -> FileUploadModalState:
    return FileUploadModalState(description="File chooser", file_chooser=file_chooser)


class ModalStateStack:
    """Ordered pending modal states for one tab. Oldest first."""

    def __init__(self) -> None:
        self._states: List[ModalState] = []

    def __len__(self) -> int:
        return len(self._states)

    def __bool__(self) -> bool:
        return bool(self._states)

    def push(self, state: ModalState) -> None:
        resolving_tool(state)
        self._states.append(state)

    def remove(self, state: ModalState) -> bool:
        for i, existing in enumerate(self._states):
            if existing is state:
                del self._states[i]
                return True
        return False

    def states(self) -> List[ModalState]:
        return list(self._states)

    def of_type(self, kind: type) -> List[ModalState]:
        return [s for s in self._states if isinstance(s, kind)]

    def has_dialog(self) -> bool:
        return bool(self.of_type(DialogModalState))

    def clear(self) -> None:
        self._states.clear()

    def markdown(self) -> List[str]:
        if not self._states:
            return ["### Modal state", "- There is no modal state present"]
        lines = ["### Modal state"]
        for state in self._states:
            lines.append(f'- [{state.description}]: can be handled by the "{resolving_tool(state)}" tool')
        return lines
