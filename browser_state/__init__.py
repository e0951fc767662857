"""Session-state externalization runtime for Playwright tool servers."""

from .backend import ToolBackend, create_session
from .console import ConsoleMessageBuffer
from .factory import (
    BrowserContextFactory,
    CdpContextFactory,
    ContextLease,
    ContextOwnership,
    CustomContextFactory,
    LaunchContextFactory,
)
from .modal import DialogModalState, FileUploadModalState, ModalState, ModalStateStack
from .models import ConsoleMessage, SerializedState, SessionConfig, TabSnapshot
from .observer import LoggingObserver, NullObserver, SessionObserver
from .response import Response
from .session import ContextSession
from .state_manager import SessionStateManager
from .tab import Tab
from .tools import SessionTools

__all__ = [
    "BrowserContextFactory",
    "CdpContextFactory",
    "ConsoleMessage",
    "ConsoleMessageBuffer",
    "ContextLease",
    "ContextOwnership",
    "ContextSession",
    "CustomContextFactory",
    "DialogModalState",
    "FileUploadModalState",
    "LaunchContextFactory",
    "LoggingObserver",
    "ModalState",
    "ModalStateStack",
    "NullObserver",
    "Response",
    "SerializedState",
    "SessionConfig",
    "SessionObserver",
    "SessionStateManager",
    "SessionTools",
    "Tab",
    "TabSnapshot",
    "ToolBackend",
    "create_session",
]
