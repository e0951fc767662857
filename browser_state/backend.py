"""Run one session tool call end to end."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

from .factory import BrowserContextFactory, CustomContextFactory, factory_from_config
from .modal import modal_state_kind
from .models import SerializedState, SessionConfig
from .observer import SessionObserver
from .response import Response
from .session import ContextSession
from .state_manager import SessionStateManager

ToolHandler = Callable[..., Awaitable[None]]
StateSink = Callable[[SerializedState], Awaitable[None]]

# Errors that describe a misuse by the caller rather than a fault in the runtime.
CALLER_ERRORS = (IndexError, ValueError, RuntimeError)


class ToolBackend:
    """Drive tool handlers against one ContextSession.

    Every call gets a fresh ``Response``. Failures never escape ``call_tool``:
    they come back as error results. When a ``state_sink`` is configured the
    session is serialized after each call so the next request can be served by
    any worker.
    """

    def __init__(
        self,
        session: ContextSession,
        *,
        state_sink: Optional[StateSink] = None,
        max_tabs_to_track: Optional[int] = None,
    ):
        self.session = session
        self.state_sink = state_sink
        self.max_tabs_to_track = (
            max_tabs_to_track if max_tabs_to_track is not None else session.config.max_tabs_to_track
        )

    @property
    def observer(self) -> SessionObserver:
        return self.session.observer

    async def restore(self, raw_state: Any) -> SerializedState:
        """Validate an untrusted snapshot and hydrate the session from it."""
        state = SessionStateManager.load_state(raw_state)
        if state is None:
            raise ValueError("Invalid session state")
        if self.session.browser_context is None:
            # Cookies and localStorage can only be applied when the context is created.
            self.session.factory.apply_context_options(SessionStateManager.context_options(state))
        browser_context = await self.session.ensure_browser_context()
        await SessionStateManager.hydrate(browser_context, state, self.session)
        return state

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]],
        handler: ToolHandler,
        *,
        clears_modal_state: Optional[type] = None,
    ) -> Dict[str, Any]:
        args = dict(arguments or {})
        response = Response(self.session, name, args)
        try:
            self.session.set_running_tool(name)
        except RuntimeError as e:
            response.add_error(str(e))
            return response.serialize()

        try:
            try:
                blocker = self._modal_state_error(name, clears_modal_state)
                if blocker:
                    response.add_error(blocker)
                else:
                    await handler(response, **args)
            except Exception as e:
                self._record_failure(response, e)
            try:
                await response.finish()
            except Exception as e:
                self._record_failure(response, e)
            if self.state_sink is not None:
                await self._externalize(response)
        finally:
            self.session.set_running_tool(None)
        return response.serialize()

    def _record_failure(self, response: Response, error: Exception) -> None:
        if isinstance(error, CALLER_ERRORS):
            response.add_error(str(error))
            return
        self.observer.error(error, "Unexpected error while running tool", tool=response.tool_name)
        response.add_error(
            f"Internal error while running {response.tool_name}: {type(error).__name__}: {error}"
        )

    def _modal_state_error(self, name: str, clears_modal_state: Optional[type]) -> Optional[str]:
        tab = self.session.current_tab()
        states = tab.modal_states() if tab is not None else []
        if clears_modal_state is not None:
            kind = modal_state_kind(clears_modal_state)
            if not any(isinstance(state, kind) for state in states):
                return f'The tool "{name}" can only be used when there is related modal state present.'
            return None
        if states:
            return "\n".join([f'Tool "{name}" does not handle the modal state.'] + tab.modal_states_markdown())
        return None

    async def _externalize(self, response: Response) -> None:
        state = await SessionStateManager.serialize(self.session, self.max_tabs_to_track)
        try:
            await self.state_sink(state)
        except Exception as e:
            self.observer.error(e, "Failed to persist session state", tool=response.tool_name)
            response.add_error(f"Failed to persist session state: {e}")

    async def dispose(self) -> None:
        await self.session.dispose()


def create_session(
    config: Optional[SessionConfig] = None,
    *,
    context_getter: Optional[Callable[[], Awaitable[Any]]] = None,
    keep_context_alive: Optional[bool] = None,
    factory: Optional[BrowserContextFactory] = None,
    observer: Optional[SessionObserver] = None,
    state_sink: Optional[StateSink] = None,
) -> ToolBackend:
    """Wire config, context factory, session and backend together."""
    config = config or SessionConfig()
    if factory is None:
        if context_getter is not None:
            keep_alive = config.keep_context_alive if keep_context_alive is None else keep_context_alive
            factory = CustomContextFactory(context_getter, keep_context_alive=keep_alive)
        else:
            factory = factory_from_config(config)
    session = ContextSession(factory, config=config, observer=observer)
    return ToolBackend(session, state_sink=state_sink)
