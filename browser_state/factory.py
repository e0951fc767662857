"""Browser-context factories and their ownership policy."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from .models import SessionConfig

try:
    from playwright.async_api import async_playwright
except Exception:
    async_playwright = None  # type: ignore


class ContextOwnership(enum.Enum):
    """Who may close a browser context handed to a session."""

    OWNED_EXCLUSIVE = "owned_exclusive"
    SHARED_KEEP_ALIVE = "shared_keep_alive"


async def _noop() -> None:
    return None


@dataclass
class ContextLease:
    """A browser context plus the policy deciding what ``close`` does."""

    browser_context: Any
    ownership: ContextOwnership
    release: Callable[[], Awaitable[None]] = _noop

    async def close(self) -> None:
        if self.ownership is ContextOwnership.SHARED_KEEP_ALIVE:
            return
        await self.release()


class BrowserContextFactory:
    """Supply browser contexts to sessions."""

    name = "base"
    description = ""

    async def create_context(self) -> ContextLease:
        raise NotImplementedError

    def apply_context_options(self, options: Dict[str, Any]) -> None:
        """Use ``options`` for contexts created from now on.

        Factories that attach to an existing context ignore them.
        """
        return None


class CustomContextFactory(BrowserContextFactory):
    """Wrap a caller-supplied coroutine that returns a browser context."""

    name = "custom"
    description = "Connect to a browser using a custom context getter"

    def __init__(
        self,
        context_getter: Callable[[], Awaitable[Any]],
        keep_context_alive: bool = False,
    ):
        self._context_getter = context_getter
        self._keep_context_alive = bool(keep_context_alive)
        # Held so a kept-alive context is not collected between requests.
        self._cached_context: Any = None

    async def create_context(self) -> ContextLease:
        browser_context = await self._context_getter()
        if self._keep_context_alive:
            self._cached_context = browser_context
            return ContextLease(browser_context, ContextOwnership.SHARED_KEEP_ALIVE)
        return ContextLease(
            browser_context,
            ContextOwnership.OWNED_EXCLUSIVE,
            release=browser_context.close,
        )


def _require_playwright() -> Any:
    if async_playwright is None:
        raise ImportError(
            "Playwright is not available. Install with: pip install playwright "
            "and install browser binaries."
        )
    return async_playwright


class LaunchContextFactory(BrowserContextFactory):
    """Launch a local Chromium and own the resulting context."""

    name = "launch"
    description = "Launch a local Chromium browser"

    def __init__(self, config: SessionConfig, context_options: Optional[Dict[str, Any]] = None):
        self.config = config
        self.context_options = dict(context_options or {})

    def apply_context_options(self, options: Dict[str, Any]) -> None:
        self.context_options.update(options or {})

    async def create_context(self) -> ContextLease:
        pw = await _require_playwright()().start()
        downloads_path = Path(self.config.output_dir) / "downloads"
        downloads_path.mkdir(parents=True, exist_ok=True)
        try:
            browser = await pw.chromium.launch(
                headless=bool(self.config.headless),
                downloads_path=str(downloads_path),
                args=["--no-sandbox", "--disable-dev-shm-usage"],
            )
        except Exception:
            await pw.stop()
            raise

        options = {"accept_downloads": bool(self.config.accept_downloads)}
        options.update(self.context_options)
        try:
            context = await browser.new_context(**options)
        except Exception:
            try:
                await browser.close()
            finally:
                await pw.stop()
            raise

        context.set_default_timeout(float(self.config.timeout_ms))
        context.set_default_navigation_timeout(float(self.config.timeout_ms))

        async def _release() -> None:
            try:
                await context.close()
            finally:
                try:
                    await browser.close()
                finally:
                    await pw.stop()

        return ContextLease(context, ContextOwnership.OWNED_EXCLUSIVE, release=_release)


class CdpContextFactory(BrowserContextFactory):
    """Attach to a remote browser over CDP. The remote context is shared and kept alive."""

    name = "cdp"
    description = "Connect to a running browser over the Chrome DevTools Protocol"

    def __init__(self, endpoint: str, config: Optional[SessionConfig] = None):
        if not str(endpoint or "").strip():
            raise ValueError("CDP endpoint is required")
        self.endpoint = str(endpoint).strip()
        self.config = config or SessionConfig()
        self._playwright: Any = None
        self._browser: Any = None

    async def create_context(self) -> ContextLease:
        if self._browser is None or not self._browser.is_connected():
            if self._playwright is None:
                self._playwright = await _require_playwright()().start()
            self._browser = await self._playwright.chromium.connect_over_cdp(
                self.endpoint,
                timeout=float(self.config.timeout_ms),
            )
        contexts = list(self._browser.contexts)
        context = contexts[0] if contexts else await self._browser.new_context()
        return ContextLease(context, ContextOwnership.SHARED_KEEP_ALIVE)


def factory_from_config(config: SessionConfig, context_options: Optional[Dict[str, Any]] = None) -> BrowserContextFactory:
    if config.cdp_endpoint:
        return CdpContextFactory(config.cdp_endpoint, config)
    return LaunchContextFactory(config, context_options=context_options)
