from __future__ import annotations

import asyncio
import base64

import pytest

from browser_state.response import Response

from .fakes import FakeBrowserContext, FakeDialog, make_session


def test_error_only_response_is_flagged(config) -> None:  # noqa: ANN001
    session = make_session(FakeBrowserContext(), config=config)
    response = Response(session, "browser_tab_select", {"index": 4})
    response.add_error("Tab 4 not found")

    assert response.is_error() is True
    payload = response.serialize()
    assert payload["isError"] is True
    assert payload["content"][0]["type"] == "text"
    assert payload["content"][0]["text"].startswith("### Error\nTab 4 not found")


def test_results_and_code_append(config) -> None:  # noqa: ANN001
    session = make_session(FakeBrowserContext(), config=config)
    response = Response(session, "browser_navigate")
    response.add_result("first")
    response.add_result("second")
    response.add_code('await page.goto("https://example.com")')

    assert response.result() == "first\nsecond"
    assert response.is_error() is False
    text = response.serialize()["content"][0]["text"]
    assert "### Result\nfirst\nsecond" in text
    assert "### Ran Playwright code" in text
    assert 'await page.goto("https://example.com")' in text
    assert response.serialize()["isError"] is False


def test_images_become_base64_blocks(config) -> None:  # noqa: ANN001
    session = make_session(FakeBrowserContext(), config=config)
    response = Response(session, "browser_take_screenshot")
    response.add_result("Took screenshot")
    response.add_image("image/png", b"\x89PNG")

    content = response.serialize()["content"]
    assert content[1] == {
        "type": "image",
        "data": base64.b64encode(b"\x89PNG").decode("ascii"),
        "mimeType": "image/png",
    }


def test_snapshot_is_captured_on_finish(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        page = context.add_page(url="https://example.com/", title="Example")
        session = make_session(context, config=config)
        await session.ensure_browser_context()
        page.log("log", "ready")

        response = Response(session, "browser_snapshot")
        response.set_include_snapshot()
        response.set_include_snapshot()
        await response.finish()

        snapshot = response.tab_snapshot()
        assert snapshot is not None
        assert snapshot.url == "https://example.com/"
        assert snapshot.title == "Example"
        assert snapshot.aria_snapshot == '- document "Example"'
        assert [str(m) for m in snapshot.console_messages] == ["[LOG] ready"]

        content = response.serialize()["content"]
        last = content[-1]["text"]
        assert "### Page state" in last
        assert "- Page URL: https://example.com/" in last
        assert "```yaml" in last
        assert "### New console messages\n- [LOG] ready" in last

        with pytest.raises(RuntimeError):
            await response.finish()

    asyncio.run(_main())


def test_no_snapshot_without_intent(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        page = context.add_page(url="https://example.com/", title="Example")
        session = make_session(context, config=config)
        await session.ensure_browser_context()

        response = Response(session, "browser_console_messages")
        response.add_result("No console messages")
        await response.finish()
        assert response.tab_snapshot() is None
        assert page.aria_calls == 0
        assert len(response.serialize()["content"]) == 1
        # Titles are refreshed on every finish.
        assert session.current_tab().last_title() == "Example"

    asyncio.run(_main())


def test_snapshot_with_pending_dialog_skips_aria(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        page = context.add_page(url="https://example.com/", title="Example")
        session = make_session(context, config=config)
        await session.ensure_browser_context()
        page.emit("dialog", FakeDialog("confirm", "Leave?"))

        response = Response(session, "browser_snapshot")
        response.set_include_snapshot()
        await response.finish()

        snapshot = response.tab_snapshot()
        assert snapshot.aria_snapshot == ""
        assert page.aria_calls == 0
        last = response.serialize()["content"][-1]["text"]
        assert '"confirm" dialog with message "Leave?"' in last
        assert 'can be handled by the "browser_handle_dialog" tool' in last
        assert "### Page state" not in last

    asyncio.run(_main())


def test_tabs_intent_lists_tabs_and_marks_current(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        context.add_page(url="https://a.example", title="A")
        context.add_page(url="https://b.example", title="B")
        session = make_session(context, config=config)
        await session.ensure_browser_context()
        await session.select_tab(1)

        response = Response(session, "browser_tabs_list")
        response.set_include_tabs()
        await response.finish()
        text = response.serialize()["content"][0]["text"]
        assert "### Open tabs" in text
        assert "- 0: [A] (https://a.example)" in text
        assert "- 1: (current) [B] (https://b.example)" in text

    asyncio.run(_main())


def test_single_tab_listed_only_on_request(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        context.add_page(url="https://a.example", title="A")
        session = make_session(context, config=config)
        await session.ensure_browser_context()

        response = Response(session, "browser_navigate")
        response.add_result("done")
        await response.finish()
        assert "### Open tabs" not in response.serialize()["content"][0]["text"]

    asyncio.run(_main())
