from __future__ import annotations

import asyncio
import json

from browser_state.state_manager import SessionStateManager

from .fakes import FakeBrowserContext, RecordingObserver, make_session


def _valid_state() -> dict:
    return {
        "version": 1,
        "browserStorageState": None,
        "tabs": [],
        "currentTabIndex": -1,
        "metadata": {"lastUpdated": "2024-01-01T00:00:00Z", "serializedBy": "x"},
    }


def test_round_trip_restores_titles_console_and_current_tab(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        source = FakeBrowserContext()
        for i in range(3):
            source.add_page(url=f"https://example.com/{i}", title=f"Page {i}")
        session = make_session(source, config=config)
        await session.ensure_browser_context()
        for tab in session.tabs():
            await tab.update_title()
        source.pages[0].log("log", "hello")
        source.pages[2].log("error", "boom")
        source.pages[2].log("warning", "careful")
        await session.select_tab(2)

        state = await SessionStateManager.serialize(session)
        assert SessionStateManager.is_valid_state(state)

        target = FakeBrowserContext()
        for i in range(3):
            target.add_page(url=f"https://example.com/{i}")
        restored = make_session(target, config=config)
        await restored.ensure_browser_context()
        await SessionStateManager.hydrate(target, state, restored)

        assert [t.last_title() for t in restored.tabs()] == ["Page 0", "Page 1", "Page 2"]
        assert [str(m) for m in restored.tabs()[2].console_messages()] == ["[ERROR] boom", "[WARNING] careful"]
        assert [str(m) for m in restored.tabs()[0].console_messages()] == ["[LOG] hello"]
        assert restored.tabs()[1].console_messages() == []
        assert restored.current_tab() is restored.tabs()[2]
        assert target.new_page_calls == 0

    asyncio.run(_main())


def test_serialize_truncates_to_leading_tabs(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        for i in range(5):
            context.add_page(url=f"https://example.com/{i}")
        session = make_session(context, config=config)
        await session.ensure_browser_context()

        await session.select_tab(3)
        state = await SessionStateManager.serialize(session, max_tabs_to_track=2)
        assert [t["url"] for t in state["tabs"]] == ["https://example.com/0", "https://example.com/1"]
        assert [t["index"] for t in state["tabs"]] == [0, 1]
        assert state["currentTabIndex"] == -1

        await session.select_tab(1)
        state = await SessionStateManager.serialize(session, max_tabs_to_track=2)
        assert state["currentTabIndex"] == 1

        state = await SessionStateManager.serialize(session, max_tabs_to_track=0)
        assert len(state["tabs"]) == 5

    asyncio.run(_main())


def test_serialize_keeps_last_fifty_console_messages_in_order(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        page = context.add_page(url="https://example.com/")
        session = make_session(context, config=config)
        await session.ensure_browser_context()
        for i in range(120):
            page.log("log", f"message {i}")

        state = await SessionStateManager.serialize(session)
        messages = state["tabs"][0]["recentConsoleMessages"]
        assert len(messages) == 50
        assert [m["text"] for m in messages] == [f"message {i}" for i in range(70, 120)]
        assert messages[0] == {"type": "log", "text": "message 70"}

    asyncio.run(_main())


def test_serialize_records_storage_state_and_metadata(config, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("HOSTNAME", "worker-7")

    async def _main() -> None:
        context = FakeBrowserContext()
        context.add_page(url="https://example.com/")
        session = make_session(context, config=config)
        await session.ensure_browser_context()

        state = await SessionStateManager.serialize(session)
        assert state["version"] == 1
        assert state["browserStorageState"]["cookies"][0]["name"] == "sid"
        assert state["browserStorageState"]["origins"][0]["origin"] == "https://example.com"
        assert state["metadata"]["serializedBy"] == "worker-7"
        assert state["metadata"]["lastUpdated"].endswith("Z")
        json.dumps(state)

    asyncio.run(_main())


def test_serialize_degrades_storage_failure_to_null(config) -> None:  # noqa: ANN001
    observer = RecordingObserver()

    async def _main() -> None:
        context = FakeBrowserContext()
        context.add_page(url="https://example.com/")
        context.storage_error = RuntimeError("Target closed")
        session = make_session(context, config=config, observer=observer)
        await session.ensure_browser_context()

        state = await SessionStateManager.serialize(session)
        assert state["browserStorageState"] is None
        assert len(state["tabs"]) == 1

    asyncio.run(_main())
    assert len(observer.errors) == 1
    assert observer.errors[0][1] == "Failed to get browser storage state"


def test_serialize_without_tabs_has_no_storage_and_no_current(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        session = make_session(context, config=config)
        await session.ensure_browser_context()
        state = await SessionStateManager.serialize(session)
        assert state["tabs"] == []
        assert state["currentTabIndex"] == -1
        assert state["browserStorageState"] is None
        assert context.new_page_calls == 0

    asyncio.run(_main())


def test_hydrate_creates_keep_alive_page_only_when_empty() -> None:
    async def _main() -> None:
        empty = FakeBrowserContext()
        await SessionStateManager.hydrate(empty, _valid_state())
        assert empty.new_page_calls == 1
        assert len(empty.pages) == 1

        populated = FakeBrowserContext()
        populated.add_page()
        await SessionStateManager.hydrate(populated, _valid_state())
        assert populated.new_page_calls == 0

    asyncio.run(_main())


def test_hydrate_skips_positions_without_discovered_tabs(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        context.add_page(url="https://example.com/0")
        session = make_session(context, config=config)
        await session.ensure_browser_context()

        state = _valid_state()
        state["tabs"] = [
            {"url": f"https://example.com/{i}", "title": f"T{i}", "index": i, "recentConsoleMessages": []}
            for i in range(3)
        ]
        state["currentTabIndex"] = 2
        await SessionStateManager.hydrate(context, state, session)

        assert len(session.tabs()) == 1
        assert session.tabs()[0].last_title() == "T0"
        assert session.current_tab() is session.tabs()[0]
        assert context.new_page_calls == 0

    asyncio.run(_main())


def test_hydrate_keep_alive_page_becomes_session_tab(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        session = make_session(context, config=config)
        await session.ensure_browser_context()

        state = _valid_state()
        state["tabs"] = [
            {
                "url": "https://example.com/",
                "title": "Restored",
                "index": 0,
                "recentConsoleMessages": [{"type": "log", "text": "kept"}, "bare"],
            }
        ]
        state["currentTabIndex"] = 0
        await SessionStateManager.hydrate(context, state, session)

        assert context.new_page_calls == 1
        tab = session.current_tab()
        assert tab is not None
        assert tab.last_title() == "Restored"
        assert [m.text for m in tab.console_messages()] == ["kept", "bare"]

    asyncio.run(_main())


def test_validator_rejects_malformed_states() -> None:
    assert SessionStateManager.is_valid_state({}) is False
    assert SessionStateManager.is_valid_state(None) is False
    assert SessionStateManager.is_valid_state("state") is False

    bad_tabs = _valid_state()
    bad_tabs["tabs"] = "x"
    assert SessionStateManager.is_valid_state(bad_tabs) is False

    missing_url = _valid_state()
    missing_url["tabs"] = [{"title": "t", "index": 0, "recentConsoleMessages": []}]
    assert SessionStateManager.is_valid_state(missing_url) is False

    bad_console = _valid_state()
    bad_console["tabs"] = [{"url": "u", "title": "t", "index": 0, "recentConsoleMessages": None}]
    assert SessionStateManager.is_valid_state(bad_console) is False

    bad_timestamp = _valid_state()
    bad_timestamp["metadata"]["lastUpdated"] = 1700000000
    assert SessionStateManager.is_valid_state(bad_timestamp) is False

    bool_version = _valid_state()
    bool_version["version"] = True
    assert SessionStateManager.is_valid_state(bool_version) is False

    bad_current = _valid_state()
    bad_current["currentTabIndex"] = "0"
    assert SessionStateManager.is_valid_state(bad_current) is False


def test_validator_accepts_minimal_state() -> None:
    assert SessionStateManager.is_valid_state(_valid_state()) is True

    future = _valid_state()
    future["version"] = 7
    assert SessionStateManager.is_valid_state(future) is True


def test_load_state_admits_only_valid_json() -> None:
    state = _valid_state()
    assert SessionStateManager.load_state(SessionStateManager.dumps(state)) == state
    assert SessionStateManager.load_state("{not json") is None
    assert SessionStateManager.load_state(json.dumps({"version": 1})) is None
    assert SessionStateManager.load_state(state) == state


def test_context_options_carry_storage_state() -> None:
    state = _valid_state()
    assert SessionStateManager.context_options(state) == {}
    assert SessionStateManager.context_options(None) == {}

    state["browserStorageState"] = {
        "cookies": [{"name": "sid", "value": "1"}],
        "origins": [],
    }
    options = SessionStateManager.context_options(state)
    assert options == {"storage_state": {"cookies": [{"name": "sid", "value": "1"}], "origins": []}}


def test_hydrate_accepts_integral_float_current_index(config) -> None:  # noqa: ANN001
    async def _main() -> None:
        context = FakeBrowserContext()
        context.add_page(url="https://example.com/0")
        context.add_page(url="https://example.com/1")
        session = make_session(context, config=config)
        await session.ensure_browser_context()

        raw = json.dumps(
            {
                "version": 1.0,
                "browserStorageState": None,
                "tabs": [
                    {
                        "url": f"https://example.com/{i}",
                        "title": f"T{i}",
                        "index": float(i),
                        "recentConsoleMessages": [],
                    }
                    for i in range(2)
                ],
                "currentTabIndex": 1.0,
                "metadata": {"lastUpdated": "2024-01-01T00:00:00Z", "serializedBy": "x"},
            }
        )
        state = SessionStateManager.load_state(raw)
        assert state is not None
        await SessionStateManager.hydrate(context, state, session)
        assert session.current_tab() is session.tabs()[1]

        state["currentTabIndex"] = 0.5
        await SessionStateManager.hydrate(context, state, session)
        assert session.current_tab() is session.tabs()[1]

    asyncio.run(_main())
