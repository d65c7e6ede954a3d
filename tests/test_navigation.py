"""Tests for navigation, page-load cancellation and readiness polling."""

from __future__ import annotations

import threading
import time

import pytest

from conftest import FakeRpcClient, page_dict
from wirtap.debugger import RemoteDebugger
from wirtap.errors import (
    ConsoleForwardingError,
    InvalidUrlError,
    MissingParametersError,
    NotConnectedError,
    RemoteDebuggerError,
)
from wirtap.events import FramesDetached, PageChanged


def _fire_load_after(rpc: FakeRpcClient, delay: float):
    def on_navigate(params: dict, kwargs: dict) -> None:
        rpc.notify_later(delay, "Page.loadEventFired", {"timestamp": 1})

    return on_navigate


def _ready_states(*states: str):
    remaining = list(states)

    def on_evaluate(params: dict, kwargs: dict) -> str:
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return on_evaluate


def test_invalid_url_is_rejected_before_any_transport_call(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    with pytest.raises(InvalidUrlError):
        selected.navigate("not a url")

    assert rpc.sent == []
    assert selected.state.is_navigating is False


def test_navigate_without_selection_fails(debugger: RemoteDebugger) -> None:
    with pytest.raises(MissingParametersError):
        debugger.navigate("https://example.com")


def test_load_event_wins_the_race(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.responses["Page.navigate"] = _fire_load_after(rpc, 0.05)
    started = time.monotonic()

    loaded = selected.navigate("https://example.com")

    assert loaded is True
    assert time.monotonic() - started < 0.3
    command, params, kwargs = rpc.sent[0]
    assert (command, params) == ("Page.navigate", {"url": "https://example.com"})
    assert kwargs["wait_for_response"] is False
    assert rpc.message_handler.listener_count("Page.loadEventFired") == 0
    assert selected.state.is_navigating is False
    assert selected.state.is_page_loading is False
    assert selected.state.page_load_delay is None


def test_navigation_times_out_and_continues(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    started = time.monotonic()

    loaded = selected.navigate("https://example.com")

    assert loaded is False
    assert time.monotonic() - started >= 0.35
    assert rpc.message_handler.listener_count("Page.loadEventFired") == 0
    assert selected.state.is_navigating is False


def test_cancel_page_load_ends_navigation_early(selected: RemoteDebugger) -> None:
    selected.page_load_ms = 5000
    threading.Timer(0.05, selected.cancel_page_load).start()
    started = time.monotonic()

    loaded = selected.navigate("https://example.com")

    assert loaded is False
    assert time.monotonic() - started < 1


def test_page_changes_are_suppressed_during_navigation(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    changes: list = []
    selected.on(PageChanged, changes.append)

    def on_navigate(params: dict, kwargs: dict) -> None:
        rpc.notify("_rpc_forwardGetListing:", "PID:1", page_dict((1, "https://mid.example/")))
        rpc.notify_later(0.02, "Page.loadEventFired", {})

    rpc.responses["Page.navigate"] = on_navigate

    selected.navigate("https://example.com")
    assert changes == []

    rpc.notify("_rpc_forwardGetListing:", "PID:1", page_dict((1, "https://example.com/")))
    assert [c.pages[0].url for c in changes] == ["https://example.com/"]


def test_navigation_flags_reset_when_send_fails(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.responses["Page.navigate"] = RemoteDebuggerError("Page domain disabled")

    with pytest.raises(RemoteDebuggerError):
        selected.navigate("https://example.com")

    assert selected.state.is_navigating is False
    assert selected.state.is_page_loading is False
    assert rpc.message_handler.listener_count("Page.loadEventFired") == 0


def test_transport_close_during_navigation_fails_fast(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    selected.page_load_ms = 5000
    rpc.close_later(0.05)
    started = time.monotonic()

    with pytest.raises(NotConnectedError):
        selected.navigate("https://example.com")

    assert time.monotonic() - started < 1


def test_console_forwarding_is_restored_after_navigation(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    selected.start_console(lambda message: None)
    rpc.responses["Page.navigate"] = _fire_load_after(rpc, 0.01)

    selected.navigate("https://example.com")

    assert rpc.commands() == ["Page.navigate", "Console.enable"]


def test_console_forwarding_failure_is_reported(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    selected.start_console(lambda message: None)
    rpc.responses["Page.navigate"] = _fire_load_after(rpc, 0.01)
    rpc.responses["Console.enable"] = TimeoutError("Command Console.enable timed out")

    with pytest.raises(ConsoleForwardingError):
        selected.navigate("https://example.com")


def test_console_is_not_touched_without_listeners(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.responses["Page.navigate"] = _fire_load_after(rpc, 0.01)

    selected.navigate("https://example.com")

    assert "Console.enable" not in rpc.commands()


def test_navigate_can_wait_for_readiness(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.responses["Page.navigate"] = _fire_load_after(rpc, 0.01)
    rpc.responses["Runtime.evaluate"] = _ready_states("complete")

    assert selected.navigate("https://example.com", wait_for_readiness=True) is True
    assert "Runtime.evaluate" in rpc.commands()


def test_wait_for_dom_polls_until_complete(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.responses["Runtime.evaluate"] = _ready_states("loading", "interactive", "complete")

    selected.wait_for_dom()

    assert rpc.commands() == ["Runtime.evaluate"] * 3
    assert rpc.sent[0][1] == {"expression": "document.readyState;", "returnByValue": True}
    assert selected.state.is_page_loading is False


def test_wait_for_dom_respects_eager_strategy(rpc: FakeRpcClient, options) -> None:
    debugger = RemoteDebugger(options=options.merged(page_load_strategy="EAGER"), rpc_client=rpc)
    debugger.connect()
    debugger.select_page("PID:1", 1)
    rpc.responses["Runtime.evaluate"] = _ready_states("interactive")

    debugger.wait_for_dom()

    assert rpc.commands().count("Runtime.evaluate") == 1
    debugger.disconnect()


def test_wait_for_dom_times_out_without_raising(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.responses["Runtime.evaluate"] = _ready_states("loading")
    started = time.monotonic()

    selected.wait_for_dom()

    elapsed = time.monotonic() - started
    assert 0.3 <= elapsed < 2
    assert selected.state.page_load_delay is None


def test_wait_for_dom_can_be_cancelled(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    selected.page_load_ms = 5000
    rpc.responses["Runtime.evaluate"] = _ready_states("loading")
    threading.Timer(0.1, selected.cancel_page_load).start()
    started = time.monotonic()

    selected.wait_for_dom()

    assert time.monotonic() - started < 1


def test_readiness_probe_failures_count_as_not_ready(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.responses["Runtime.evaluate"] = TimeoutError("Command Runtime.evaluate timed out")
    assert selected.check_page_is_ready() is False

    rpc.responses["Runtime.evaluate"] = RemoteDebuggerError("Execution context destroyed")
    assert selected.check_page_is_ready() is False


def test_readiness_probe_is_bounded_by_page_ready_timeout(selected: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.responses["Runtime.evaluate"] = "complete"

    assert selected.check_page_is_ready() is True
    assert rpc.sent[-1][2]["timeout"] == pytest.approx(0.1)


def test_frame_detached_is_forwarded(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    detached: list = []
    debugger.on(FramesDetached, detached.append)

    rpc.notify("Page.frameDetached", {"frameId": "f1"})

    assert detached == [FramesDetached()]
