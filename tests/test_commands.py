"""Tests for REPL command helpers."""

from __future__ import annotations

from types import SimpleNamespace

from conftest import FakeRpcClient
from wirtap.commands._errors import check_connection, check_selection
from wirtap.commands._utils import truncate_string
from wirtap.debugger import RemoteDebugger


def test_truncate_string() -> None:
    assert truncate_string("short", 10) == "short"
    assert truncate_string("a" * 20, 10) == "aaaaaaa..."


def test_checks_report_missing_connection_and_page(options, rpc: FakeRpcClient) -> None:
    state = SimpleNamespace(debugger=None)
    assert isinstance(check_connection(state), dict)

    state.debugger = RemoteDebugger(options=options, rpc_client=rpc)
    state.debugger.connect()
    assert check_connection(state) is None
    assert isinstance(check_selection(state), dict)

    state.debugger.select_page("PID:1", 1, skip_ready_check=True)
    assert check_selection(state) is None
    state.debugger.disconnect()
