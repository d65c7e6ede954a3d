"""Shared pytest fixtures: a scripted inspector transport and session factories."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from wirtap.config import DebuggerOptions
from wirtap.debugger import RemoteDebugger
from wirtap.errors import NotConnectedError
from wirtap.rpc.client import RpcClient

BUNDLE_ID = "com.example.app"


class FakeRpcClient(RpcClient):
    """RpcClient whose replies are scripted per command.

    ``responses`` maps a command name to a value, an exception instance, or a
    callable ``(params, kwargs) -> value``. ``select_app_outcomes`` maps an
    application key to a list of outcomes consumed in order; the last one
    repeats.
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.sent: list[tuple[str, dict, dict]] = []
        self.responses: dict[str, Any] = {}
        self.select_app_outcomes: dict[str, list] = {}
        self.select_app_calls: list[str] = []
        self.selected_pages: list[tuple] = []
        self.connect_calls = 0
        self._timers: list[threading.Timer] = []

    def connect(self) -> None:
        self.connect_calls += 1
        self._connected.set()

    def disconnect(self) -> None:
        super().disconnect()
        self._handle_transport_closed("disconnected")

    def _send_message(self, message: dict) -> None:
        pass

    def send(self, command: str, params: dict | None = None, **kwargs: Any) -> Any:
        if not self.is_connected:
            raise NotConnectedError("The RPC client is not connected")
        self.sent.append((command, params or {}, kwargs))
        response = self.responses.get(command)
        if callable(response):
            response = response(params or {}, kwargs)
        if isinstance(response, BaseException):
            raise response
        return response

    def select_app(self, app_id_key: str, timeout: float | None = None) -> tuple[str, dict]:
        self.select_app_calls.append(app_id_key)
        outcomes = self.select_app_outcomes.get(app_id_key)
        if not outcomes:
            raise TimeoutError(f"Command connectToApp timed out for app '{app_id_key}'")
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if callable(outcome):
            outcome = outcome()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def select_page(self, app_id_key: str, page_id_key: Any, detector: Any = None) -> None:
        self.selected_pages.append((app_id_key, page_id_key, detector))

    def wait_for_page(self, app_id_key: str, page_id_key: Any) -> None:
        pass

    def commands(self) -> list[str]:
        return [command for command, _, _ in self.sent]

    def notify(self, event: str, *args: Any) -> None:
        """Deliver a notification as if it came from the socket."""
        self.message_handler.emit(event, *args)

    def notify_later(self, delay: float, event: str, *args: Any) -> None:
        timer = threading.Timer(delay, self.notify, args=(event, *args))
        timer.daemon = True
        self._timers.append(timer)
        timer.start()

    def close_later(self, delay: float, reason: str = "remote closed") -> None:
        timer = threading.Timer(delay, self._handle_transport_closed, args=(reason,))
        timer.daemon = True
        self._timers.append(timer)
        timer.start()

    def cancel_timers(self) -> None:
        for timer in self._timers:
            timer.cancel()


def app_dict(
    app_id: str,
    bundle_id: str,
    name: str | None = None,
    active: bool = True,
    proxy: bool = False,
    host_id: str | None = None,
    automation: bool | None = True,
) -> dict:
    """Raw application report as the inspector sends it."""
    raw = {
        "WIRApplicationIdentifierKey": app_id,
        "WIRApplicationBundleIdentifierKey": bundle_id,
        "WIRApplicationNameKey": name or bundle_id.rsplit(".", 1)[-1],
        "WIRIsApplicationActiveKey": 1 if active else 0,
        "WIRIsApplicationProxyKey": proxy,
    }
    if host_id:
        raw["WIRHostApplicationIdentifierKey"] = host_id
    if automation is not None:
        raw["WIRRemoteAutomationEnabledKey"] = automation
    return raw


def page_dict(*pages: tuple) -> dict:
    """Raw page listing from (id, url[, title[, type]]) tuples."""
    listing = {}
    for entry in pages:
        page_id, url = entry[0], entry[1]
        raw = {"WIRPageIdentifierKey": page_id, "WIRURLKey": url, "WIRTitleKey": entry[2] if len(entry) > 2 else ""}
        if len(entry) > 3:
            raw["WIRTypeKey"] = entry[3]
        listing[str(page_id)] = raw
    return listing


@pytest.fixture
def rpc() -> FakeRpcClient:
    client = FakeRpcClient()
    yield client
    client.cancel_timers()


@pytest.fixture
def options() -> DebuggerOptions:
    return DebuggerOptions(
        bundle_id=BUNDLE_ID,
        page_load_ms=400,
        page_ready_timeout_ms=100,
        select_app_retries=3,
        select_app_retry_interval_ms=10,
    )


@pytest.fixture
def debugger(rpc: FakeRpcClient, options: DebuggerOptions) -> RemoteDebugger:
    session = RemoteDebugger(options=options, rpc_client=rpc)
    session.connect()
    yield session
    session.disconnect()


@pytest.fixture
def selected(debugger: RemoteDebugger, rpc: FakeRpcClient) -> RemoteDebugger:
    """Session with application PID:1 and page 1 selected."""
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID))
    debugger.select_page("PID:1", 1)
    rpc.sent.clear()
    return debugger
