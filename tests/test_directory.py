"""Tests for the application directory notification handlers."""

from __future__ import annotations

import threading

from conftest import BUNDLE_ID, FakeRpcClient, app_dict, page_dict
from wirtap.debugger import RemoteDebugger
from wirtap.events import Disconnected, PageChanged


def _record_events(debugger: RemoteDebugger, event_type: type) -> list:
    received: list = []
    debugger.on(event_type, received.append)
    return received


def test_app_connect_stores_record_and_selects_matching_app(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:9", "com.unrelated"))
    assert debugger.state.app_id_key is None

    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID))

    assert set(debugger.app_dict) == {"PID:9", "PID:1"}
    assert debugger.state.app_id_key == "PID:1"


def test_app_connect_prefers_the_last_proxy_for_the_bundle(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID))
    debugger.state.app_id_key = None
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:2", "com.proxy.a", proxy=True, host_id="PID:1"))
    debugger.state.app_id_key = None
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:3", "com.proxy.b", proxy=True, host_id="PID:1"))

    assert debugger.state.app_id_key == "PID:3"
    assert debugger.get_debugger_app_key(BUNDLE_ID) == "PID:3"


def test_app_update_preserves_known_pages(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID))
    rpc.notify("_rpc_forwardGetListing:", "PID:1", page_dict((1, "https://a.example/")))

    rpc.notify("_rpc_applicationUpdated:", app_dict("PID:1", BUNDLE_ID, name="Renamed"))

    record = debugger.app_dict["PID:1"]
    assert record.name == "Renamed"
    assert [p.url for p in record.page_array] == ["https://a.example/"]


def test_page_change_emits_once_per_distinct_listing(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    changes = _record_events(debugger, PageChanged)
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID))
    listing = page_dict((1, "https://a.example/", "A"))

    rpc.notify("_rpc_forwardGetListing:", "PID:1", listing)
    rpc.notify("_rpc_forwardGetListing:", "PID:1", listing)

    assert len(changes) == 1
    assert changes[0].app_id == "1"
    assert [p.url for p in changes[0].pages] == ["https://a.example/"]


def test_page_change_is_suppressed_while_navigating(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    changes = _record_events(debugger, PageChanged)
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID))

    debugger.directory.set_navigating(True)
    rpc.notify("_rpc_forwardGetListing:", "PID:1", page_dict((1, "https://a.example/")))
    debugger.directory.set_navigating(False)

    assert changes == []
    assert [p.url for p in debugger.app_dict["PID:1"].page_array] == ["https://a.example/"]


def test_empty_page_listing_is_ignored(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    changes = _record_events(debugger, PageChanged)
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID))

    rpc.notify("_rpc_forwardGetListing:", "PID:1", {})

    assert changes == []
    assert debugger.app_dict["PID:1"].page_array is None


def test_disconnect_of_selected_app_picks_replacement(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID))
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:2", BUNDLE_ID))
    assert debugger.state.app_id_key == "PID:1"

    rpc.notify("_rpc_applicationDisconnected:", {"WIRApplicationIdentifierKey": "PID:1"})

    assert debugger.state.app_id_key == "PID:2"


def test_last_app_disconnect_emits_disconnected(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    disconnects = _record_events(debugger, Disconnected)
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID))

    rpc.notify("_rpc_applicationDisconnected:", {"WIRApplicationIdentifierKey": "PID:1"})

    assert debugger.app_dict == {}
    assert debugger.state.app_id_key is None
    assert disconnects == [Disconnected()]


def test_connected_application_list_skips_named_apps_and_keeps_existing(
    rpc: FakeRpcClient, options
) -> None:
    debugger = RemoteDebugger(options=options.merged(skipped_apps=["lockdownd"]), rpc_client=rpc)
    debugger.connect()
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID, name="Original"))

    rpc.notify(
        "_rpc_reportConnectedApplicationList:",
        {
            "PID:1": app_dict("PID:1", BUNDLE_ID, name="FromList"),
            "PID:5": app_dict("PID:5", "com.apple.lockdownd", name="lockdownd"),
            "PID:6": app_dict("PID:6", "com.other"),
        },
    )

    apps = debugger.app_dict
    assert set(apps) == {"PID:1", "PID:6"}
    assert apps["PID:1"].name == "Original"
    debugger.disconnect()


def test_driver_list_and_current_state_reports(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.notify("_rpc_reportConnectedDriverList:", {"WIRDriverDictionaryKey": [{"id": "d1"}]})
    rpc.notify("_rpc_reportCurrentState:", {"WIRAutomationAvailabilityKey": "WIRAutomationAvailabilityAvailable"})

    assert debugger.connected_drivers == [{"id": "d1"}]
    assert debugger.current_state == "WIRAutomationAvailabilityAvailable"


def test_snapshot_is_isolated_from_the_directory(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    rpc.notify("_rpc_applicationConnected:", app_dict("PID:1", BUNDLE_ID))

    snapshot = debugger.app_dict
    snapshot["PID:1"].name = "mutated"
    snapshot.pop("PID:1")

    assert debugger.app_dict["PID:1"].name != "mutated"


def test_concurrent_notifications_leave_a_consistent_directory(debugger: RemoteDebugger, rpc: FakeRpcClient) -> None:
    def connect_many(offset: int) -> None:
        for i in range(50):
            rpc.notify("_rpc_applicationConnected:", app_dict(f"PID:{offset + i}", f"com.example.app{offset + i}"))

    threads = [threading.Thread(target=connect_many, args=(n * 100,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(debugger.app_dict) == 200
