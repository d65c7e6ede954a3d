"""Tests for directory record converters and the load strategy table."""

from __future__ import annotations

import pytest

from conftest import app_dict, page_dict
from wirtap.types import (
    WEB_CONTENT_BUNDLE_ID,
    AutomationState,
    PageLoadStrategy,
    app_ids_for_bundle,
    app_info_from_dict,
    page_array_from_dict,
    strip_pid_prefix,
)


@pytest.mark.parametrize(
    ("strategy", "ready_state", "expected"),
    [
        ("none", "loading", True),
        ("none", "interactive", True),
        ("none", "complete", True),
        ("eager", "loading", False),
        ("eager", "interactive", True),
        ("eager", "complete", True),
        ("normal", "loading", False),
        ("normal", "interactive", False),
        ("normal", "complete", True),
    ],
)
def test_load_strategy_truth_table(strategy: str, ready_state: str, expected: bool) -> None:
    assert PageLoadStrategy.from_name(strategy).is_final(ready_state) is expected


def test_load_strategy_name_is_case_insensitive_and_defaults_to_normal() -> None:
    assert PageLoadStrategy.from_name("EAGER") is PageLoadStrategy.EAGER
    assert PageLoadStrategy.from_name("None") is PageLoadStrategy.NONE
    assert PageLoadStrategy.from_name(None) is PageLoadStrategy.NORMAL
    assert PageLoadStrategy.from_name("bogus") is PageLoadStrategy.NORMAL


def test_app_info_from_dict_reads_wir_keys() -> None:
    app_id, record = app_info_from_dict(
        app_dict("PID:7", "com.example.proxy", name="Proxy", proxy="true", host_id="PID:3", automation=False)
    )

    assert app_id == "PID:7"
    assert record.bundle_id == "com.example.proxy"
    assert record.name == "Proxy"
    assert record.is_proxy is True
    assert record.host_id == "PID:3"
    assert record.is_active is True
    assert record.is_automation_enabled is AutomationState.DISABLED
    assert record.page_array is None


def test_automation_availability_key_wins_over_enabled_flag() -> None:
    raw = app_dict("PID:1", "com.apple.mobilesafari", automation=True)
    raw["WIRAutomationAvailabilityKey"] = "WIRAutomationAvailabilityUnknown"

    _, record = app_info_from_dict(raw)

    assert record.is_automation_enabled is AutomationState.UNKNOWN


def test_page_array_drops_non_web_page_types() -> None:
    pages = page_array_from_dict(
        page_dict(
            (1, "https://a.example/", "A", "WIRTypeWebPage"),
            (2, "", "JSContext", "WIRTypeJavaScript"),
            (3, "https://c.example/", "C"),
        )
    )

    assert [p.id for p in pages] == [1, 3]
    assert pages[0].title == "A"


def test_page_array_marks_the_page_carrying_the_connection() -> None:
    listing = page_dict((1, "https://a.example/"), (2, "https://b.example/"))
    listing["2"]["WIRConnectionIdentifierKey"] = "conn"

    pages = page_array_from_dict(listing)

    assert [p.is_key for p in pages] == [False, True]


def test_app_ids_for_bundle_falls_back_to_web_content_process() -> None:
    apps = dict(
        [
            app_info_from_dict(app_dict("PID:1", WEB_CONTENT_BUNDLE_ID)),
            app_info_from_dict(app_dict("PID:2", "com.other.app")),
        ]
    )

    assert app_ids_for_bundle("com.missing.app", apps) == ["PID:1"]
    assert app_ids_for_bundle("com.other.app", apps) == ["PID:2"]


def test_strip_pid_prefix() -> None:
    assert strip_pid_prefix("PID:42") == "42"
    assert strip_pid_prefix("proxy-key") == "proxy-key"
    assert strip_pid_prefix(None) == ""
