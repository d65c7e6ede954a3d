"""Tests for the session event bus."""

from __future__ import annotations

import pytest

from wirtap.events import Disconnected, EventBus, FramesDetached, PageChanged


def test_listeners_receive_events_of_their_type_only() -> None:
    bus = EventBus()
    changes: list = []
    detaches: list = []
    bus.on(PageChanged, changes.append)
    bus.on(FramesDetached, detaches.append)

    bus.emit(PageChanged(app_id="1"))

    assert changes == [PageChanged(app_id="1")]
    assert detaches == []


def test_failing_listener_does_not_stop_the_others() -> None:
    bus = EventBus()
    received: list = []

    def broken(event) -> None:
        raise RuntimeError("listener bug")

    bus.on(Disconnected, broken)
    bus.on(Disconnected, received.append)

    bus.emit(Disconnected())

    assert received == [Disconnected()]


def test_off_removes_one_registration() -> None:
    bus = EventBus()
    received: list = []
    bus.on(Disconnected, received.append)

    assert bus.off(Disconnected, received.append) is True
    assert bus.off(Disconnected, received.append) is False
    bus.emit(Disconnected())

    assert received == []


def test_remove_all_clears_every_type() -> None:
    bus = EventBus()
    bus.on(PageChanged, lambda event: None)
    bus.on(Disconnected, lambda event: None)

    bus.remove_all()

    assert bus.listener_count(PageChanged) == 0
    assert bus.listener_count(Disconnected) == 0


def test_unknown_event_type_is_rejected() -> None:
    with pytest.raises(ValueError):
        EventBus().on(dict, lambda event: None)
