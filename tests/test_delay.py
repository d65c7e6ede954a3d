"""Tests for the cancellable delay primitive."""

from __future__ import annotations

import threading
import time

from wirtap.delay import CancellableDelay


def test_wait_expires_naturally() -> None:
    delay = CancellableDelay(0.05)
    started = time.monotonic()

    assert delay.wait() is False
    assert time.monotonic() - started >= 0.04
    assert delay.remaining == 0


def test_cancel_from_another_thread_cuts_wait_short() -> None:
    delay = CancellableDelay(5)
    threading.Timer(0.05, delay.cancel).start()
    started = time.monotonic()

    assert delay.wait() is True
    assert time.monotonic() - started < 1
    assert delay.cancelled


def test_cancel_is_idempotent_and_wait_after_cancel_returns_immediately() -> None:
    delay = CancellableDelay(5)
    delay.cancel()
    delay.cancel()

    assert delay.wait() is True
    assert delay.sleep(5) is True


def test_sleep_waits_a_slice_without_cancelling() -> None:
    delay = CancellableDelay(5)

    assert delay.sleep(0.01) is False
    assert not delay.cancelled
    assert 4 < delay.remaining <= 5


def test_negative_duration_is_clamped() -> None:
    assert CancellableDelay(-1).wait() is False
