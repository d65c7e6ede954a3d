"""Page navigation and readiness.

navigate races a cancellable page-load delay against the inspector's
Page.loadEventFired notification. wait_for_dom polls document.readyState with
exponential back-off until the load strategy is satisfied.

PUBLIC API:
  - NavigationService: Navigation, readiness polling and page-load cancellation
"""

import logging
import threading
import time
from typing import TYPE_CHECKING

from wirtap.delay import CancellableDelay
from wirtap.errors import ConsoleForwardingError, NotConnectedError, WirTapError
from wirtap.events import FramesDetached
from wirtap.types import PageLoadStrategy
from wirtap.utils import check_params, validate_url

if TYPE_CHECKING:
    from wirtap.debugger import RemoteDebugger

logger = logging.getLogger(__name__)

PAGE_READINESS_CHECK_INTERVAL_MS = 50
MIN_READINESS_CHECK_INTERVAL_MS = 10
CONSOLE_ENABLE_TIMEOUT_MS = 5000
READY_STATE_EXPRESSION = "document.readyState;"


class NavigationService:
    """Drives navigation and page-readiness waits for a session.

    Args:
        session: Owning debugger.
    """

    def __init__(self, session: "RemoteDebugger"):
        self.session = session

    def is_page_loading_completed(self, ready_state: str | None) -> bool:
        """Whether ready_state counts as loaded under the configured strategy."""
        return PageLoadStrategy.from_name(self.session.page_load_strategy).is_final(ready_state)

    def frame_detached(self, *args) -> None:
        self.session.events.emit(FramesDetached())

    def cancel_page_load(self) -> None:
        """Abort any pending navigation or readiness wait."""
        logger.debug("Unregistering from page readiness notifications")
        state = self.session.state
        state.is_page_loading = False
        if state.page_load_delay:
            state.page_load_delay.cancel()

    def check_page_is_ready(self, timeout_ms: float | None = None) -> bool:
        """Probe document.readyState once.

        A probe timeout or failure counts as "not ready yet".
        """
        actual_timeout_ms = timeout_ms if timeout_ms is not None else self.session.options.page_ready_timeout_ms
        actual_timeout_ms = max(MIN_READINESS_CHECK_INTERVAL_MS, actual_timeout_ms)
        try:
            ready_state = self.session.execute(READY_STATE_EXPRESSION, timeout_ms=actual_timeout_ms)
        except TimeoutError:
            logger.debug(f"Page readiness check timed out after {actual_timeout_ms:.0f}ms")
            return False
        except WirTapError as e:
            logger.warning(f"Page readiness check has failed. Original error: {e}")
            return False

        logger.debug(f"readyState: {ready_state!r}, pageLoadStrategy: {self.session.page_load_strategy}")
        return self.is_page_loading_completed(ready_state)

    def wait_for_dom(self, started: float | None = None) -> None:
        """Poll until the page is ready, the wait is cancelled or time runs out.

        Never raises on timeout; it logs and returns.

        Args:
            started: time.monotonic() at which the page load began, so a
                preceding navigation counts against the same budget.
        """
        timeout_ms = self.session.page_load_ms
        logger.debug(f"Waiting up to {timeout_ms}ms for the page to be ready")
        started = started if started is not None else time.monotonic()
        state = self.session.state

        delay = CancellableDelay(max(0.0, timeout_ms / 1000 - (time.monotonic() - started)))
        state.page_load_delay = delay
        state.is_page_loading = True

        retry = 0
        try:
            while True:
                elapsed_ms = (time.monotonic() - started) * 1000
                interval_ms = min(PAGE_READINESS_CHECK_INTERVAL_MS * 2**retry, timeout_ms - elapsed_ms)
                interval_ms = max(MIN_READINESS_CHECK_INTERVAL_MS, interval_ms)

                if delay.sleep(interval_ms / 1000) or not state.is_page_loading:
                    logger.debug("Page readiness wait was cancelled")
                    return
                # Resolution may have dropped the app while we slept
                if not state.app_id_key:
                    logger.debug("Not connected to an application. Ignoring page readiness check")
                    return

                elapsed_ms = (time.monotonic() - started) * 1000
                if self.check_page_is_ready((timeout_ms - elapsed_ms) * 0.95):
                    logger.debug(f"Page is ready in {(time.monotonic() - started) * 1000:.0f}ms")
                    return
                if elapsed_ms > timeout_ms or delay.remaining <= 0:
                    logger.info(f"Timed out after {timeout_ms}ms of waiting for the page readiness. Continuing anyway")
                    return
                retry += 1
        finally:
            state.is_page_loading = False
            state.page_load_delay = None

    def nav_to_url(self, url: str) -> bool:
        """Navigate the selected page and wait for the load signal.

        Args:
            url: Absolute URL to load.

        Returns:
            True if Page.loadEventFired arrived before the page-load timeout.

        Raises:
            MissingParametersError: If no app or page is selected.
            InvalidUrlError: If url is malformed.
            NotConnectedError: If the transport closed during navigation.
            ConsoleForwardingError: If console forwarding could not be restored.
        """
        state = self.session.state
        check_params({"appIdKey": state.app_id_key, "pageIdKey": state.page_id_key})
        validate_url(url)
        rpc = self.session.require_rpc_client(check_connected=True)
        app_id_key, page_id_key = state.app_id_key, state.page_id_key

        logger.debug(f"Navigating to new URL: '{url}'")
        directory = self.session.directory
        directory.set_navigating(True)

        loaded = threading.Event()
        started = time.monotonic()
        delay = CancellableDelay(self.session.page_load_ms / 1000)

        def on_page_loaded(*args):
            loaded.set()
            delay.cancel()

        try:
            rpc.wait_for_page(app_id_key, page_id_key)
            state.page_load_delay = delay
            state.is_page_loading = True
            rpc.once("Page.loadEventFired", on_page_loaded)
            rpc.send("Page.navigate", {"url": url}, app_id_key=app_id_key, page_id_key=page_id_key, wait_for_response=False)

            delay.wait()
            elapsed_ms = (time.monotonic() - started) * 1000
            if loaded.is_set():
                logger.debug(f"The page {url} is ready in {elapsed_ms:.0f}ms")
            elif delay.cancelled:
                logger.debug(f"Navigation to {url} was cancelled after {elapsed_ms:.0f}ms")
            else:
                logger.info(
                    f"Timed out after {elapsed_ms:.0f}ms of waiting for the {url} page readiness. Continuing anyway"
                )
        finally:
            state.is_page_loading = False
            state.page_load_delay = None
            directory.set_navigating(False)
            rpc.off("Page.loadEventFired", on_page_loaded)

        if not loaded.is_set() and not rpc.is_connected:
            raise NotConnectedError(f"Inspector connection closed while navigating to {url}")

        self._restore_console_forwarding(app_id_key, page_id_key)
        return loaded.is_set()

    def _restore_console_forwarding(self, app_id_key: str, page_id_key) -> None:
        if not self.session.misc.console_forwarding:
            return
        try:
            self.session.require_rpc_client().send(
                "Console.enable",
                {},
                app_id_key=app_id_key,
                page_id_key=page_id_key,
                timeout=CONSOLE_ENABLE_TIMEOUT_MS / 1000,
            )
        except (WirTapError, TimeoutError) as e:
            raise ConsoleForwardingError(f"Could not re-enable console events after navigation: {e}") from e


__all__ = ["NavigationService"]
