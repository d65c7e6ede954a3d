"""Inspector passthroughs and client event forwarding.

Cookies, screenshots, timeline recording and console/network forwarding are
thin wrappers around single inspector commands on the selected page.

PUBLIC API:
  - MiscService: Passthrough commands and client listener bookkeeping
"""

import logging
import re
import threading
from typing import TYPE_CHECKING, Any, Callable

from wirtap.errors import RemoteDebuggerError
from wirtap.types import SAFARI_BUNDLE_ID

if TYPE_CHECKING:
    from wirtap.debugger import RemoteDebugger

logger = logging.getLogger(__name__)

CONSOLE_EVENTS = ("Console.messageAdded", "Console.messageRepeatCountUpdated")
NETWORK_EVENT = "NetworkEvent"
PNG_DATA_URL_PREFIX = re.compile(r"^data:image/png;base64,")
VIEWPORT_RECT_SCRIPT = "return {x: 0, y: 0, width: window.innerWidth, height: window.innerHeight}"


class MiscService:
    """Single-command helpers bound to the selected page.

    Args:
        session: Owning debugger.
    """

    def __init__(self, session: "RemoteDebugger"):
        self.session = session
        self._client_listeners: dict[str, list[Callable]] = {}
        self._timeline_listener: Callable | None = None
        self._lock = threading.Lock()

    def _send(self, command: str, params: dict | None = None, **kwargs) -> Any:
        state = self.session.state
        return self.session.require_rpc_client().send(
            command, params or {}, app_id_key=state.app_id_key, page_id_key=state.page_id_key, **kwargs
        )

    # Cookies

    def get_cookies(self) -> dict:
        logger.debug("Getting cookies")
        return self._send("Page.getCookies")

    def set_cookie(self, cookie: dict) -> Any:
        logger.debug("Setting cookie")
        return self._send("Page.setCookie", {"cookie": cookie})

    def delete_cookie(self, cookie_name: str, url: str) -> Any:
        logger.debug(f"Deleting cookie '{cookie_name}' on '{url}'")
        return self._send("Page.deleteCookie", {"cookieName": cookie_name, "url": url})

    # Page

    def capture_screenshot(self, rect: dict | None = None, coordinate_system: str = "Viewport") -> str:
        """Capture the viewport or rect as base64 PNG data.

        Args:
            rect: Dict with x, y, width and height. Defaults to the viewport.
            coordinate_system: "Viewport" or "Page".

        Returns:
            Base64 PNG payload without the data URL prefix.

        Raises:
            RemoteDebuggerError: If the inspector reports a capture error.
        """
        logger.debug("Capturing screenshot")
        if rect is None:
            rect = self.session.execute_atom("execute_script", [VIEWPORT_RECT_SCRIPT, []])
        response = self._send("Page.snapshotRect", {**rect, "coordinateSystem": coordinate_system}) or {}
        if response.get("error"):
            raise RemoteDebuggerError(str(response["error"]))
        return PNG_DATA_URL_PREFIX.sub("", response.get("dataURL", ""))

    def override_user_agent(self, value: str) -> Any:
        logger.debug("Setting overrideUserAgent")
        return self._send("Page.overrideUserAgent", {"value": value})

    def launch_safari(self) -> None:
        self.session.require_rpc_client().send("launchApplication", bundle_id=SAFARI_BUNDLE_ID)

    # Timeline

    def start_timeline(self, listener: Callable) -> Any:
        logger.debug("Starting to record the timeline")
        rpc = self.session.require_rpc_client()
        if self._timeline_listener:
            rpc.off("Timeline.eventRecorded", self._timeline_listener)
        self._timeline_listener = listener
        rpc.on("Timeline.eventRecorded", listener)
        return self._send("Timeline.start")

    def stop_timeline(self) -> None:
        logger.debug("Stopping to record the timeline")
        listener, self._timeline_listener = self._timeline_listener, None
        if listener:
            self.session.require_rpc_client().off("Timeline.eventRecorded", listener)
        self._send("Timeline.stop")

    # Client event forwarding

    def add_client_event_listener(self, event_name: str, listener: Callable) -> None:
        """Forward inspector event_name to listener until removed."""
        with self._lock:
            self._client_listeners.setdefault(event_name, []).append(listener)
        self.session.require_rpc_client().on(event_name, listener)

    def remove_client_event_listener(self, event_name: str) -> None:
        """Remove every listener added for event_name."""
        with self._lock:
            listeners = self._client_listeners.pop(event_name, [])
        rpc = self.session.rpc_client
        if not rpc:
            return
        for listener in listeners:
            rpc.off(event_name, listener)

    def client_listener_count(self, event_name: str) -> int:
        with self._lock:
            return len(self._client_listeners.get(event_name, []))

    def clear_client_listeners(self) -> None:
        with self._lock:
            self._client_listeners.clear()
        self._timeline_listener = None

    @property
    def console_forwarding(self) -> bool:
        """Whether console events are currently forwarded to a client."""
        return any(self.client_listener_count(event) for event in CONSOLE_EVENTS)

    def start_console(self, listener: Callable) -> None:
        logger.debug("Starting to listen for JavaScript console")
        for event in CONSOLE_EVENTS:
            self.add_client_event_listener(event, listener)

    def stop_console(self) -> None:
        logger.debug("Stopping to listen for JavaScript console")
        for event in CONSOLE_EVENTS:
            self.remove_client_event_listener(event)

    def start_network(self, listener: Callable) -> None:
        logger.debug("Starting to listen for network events")
        self.add_client_event_listener(NETWORK_EVENT, listener)

    def stop_network(self) -> None:
        logger.debug("Stopping to listen for network events")
        self.remove_client_event_listener(NETWORK_EVENT)


__all__ = ["MiscService"]
