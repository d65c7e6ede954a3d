"""Incoming inspector message dispatch.

Selector messages are re-emitted as named events. Socket data is decoded and
either routed to the response callback (messages with an id) or emitted under
its protocol method name.

PUBLIC API:
  - RpcMessageHandler: Thread-safe listener registry and message dispatcher
"""

import json
import logging
import threading
from typing import Any, Callable

from wirtap.errors import CommandNotFoundError, RemoteDebuggerError

logger = logging.getLogger(__name__)

ResponseCallback = Callable[[str, Any, Exception | None], bool]

DEFAULT_ERROR_MESSAGE = "Error occurred in handling data message"

_TARGET_LIFECYCLE = ("Target.targetCreated", "Target.targetDestroyed", "Target.didCommitProvisionalTarget")


def _truncate(text: str, length: int = 100) -> str:
    return text if len(text) <= length else f"{text[: length - 3]}..."


def _error_from_data(data: dict, result: Any) -> Exception | None:
    if isinstance(result, dict) and result.get("wasThrown"):
        inner = result.get("result") or {}
        message = inner.get("value") or inner.get("description") or data.get("error") or DEFAULT_ERROR_MESSAGE
        return RemoteDebuggerError(str(message))

    error = data.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        message = error.get("message") or DEFAULT_ERROR_MESSAGE
        error_cls = CommandNotFoundError if "was not found" in message else RemoteDebuggerError
        return error_cls(message, code=error.get("code"), data=error.get("data"))
    return RemoteDebuggerError(str(error))


class RpcMessageHandler:
    """Routes decoded inspector messages to listeners.

    Listeners are called as ``listener(*args)`` on the receiving thread and
    must not block on further inspector round-trips.

    Args:
        on_response: Called with (msg_id, result, error) for id-bearing replies.
            Returns True when a caller was waiting for that id.
    """

    def __init__(self, on_response: ResponseCallback | None = None):
        self._on_response = on_response
        self._listeners: dict[str, list[tuple[Callable, bool]]] = {}
        self._lock = threading.Lock()

    def on(self, event: str, listener: Callable) -> None:
        with self._lock:
            self._listeners.setdefault(event, []).append((listener, False))

    def once(self, event: str, listener: Callable) -> None:
        with self._lock:
            self._listeners.setdefault(event, []).append((listener, True))

    def prepend_once(self, event: str, listener: Callable) -> None:
        with self._lock:
            self._listeners.setdefault(event, []).insert(0, (listener, True))

    def off(self, event: str, listener: Callable) -> None:
        """Remove the most recent registration of listener for event."""
        with self._lock:
            entries = self._listeners.get(event, [])
            for i in range(len(entries) - 1, -1, -1):
                if entries[i][0] == listener:
                    del entries[i]
                    break
            if not entries:
                self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._listeners.get(event, []))

    def remove_all(self) -> None:
        with self._lock:
            self._listeners.clear()

    def emit(self, event: str, *args) -> bool:
        """Call every listener for event.

        Returns:
            True if any listener was registered.
        """
        with self._lock:
            entries = list(self._listeners.get(event, []))
            if not entries:
                return False
            remaining = [entry for entry in self._listeners[event] if not entry[1]]
            if remaining:
                self._listeners[event] = remaining
            else:
                self._listeners.pop(event, None)

        for listener, _ in entries:
            try:
                listener(*args)
            except Exception as e:
                logger.error(f"Listener for '{event}' failed: {e}")
        return True

    def handle_message(self, message: dict) -> None:
        """Dispatch one decoded selector message."""
        selector = message.get("__selector")
        if not selector:
            logger.debug("Got an invalid message without a selector")
            return

        argument = message.get("__argument") or {}
        if selector == "_rpc_reportSetup:":
            self.emit(
                selector,
                argument.get("WIRSimulatorNameKey"),
                argument.get("WIRSimulatorBuildKey"),
                argument.get("WIRSimulatorProductVersionKey"),
            )
        elif selector == "_rpc_reportConnectedApplicationList:":
            self.emit(selector, argument.get("WIRApplicationDictionaryKey") or {})
        elif selector == "_rpc_applicationSentListing:":
            # Listings answer connectToApp, which was sent as _rpc_forwardGetListing:
            self.emit(
                "_rpc_forwardGetListing:",
                argument.get("WIRApplicationIdentifierKey"),
                argument.get("WIRListingKey") or {},
            )
        elif selector in (
            "_rpc_applicationConnected:",
            "_rpc_applicationDisconnected:",
            "_rpc_applicationUpdated:",
            "_rpc_reportConnectedDriverList:",
            "_rpc_reportCurrentState:",
        ):
            self.emit(selector, argument)
        elif selector == "_rpc_applicationSentData:":
            self._handle_data_message(argument)
        else:
            logger.debug(f"Debugger got a message for '{selector}' and has no handler, doing nothing")

    def _parse_data_key(self, argument: dict) -> dict:
        raw = argument.get("WIRMessageDataKey")
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        if isinstance(raw, dict):
            return raw
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"Unparseable message data: {_truncate(json.dumps(argument, default=str))}")
            raise ValueError(f"Unable to parse message data: {e}") from e

    def _handle_data_message(self, argument: dict) -> None:
        data = self._parse_data_key(argument)
        msg_id = "" if data.get("id") is None else str(data["id"])
        method = data.get("method")
        params = data.get("params") or {}
        result = data.get("result")

        if method in _TARGET_LIFECYCLE:
            app_id = argument.get("WIRApplicationIdentifierKey")
            if method == "Target.didCommitProvisionalTarget":
                info = params
            else:
                info = params.get("targetInfo") or {"targetId": params.get("targetId")}
            self.emit(method, app_id, info)
            return

        if method == "Target.dispatchMessageFromTarget" and not data.get("error"):
            try:
                inner = json.loads(params["message"])
            except (KeyError, TypeError, ValueError):
                logger.error(f"Unexpected message format from Web Inspector: {json.dumps(argument, default=str)}")
                raise
            msg_id = "" if inner.get("id") is None else str(inner["id"])
            method = inner.get("method")
            result = inner.get("result") or inner
            params = result.get("params") if isinstance(result, dict) else None
            data = inner

        self._dispatch(msg_id, method, params, result, _error_from_data(data, result))

    def _dispatch(self, msg_id: str, method: str | None, params: Any, result: Any, error: Exception | None) -> None:
        if msg_id:
            if isinstance(result, dict) and isinstance(result.get("result"), dict) and "value" in result["result"]:
                result = result["result"]["value"]
            handled = self._on_response(msg_id, result, error) if self._on_response else False
            if not handled:
                logger.debug(
                    f"Web Inspector returned data for message '{msg_id}' but we were not waiting for it: "
                    f"{_truncate(json.dumps(result, default=str), 200)}"
                )
            return

        if not method:
            return
        if error:
            logger.warning(f"Web Inspector event '{method}' carried an error: {error}")

        arg = params
        if method in ("Page.frameStoppedLoading", "Page.frameNavigated"):
            arg = f"'{method}' event"
        elif method == "Timeline.eventRecorded":
            arg = (params or {}).get("record", params) if isinstance(params, dict) else params
        elif method == "Console.messageAdded":
            arg = (params or {}).get("message")
        elif method == "Runtime.executionContextCreated":
            arg = (params or {}).get("context")

        self.emit(method, arg)
        if method == "Page.frameStoppedLoading":
            self.emit("Page.frameNavigated", arg)
        # Catch-all events also carry the originating method
        if method.startswith("Network."):
            self.emit("NetworkEvent", arg, method)
        if method.startswith("Console."):
            self.emit("ConsoleEvent", arg, method)


__all__ = ["RpcMessageHandler"]
