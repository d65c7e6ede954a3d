"""Transport-independent Web Inspector RPC client.

Tracks request/response pairs with Futures, keeps the app/page to target map
current from Target.* notifications, and runs the page attach sequence.
Subclasses supply the socket: connect(), disconnect() and _send_message().

PUBLIC API:
  - RpcClient: Base client used by RemoteDebugger
  - PageReadinessDetector: Readiness check handed to select_page
  - TRANSPORT_CLOSED: Event emitted when the underlying socket closes
"""

import json
import logging
import threading
import time
import uuid
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass
from typing import Any, Callable

from wirtap.errors import (
    EmptyPageDictionaryError,
    NewAppConnectedError,
    NotConnectedError,
    WirTapError,
)
from wirtap.rpc.handler import RpcMessageHandler
from wirtap.rpc.messages import RemoteMessages, is_direct_command
from wirtap.utils import convert_javascript_evaluation_result

logger = logging.getLogger(__name__)

TRANSPORT_CLOSED = "_wirtap_transportClosed"

DATA_LOG_LENGTH = 200
MIN_WAIT_FOR_TARGET_TIMEOUT_MS = 30000
DEFAULT_TARGET_CREATION_TIMEOUT_MS = 3 * 60 * 1000
WAIT_FOR_TARGET_INTERVAL = 0.1
DEFAULT_COMMAND_TIMEOUT = 30.0

NO_TARGET_SUPPORTED_ERROR = "'target' domain was not found"
NO_TARGET_PRESENT_YET_ERRORS = ("domain was not found", "some arguments of method", "missing target")
MISSING_TARGET_ERROR = "missing target"

SELECTOR_COMMANDS = ("setConnectionKey", "indicateWebView", "connectToApp", "setSenderKey", "launchApplication")

# Domain enable order matters to the inspector
SIMPLE_INIT_SEQUENCE = (
    "Inspector.enable",
    "Page.enable",
    "Runtime.enable",
    "Network.enable",
    "Heap.enable",
    "Debugger.enable",
    "Console.enable",
    "Inspector.initialized",
)

FULL_INIT_SEQUENCE = (
    ("Inspector.enable", {}),
    ("Page.enable", {}),
    ("Runtime.enable", {}),
    ("Page.getResourceTree", {}),
    ("Network.enable", {}),
    ("Network.setResourceCachingDisabled", {"disabled": False}),
    ("DOMStorage.enable", {}),
    ("Database.enable", {}),
    ("IndexedDB.enable", {}),
    ("CSS.enable", {}),
    ("Heap.enable", {}),
    ("Memory.enable", {}),
    ("ApplicationCache.enable", {}),
    ("ApplicationCache.getFramesWithManifests", {}),
    ("Timeline.setInstruments", {"instruments": ["Timeline", "ScriptProfiler", "CPU"]}),
    ("Timeline.setAutoCaptureEnabled", {"enabled": False}),
    ("Debugger.enable", {}),
    ("Debugger.setBreakpointsActive", {"active": True}),
    ("Debugger.setPauseOnExceptions", {"state": "none"}),
    ("Debugger.setPauseOnAssertions", {"enabled": False}),
    ("Debugger.setAsyncStackTraceDepth", {"depth": 200}),
    ("Debugger.setPauseForInternalScripts", {"shouldPause": False}),
    ("LayerTree.enable", {}),
    ("Worker.enable", {}),
    ("Canvas.enable", {}),
    ("Console.enable", {}),
    ("DOM.getDocument", {}),
    ("Console.getLoggingChannels", {}),
    ("Inspector.initialized", {}),
)


@dataclass
class PageReadinessDetector:
    """How long to wait for a freshly attached page and what counts as ready."""

    timeout_ms: float
    readiness_detector: Callable[[str], bool]


@dataclass
class _PendingPage:
    app_id_key: str
    page_id_key: Any
    detector: PageReadinessDetector | None = None


def _settle(future: Future, result: Any = None, error: BaseException | None = None) -> None:
    try:
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)
    except InvalidStateError:
        pass


def _truncate(value: Any, length: int = DATA_LOG_LENGTH) -> str:
    text = json.dumps(value, default=str)
    return text if len(text) <= length else f"{text[: length - 3]}..."


class RpcClient:
    """Base Web Inspector client.

    Attributes:
        conn_id: Connection identifier sent with every message.
        sender_id: Sender identifier used once a page is attached.
        targets: App id -> page id -> target id.
        contexts: Execution context ids reported by Runtime.
    """

    def __init__(
        self,
        bundle_id: str | None = None,
        is_safari: bool = True,
        log_all_communication: bool = False,
        full_page_initialization: bool = False,
        page_load_timeout_ms: float | None = None,
        target_creation_timeout_ms: float = DEFAULT_TARGET_CREATION_TIMEOUT_MS,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ):
        self.bundle_id = bundle_id
        self.is_safari = is_safari
        self.log_all_communication = log_all_communication
        self.full_page_initialization = full_page_initialization
        self.page_load_timeout_ms = page_load_timeout_ms
        self.target_creation_timeout_ms = target_creation_timeout_ms
        self.command_timeout = command_timeout

        self.conn_id = str(uuid.uuid4())
        self.sender_id = str(uuid.uuid4())
        self._connected = threading.Event()

        # Request/response tracking
        self._next_id = 0
        self._pending: dict[int, tuple[Future, int | None]] = {}
        self._acks: dict[int, int] = {}
        self._lock = threading.Lock()

        # Target bookkeeping
        self.targets: dict[str, dict] = {}
        self.contexts: list = []
        self._pending_page: _PendingPage | None = None
        self._provisioned_pages: set = set()
        self._locks: dict[str, threading.Lock] = {}
        self._initialized: dict[str, threading.Event] = {}

        self.remote_messages = RemoteMessages()
        self.message_handler = RpcMessageHandler(on_response=self._on_response)
        self._register_internal_handlers()

    def _register_internal_handlers(self) -> None:
        self.message_handler.on("Target.targetCreated", self._on_target_created)
        self.message_handler.on("Target.didCommitProvisionalTarget", self.update_target)
        self.message_handler.on("Target.targetDestroyed", self.remove_target)
        self.message_handler.on("Runtime.executionContextCreated", self._on_execution_context_created)
        self.message_handler.on("Heap.garbageCollected", self._on_garbage_collected)

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    # Listener registration

    def on(self, event: str, listener: Callable) -> None:
        self.message_handler.on(event, listener)

    def once(self, event: str, listener: Callable) -> None:
        self.message_handler.once(event, listener)

    def off(self, event: str, listener: Callable) -> None:
        self.message_handler.off(event, listener)

    # Lifecycle, implemented by transports

    def connect(self) -> None:
        raise NotImplementedError("Transports must implement connect()")

    def disconnect(self) -> None:
        """Drop all listeners. Transports close their socket after this."""
        self.message_handler.remove_all()
        self._register_internal_handlers()

    def _send_message(self, message: dict) -> None:
        raise NotImplementedError("Transports must implement _send_message()")

    def receive(self, message: dict) -> None:
        """Feed one decoded selector message from the socket."""
        if not self.is_connected or not message:
            return
        if self.log_all_communication:
            logger.debug(f"Received: {_truncate(message)}")
        try:
            self.message_handler.handle_message(message)
        except Exception as e:
            logger.error(f"Error handling inspector message: {e}")

    def _handle_transport_closed(self, reason: str | None = None) -> None:
        """Fail every pending request and notify listeners."""
        was_connected = self._connected.is_set()
        self._connected.clear()

        with self._lock:
            pending = [future for future, _ in self._pending.values()]
            self._pending.clear()
            self._acks.clear()

        for future in pending:
            _settle(future, error=NotConnectedError(f"Inspector connection closed: {reason or 'Unknown'}"))

        if was_connected:
            self.message_handler.emit(TRANSPORT_CLOSED, reason)

    # Sending

    def send(
        self,
        command: str,
        params: dict | None = None,
        *,
        app_id_key: str | None = None,
        page_id_key: Any = None,
        target_id: str | None = None,
        wait_for_response: bool = True,
        timeout: float | None = None,
        **extra,
    ) -> Any:
        """Send a selector or protocol command.

        Retries once when the page target is not known yet.

        Args:
            command: Selector command name (e.g. "connectToApp") or protocol
                method (e.g. "Runtime.evaluate").
            params: Protocol parameters.
            app_id_key: Target application.
            page_id_key: Target page.
            target_id: Explicit target id, otherwise looked up.
            wait_for_response: False to return once the message is written.
            timeout: Seconds to wait for the reply.
            **extra: Selector arguments (enabled, bundle_id).

        Returns:
            The reply: a tuple of event args for selector replies, the
            unwrapped result for protocol replies, or None.

        Raises:
            TimeoutError: If no reply arrives in time.
            RemoteDebuggerError: If the inspector replies with an error.
            NotConnectedError: If the connection closes first.
        """
        kwargs = dict(
            app_id_key=app_id_key,
            page_id_key=page_id_key,
            target_id=target_id,
            wait_for_response=wait_for_response,
            timeout=timeout,
            **extra,
        )
        started = time.monotonic()
        try:
            return self._send_to_device(command, params, **kwargs)
        except WirTapError as e:
            message = str(e).lower()
            if NO_TARGET_SUPPORTED_ERROR in message:
                return self._send_to_device(command, params, **kwargs)
            if app_id_key and any(err in message for err in NO_TARGET_PRESENT_YET_ERRORS):
                self.wait_for_target(app_id_key, page_id_key)
                return self._send_to_device(command, params, **kwargs)
            raise
        finally:
            logger.debug(f"Sending to Web Inspector took {(time.monotonic() - started) * 1000:.0f}ms")

    def _next_message_id(self) -> int:
        with self._lock:
            msg_id = self._next_id
            self._next_id += 1
            return msg_id

    def _build_command(self, command: str, params: dict | None, msg_id: int, **opts) -> dict:
        app_id_key = opts.get("app_id_key")
        page_id_key = opts.get("page_id_key")

        if command == "setConnectionKey":
            return self.remote_messages.set_connection_key(self.conn_id)
        if command == "connectToApp":
            if not app_id_key:
                raise WirTapError("Cannot connect to app without an app ID")
            return self.remote_messages.connect_to_app(self.conn_id, app_id_key)
        if command == "indicateWebView":
            if not app_id_key:
                raise WirTapError("Cannot indicate web view without an app ID")
            return self.remote_messages.indicate_web_view(
                self.conn_id, app_id_key, page_id_key, bool(opts.get("enabled"))
            )
        if command == "setSenderKey":
            if not app_id_key:
                raise WirTapError("Cannot set sender key without an app ID")
            return self.remote_messages.set_sender_key(self.conn_id, self.sender_id, app_id_key, page_id_key)
        if command == "launchApplication":
            if not opts.get("bundle_id"):
                raise WirTapError("Cannot launch application without a bundle ID")
            return self.remote_messages.launch_application(opts["bundle_id"])

        return self.remote_messages.protocol_command(
            command,
            params,
            msg_id,
            self.conn_id,
            self.sender_id,
            app_id_key=app_id_key,
            page_id_key=page_id_key,
            target_id=opts.get("target_id") or self.get_target(app_id_key, page_id_key),
        )

    def _send_to_device(
        self,
        command: str,
        params: dict | None,
        wait_for_response: bool = True,
        timeout: float | None = None,
        **opts,
    ) -> Any:
        if not self.is_connected:
            raise NotConnectedError("The RPC client is not connected")

        msg_id = self._next_message_id()
        wrapper_id = self._next_message_id()
        cmd = self._build_command(command, params, msg_id, **opts)
        selector = cmd["__selector"]
        argument = cmd["__argument"]

        socket_data = argument.get("WIRSocketDataKey")
        if isinstance(socket_data, dict):
            if socket_data.get("id") is None:
                socket_data["id"] = wrapper_id
            argument["WIRSocketDataKey"] = json.dumps(socket_data)

        future: Future = Future()
        selector_listener = None
        handled = True

        if not wait_for_response:
            handled = False
        elif self.message_handler.listener_count(selector):

            def selector_listener(*args):
                logger.debug(f"Received response from send (id: {msg_id}): '{_truncate(args)}'")
                _settle(future, args)

            self.message_handler.prepend_once(selector, selector_listener)
        elif socket_data is not None:
            with self._lock:
                ack_id = None if is_direct_command(command) else wrapper_id
                self._pending[msg_id] = (future, ack_id)
                if ack_id is not None:
                    self._acks[ack_id] = msg_id
        else:
            handled = False

        app_id_key = opts.get("app_id_key")
        page_id_key = opts.get("page_id_key")
        logger.debug(
            f"Sending '{selector}' message"
            + (f" to app '{app_id_key}'" if app_id_key else "")
            + (f", page '{page_id_key}'" if page_id_key is not None else "")
            + f" (id: {msg_id}): '{command}'"
        )
        if self.log_all_communication:
            logger.debug(f"Sent: {_truncate(cmd)}")

        try:
            self._send_message(cmd)
        except Exception:
            self._forget(msg_id)
            if selector_listener:
                self.message_handler.off(selector, selector_listener)
            raise

        if not handled:
            return None

        try:
            return future.result(timeout=timeout or self.command_timeout)
        except TimeoutError:
            self._forget(msg_id)
            if selector_listener:
                self.message_handler.off(selector, selector_listener)
            raise TimeoutError(f"Command {command} timed out")

    def _forget(self, msg_id: int) -> None:
        with self._lock:
            entry = self._pending.pop(msg_id, None)
            if entry and entry[1] is not None:
                self._acks.pop(entry[1], None)

    def _on_response(self, msg_id: str, result: Any, error: Exception | None) -> bool:
        try:
            key = int(msg_id)
        except ValueError:
            return False

        with self._lock:
            if key in self._acks:
                # Target.sendMessageToTarget acknowledgement; only errors matter
                main_id = self._acks.pop(key)
                entry = self._pending.pop(main_id, None) if error else None
                if entry is None:
                    return True
            else:
                entry = self._pending.pop(key, None)
                if entry is None:
                    return False
                if entry[1] is not None:
                    self._acks.pop(entry[1], None)

        _settle(entry[0], result, error)
        return True

    # Targets

    def get_target(self, app_id_key: str | None, page_id_key: Any) -> str | None:
        if not app_id_key or page_id_key is None:
            return None
        target = self.targets.get(app_id_key, {}).get(page_id_key)
        return target if isinstance(target, str) else None

    def wait_for_target(self, app_id_key: str, page_id_key: Any) -> str:
        """Block until a target exists for the page.

        Raises:
            WirTapError: If none appears in time.
        """
        target = self.get_target(app_id_key, page_id_key)
        if target:
            logger.debug(f"The target '{target}' for app '{app_id_key}' and page '{page_id_key}' already exists")
            return target

        wait_ms = max(MIN_WAIT_FOR_TARGET_TIMEOUT_MS, self.page_load_timeout_ms or 0)
        logger.debug(f"Waiting up to {wait_ms}ms for a target for app '{app_id_key}' and page '{page_id_key}'")
        deadline = time.monotonic() + wait_ms / 1000
        while time.monotonic() < deadline:
            if not self.is_connected:
                raise NotConnectedError("Inspector connection closed while waiting for a target")
            target = self.get_target(app_id_key, page_id_key)
            if target:
                return target
            time.sleep(WAIT_FOR_TARGET_INTERVAL)
        raise WirTapError(f"No targets could be matched for the app '{app_id_key}' and page '{page_id_key}' after {wait_ms}ms")

    def _get_page_lock(self, key: str) -> threading.Lock:
        with self._lock:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def _get_initialized_event(self, key: str) -> threading.Event:
        with self._lock:
            if key not in self._initialized:
                self._initialized[key] = threading.Event()
            return self._initialized[key]

    def _on_target_created(self, app_id: str, target_info: dict) -> None:
        # Page initialization sends commands, so it must not run on the socket thread
        threading.Thread(
            target=self.add_target, args=(app_id, target_info), daemon=True, name=f"target-{app_id}"
        ).start()

    def _pending_page_for(self, app_id: str, target_info: dict) -> _PendingPage | None:
        pending = self._pending_page
        if not pending:
            reason = "with no pending request"
        elif target_info.get("type") != "page":
            reason = f"with type '{target_info.get('type')}'"
        elif pending.app_id_key != app_id:
            reason = "with different app id"
        else:
            return pending
        logger.info(f"Skipping 'Target.targetCreated' event {reason} for app '{app_id}': {_truncate(target_info)}")
        return None

    def add_target(self, app_id: str, target_info: dict) -> None:
        """Record a new target and initialize its page."""
        target_id = (target_info or {}).get("targetId")
        if target_id is None:
            logger.info(f"Received 'Target.targetCreated' event for app '{app_id}' with no target. Skipping")
            return

        pending = self._pending_page_for(app_id, target_info)
        if not pending:
            return

        app_id_key, page_id_key = pending.app_id_key, pending.page_id_key
        page_key = f"{app_id_key}:{page_id_key}"
        app_targets = self.targets.setdefault(app_id_key, {})
        started = time.monotonic()

        def remaining_detector() -> PageReadinessDetector | None:
            if not pending.detector:
                return None
            elapsed_ms = (time.monotonic() - started) * 1000
            if elapsed_ms >= pending.detector.timeout_ms:
                logger.warning(f"Page '{page_id_key}' took too long to initialize, skipping readiness check")
                return None
            return PageReadinessDetector(pending.detector.timeout_ms - elapsed_ms, pending.detector.readiness_detector)

        if target_info.get("isProvisional"):
            logger.debug(f"Provisional target created for app '{app_id_key}' and page '{page_id_key}'")
            self._provisioned_pages.add(page_id_key)
            try:
                with self._get_page_lock(page_key):
                    initialized = False
                    try:
                        initialized = self._initialize_page(app_id_key, page_id_key, target_id)
                    finally:
                        if target_info.get("isPaused"):
                            self._resume_target(app_id_key, page_id_key, target_id)
                    if initialized:
                        self._wait_for_page_readiness(app_id_key, page_id_key, target_id, remaining_detector())
            except WirTapError as e:
                logger.warning(f"Cannot complete the initialization of the provisional target '{target_id}': {e}")
            return

        logger.debug(f"Target created for app '{app_id_key}' and page '{page_id_key}': {_truncate(target_info)}")
        if page_id_key in app_targets:
            logger.debug(f"There is already a target for this app and page ('{app_targets[page_id_key]}')")
        app_targets[page_id_key] = target_id

        try:
            self.send(
                "Target.setPauseOnStart", {"pauseOnStart": True}, app_id_key=app_id_key, page_id_key=page_id_key
            )
        except (WirTapError, TimeoutError) as e:
            logger.debug(f"Cannot setup pause on start for app '{app_id_key}' and page '{page_id_key}': {e}")

        try:
            with self._get_page_lock(page_key):
                initialized = False
                try:
                    if page_id_key in self._provisioned_pages:
                        logger.debug(f"Page '{page_id_key}' has been already provisioned")
                        self._provisioned_pages.discard(page_id_key)
                    else:
                        initialized = self._initialize_page(app_id_key, page_id_key)
                finally:
                    if target_info.get("isPaused"):
                        self._resume_target(app_id_key, page_id_key, target_id)
                if initialized:
                    self._wait_for_page_readiness(app_id_key, page_id_key, target_id, remaining_detector())
        except WirTapError as e:
            logger.warning(str(e))
        finally:
            self._get_initialized_event(page_key).set()

    def update_target(self, app_id: str, target_info: dict) -> None:
        old_target_id = target_info.get("oldTargetId")
        new_target_id = target_info.get("newTargetId")
        logger.debug(f"Target updated for app '{app_id}'. Old target: '{old_target_id}', new target: '{new_target_id}'")

        app_targets = self.targets.get(app_id)
        if app_targets is None:
            logger.warning(f"No existing target for app '{app_id}'. Not sure what to do")
            return
        app_targets["provisional"] = {"oldTargetId": old_target_id, "newTargetId": new_target_id}

    def remove_target(self, app_id: str, target_info: dict) -> None:
        target_id = (target_info or {}).get("targetId")
        if target_id is None:
            logger.debug("Received 'Target.targetDestroyed' event with no target. Skipping")
            return

        logger.debug(f"Target destroyed for app '{app_id}': {target_id}")
        app_targets = self.targets.get(app_id, {})
        provisional = app_targets.get("provisional")
        if provisional and provisional.get("oldTargetId") == target_id:
            del app_targets["provisional"]
            for page, existing in app_targets.items():
                if existing == target_id:
                    logger.debug(f"Swapping provisional target for app '{app_id}' to '{provisional['newTargetId']}'")
                    app_targets[page] = provisional["newTargetId"]
                    return
            logger.warning(f"Provisional target for app '{app_id}' found, but no suitable existing target found")

        for page, existing in list(app_targets.items()):
            if existing == target_id:
                del app_targets[page]
                return
        logger.debug(f"Target '{target_id}' deleted for app '{app_id}', but no such target exists")

    def _resume_target(self, app_id_key: str, page_id_key: Any, target_id: str) -> None:
        try:
            self.send("Target.resume", {}, app_id_key=app_id_key, page_id_key=page_id_key, target_id=target_id)
            logger.debug(f"Successfully resumed the target {target_id}@{app_id_key}")
        except (WirTapError, TimeoutError) as e:
            logger.warning(f"Could not resume the target {target_id}@{app_id_key}: {e}")

    def _initialize_page(self, app_id_key: str, page_id_key: Any, target_id: str | None = None) -> bool:
        """Enable inspector domains on a freshly attached page.

        Returns:
            False if the target disappeared during initialization.
        """
        logger.debug(f"Initializing page '{page_id_key}' for app '{app_id_key}'")
        started = time.monotonic()
        if self.full_page_initialization:
            sequence = FULL_INIT_SEQUENCE
        else:
            sequence = tuple((domain, {}) for domain in SIMPLE_INIT_SEQUENCE)

        for domain, params in sequence:
            try:
                res = self.send(domain, params, app_id_key=app_id_key, page_id_key=page_id_key, target_id=target_id)
            except (WirTapError, TimeoutError) as e:
                logger.info(f"Cannot enable domain '{domain}' during initialization: {e}")
                if MISSING_TARGET_ERROR in str(e).lower():
                    return False
                continue

            if domain == "Console.getLoggingChannels":
                for channel in (res or {}).get("channels", []):
                    try:
                        self.send(
                            "Console.setLoggingChannelLevel",
                            {"source": channel.get("source"), "level": "verbose"},
                            app_id_key=app_id_key,
                            page_id_key=page_id_key,
                            target_id=target_id,
                        )
                    except (WirTapError, TimeoutError) as e:
                        logger.info(f"Cannot set logging channel level for '{channel.get('source')}': {e}")
                        if MISSING_TARGET_ERROR in str(e).lower():
                            return False

        logger.debug(
            f"Initialization of page '{page_id_key}' for app '{app_id_key}' completed "
            f"in {(time.monotonic() - started) * 1000:.0f}ms"
        )
        return True

    def _wait_for_page_readiness(
        self, app_id_key: str, page_id_key: Any, target_id: str, detector: PageReadinessDetector | None
    ) -> None:
        if not detector:
            return

        logger.debug(f"Waiting up to {detector.timeout_ms:.0f}ms for page readiness")
        started = time.monotonic()
        while (remaining_ms := detector.timeout_ms - (time.monotonic() - started) * 1000) > 0:
            try:
                raw = self.send(
                    "Runtime.evaluate",
                    {"expression": "document.readyState;", "returnByValue": True},
                    app_id_key=app_id_key,
                    page_id_key=page_id_key,
                    target_id=target_id,
                    timeout=max(100, remaining_ms * 0.8) / 1000,
                )
                ready_state = convert_javascript_evaluation_result(raw)
            except (WirTapError, TimeoutError) as e:
                logger.debug(f"Cannot determine page readiness: {e}")
                if not self.is_connected:
                    return
                time.sleep(0.1)
                continue

            if detector.readiness_detector(ready_state):
                logger.info(
                    f"Page '{page_id_key}' for app '{app_id_key}' is ready after "
                    f"{(time.monotonic() - started) * 1000:.0f}ms"
                )
                return
            time.sleep(0.1)

        logger.warning(f"Page '{page_id_key}' for app '{app_id_key}' is not ready. Continuing anyway")

    # Selection

    def select_app(self, app_id_key: str, timeout: float | None = None) -> tuple[str, dict]:
        """Connect to an application and return its page listing.

        Raises:
            NewAppConnectedError: Another application connected meanwhile.
            EmptyPageDictionaryError: The application listed no pages.
        """
        outcome: Future = Future()

        def on_app_change(app_dict: dict):
            old_app_id = app_dict.get("WIRHostApplicationIdentifierKey")
            new_app_id = app_dict.get("WIRApplicationIdentifierKey")
            if old_app_id and new_app_id != old_app_id:
                logger.debug(f"We might have connected to the wrong app. Using id {new_app_id} instead of {old_app_id}")
            _settle(outcome, error=NewAppConnectedError())

        def on_listing(connected_app_id: str, page_dict: dict):
            _settle(outcome, (connected_app_id, page_dict))

        self.message_handler.prepend_once("_rpc_applicationConnected:", on_app_change)
        self.message_handler.prepend_once("_rpc_forwardGetListing:", on_listing)
        try:
            self.send("connectToApp", app_id_key=app_id_key, wait_for_response=False)
            try:
                connected_app_id, page_dict = outcome.result(timeout=timeout or self.command_timeout)
            except TimeoutError:
                raise TimeoutError(f"Command connectToApp timed out for app '{app_id_key}'")
        except (WirTapError, TimeoutError) as e:
            if not isinstance(e, (NewAppConnectedError, EmptyPageDictionaryError)):
                logger.warning(f"Unable to connect to the app: {e}")
            raise
        finally:
            self.message_handler.off("_rpc_applicationConnected:", on_app_change)
            self.message_handler.off("_rpc_forwardGetListing:", on_listing)

        if not page_dict:
            raise EmptyPageDictionaryError()
        return connected_app_id, page_dict

    def select_page(self, app_id_key: str, page_id_key: Any, detector: PageReadinessDetector | None = None) -> None:
        """Attach to a page and wait until its target is initialized."""
        page_key = f"{app_id_key}:{page_id_key}"
        with self._get_page_lock(f"select:{page_key}"):
            self._pending_page = _PendingPage(app_id_key, page_id_key, detector)
            self._provisioned_pages.clear()

            if self.get_target(app_id_key, page_id_key):
                logger.debug(f"Page '{page_id_key}' is already selected for app '{app_id_key}'")
                return

            initialized = self._get_initialized_event(page_key)
            initialized.clear()

            timeout_ms = self.target_creation_timeout_ms * 1.2
            started = time.monotonic()
            for enabled in (True, False):
                self.send(
                    "indicateWebView",
                    app_id_key=app_id_key,
                    page_id_key=page_id_key,
                    enabled=enabled,
                    wait_for_response=False,
                )
            self.send("setSenderKey", app_id_key=app_id_key, page_id_key=page_id_key)

            ms_left = max(timeout_ms - (time.monotonic() - started) * 1000, 1000)
            logger.debug(f"Waiting up to {ms_left:.0f}ms for page '{page_id_key}' of app '{app_id_key}' to be selected")
            if initialized.wait(ms_left / 1000):
                logger.debug(f"Selected the page {page_id_key}@{app_id_key}")
            else:
                logger.warning(
                    f"Page '{page_id_key}' for app '{app_id_key}' has not been selected in time. Continuing anyway"
                )

    def wait_for_page(self, app_id_key: str, page_id_key: Any) -> None:
        """Block while the page is still being attached or initialized."""
        if app_id_key not in self.targets:
            raise WirTapError(f"No targets found for app '{app_id_key}'")

        page_key = f"{app_id_key}:{page_id_key}"
        started = time.monotonic()
        for key in (page_key, f"select:{page_key}"):
            with self._get_page_lock(key):
                pass
        waited_ms = (time.monotonic() - started) * 1000
        if waited_ms > 10:
            logger.debug(f"Waited {waited_ms:.0f}ms until the page {page_id_key}@{app_id_key} is initialized")

    def _on_execution_context_created(self, context: dict | None) -> None:
        if context and "id" in context:
            self.contexts.append(context["id"])

    def _on_garbage_collected(self, *args) -> None:
        logger.debug("Web Inspector garbage collected")


__all__ = ["RpcClient", "PageReadinessDetector", "TRANSPORT_CLOSED"]
