"""Remote debugger session orchestrating directory, resolution, navigation and scripts.

PUBLIC API:
  - RemoteDebugger: One Web Inspector debugging session
"""

import logging
import time
from typing import Any, Callable

from wirtap.atoms import AtomCatalog
from wirtap.config import DebuggerOptions, get_options
from wirtap.errors import ConfigurationError, NotConnectedError
from wirtap.events import Disconnected, EventBus
from wirtap.rpc import TRANSPORT_CLOSED, RpcClient, WebSocketRpcClient
from wirtap.services.directory import DirectoryService
from wirtap.services.execute import ExecuteService
from wirtap.services.misc import MiscService
from wirtap.services.navigation import NavigationService
from wirtap.services.resolver import AppPage, ResolverService
from wirtap.state import SessionState
from wirtap.types import ApplicationRecord, PageRecord

logger = logging.getLogger(__name__)

APP_CONNECT_INTERVAL = 0.1


class RemoteDebugger:
    """Orchestrates a Web Inspector session over an RpcClient.

    Services share this object for state, options and events. The directory
    is the only writer of application records; everything else reads
    snapshots.

    Attributes:
        options: Effective session options.
        state: Selection and navigation state.
        events: Typed session event listeners.
        atoms: Atom catalog used by script execution.
        rpc_client: Active transport, or None when disconnected.
        directory: Application directory service.
        resolver: Application and page selection service.
        navigation: Navigation and readiness service.
        executor: Script execution service.
        misc: Passthrough commands and client event forwarding.
    """

    def __init__(
        self,
        options: DebuggerOptions | None = None,
        rpc_client: RpcClient | None = None,
        atoms: AtomCatalog | None = None,
        **overrides,
    ):
        """Create a session.

        Args:
            options: Base options. Defaults to wirtap.toml plus built-in defaults.
            rpc_client: Transport to use instead of a WebSocketRpcClient built
                from options.url.
            atoms: Atom catalog. Defaults to the packaged atoms.
            **overrides: Option values applied on top of options.
        """
        self.options = options.merged(**overrides) if options else get_options(**overrides)
        self.state = SessionState()
        self.events = EventBus()
        self.atoms = atoms or AtomCatalog()

        self._client_override = rpc_client
        self.rpc_client: RpcClient | None = None
        self._close_reported = False
        self._page_load_ms = self.options.page_load_ms
        self._allow_navigation_without_reload = False

        self.directory = DirectoryService(self)
        self.resolver = ResolverService(self)
        self.navigation = NavigationService(self)
        self.executor = ExecuteService(self)
        self.misc = MiscService(self)

    # Accessors

    @property
    def app_dict(self) -> dict[str, ApplicationRecord]:
        """Deep copy of the application directory."""
        return self.directory.snapshot()

    @property
    def is_connected(self) -> bool:
        return bool(self.rpc_client and self.rpc_client.is_connected)

    @property
    def current_state(self) -> Any:
        return self.state.current_automation_availability

    @property
    def connected_drivers(self) -> Any:
        return self.state.connected_driver_list

    @property
    def page_load_ms(self) -> int:
        return self._page_load_ms

    @page_load_ms.setter
    def page_load_ms(self, value: int) -> None:
        self._page_load_ms = value

    @property
    def page_load_strategy(self) -> str:
        return self.options.page_load_strategy

    @property
    def allow_navigation_without_reload(self) -> bool:
        return self._allow_navigation_without_reload

    @allow_navigation_without_reload.setter
    def allow_navigation_without_reload(self, allow: bool) -> None:
        self._allow_navigation_without_reload = bool(allow)

    def require_rpc_client(self, check_connected: bool = False) -> RpcClient:
        """Return the active client.

        Raises:
            NotConnectedError: If there is no client, or it is disconnected
                and check_connected is set.
        """
        if not self.rpc_client:
            raise NotConnectedError("The RPC client is not initialized. Call connect() first")
        if check_connected and not self.rpc_client.is_connected:
            raise NotConnectedError("Remote debugger is not connected")
        return self.rpc_client

    # Session events

    def on(self, event_type: type, listener: Callable) -> None:
        self.events.on(event_type, listener)

    def off(self, event_type: type, listener: Callable) -> bool:
        return self.events.off(event_type, listener)

    # Lifecycle

    def _init_rpc_client(self) -> RpcClient:
        if self._client_override:
            return self._client_override
        if not self.options.url:
            raise ConfigurationError("No inspector relay URL configured. Set 'url' in wirtap.toml or pass url=")
        return WebSocketRpcClient(
            self.options.url,
            bundle_id=self.options.bundle_id,
            is_safari=self.options.is_safari,
            log_all_communication=self.options.log_all_communication,
            full_page_initialization=self.options.full_page_initialization,
            page_load_timeout_ms=self.page_load_ms,
        )

    def _register_handlers(self, rpc: RpcClient) -> None:
        directory = self.directory
        rpc.on("_rpc_reportSetup:", lambda *args: None)
        rpc.on("_rpc_forwardGetListing:", directory.on_page_change)
        rpc.on("_rpc_reportConnectedApplicationList:", directory.on_connected_application_list)
        rpc.on("_rpc_applicationConnected:", directory.on_app_connect)
        rpc.on("_rpc_applicationDisconnected:", directory.on_app_disconnect)
        rpc.on("_rpc_applicationUpdated:", directory.on_app_update)
        rpc.on("_rpc_reportConnectedDriverList:", directory.on_connected_driver_list)
        rpc.on("_rpc_reportCurrentState:", directory.on_current_state)
        rpc.on("Page.frameDetached", self.navigation.frame_detached)
        rpc.on(TRANSPORT_CLOSED, self._on_transport_closed)

    def _on_transport_closed(self, reason: str | None = None) -> None:
        logger.warning(f"Inspector connection closed: {reason or 'Unknown'}")
        self.navigation.cancel_page_load()
        self._close_reported = True
        self.events.emit(Disconnected())

    def connect(self, timeout_ms: float = 0) -> dict[str, ApplicationRecord]:
        """Connect to the inspector and request the application list.

        Args:
            timeout_ms: How long to wait for applications to be reported.
                0 returns right after the connection key is sent.

        Returns:
            Directory snapshot at return time.
        """
        self._setup()
        rpc = self.rpc_client = self._init_rpc_client()
        self._register_handlers(rpc)

        try:
            rpc.connect()
            logger.debug("Sending connection key request")
            # Only wait for the socket write; the listing arrives asynchronously
            rpc.send("setConnectionKey", wait_for_response=False)

            if timeout_ms:
                started = time.monotonic()
                logger.debug(f"Waiting up to {timeout_ms}ms for applications to be reported")
                deadline = started + timeout_ms / 1000
                while self.directory.is_empty() and time.monotonic() < deadline:
                    time.sleep(APP_CONNECT_INTERVAL)
                if self.directory.is_empty():
                    logger.debug("Timed out waiting for applications to be reported")
                else:
                    logger.debug(
                        f"Retrieved {len(self.directory)} application(s) "
                        f"within {(time.monotonic() - started) * 1000:.0f}ms"
                    )
            return self.app_dict
        except Exception as e:
            logger.error(f"Error setting connection key: {e}")
            self.disconnect()
            raise

    def disconnect(self) -> None:
        """Close the transport, notify listeners and reset the session."""
        self.navigation.cancel_page_load()
        rpc = self.rpc_client
        if rpc:
            rpc.disconnect()
        # A transport close has already notified listeners
        if not self._close_reported:
            self.events.emit(Disconnected())
        self._teardown()

    def _setup(self) -> None:
        self.directory.clear()
        self.state.clear()
        self.misc.clear_client_listeners()
        self.rpc_client = None
        self._close_reported = False

    def _teardown(self) -> None:
        logger.debug("Cleaning up listeners")
        self._setup()
        self.events.remove_all()

    # Directory and resolution

    def get_debugger_app_key(self, bundle_id: str | None) -> str | None:
        return self.directory.get_debugger_app_key(bundle_id)

    def search_for_app(self, url: str | None = None, max_tries: int | None = None, ignore_blank: bool = False) -> AppPage:
        return self.resolver.search_for_app(url, max_tries, ignore_blank)

    def select_app(self, url: str | None = None, max_tries: int | None = None, ignore_blank: bool = False) -> list[PageRecord]:
        return self.resolver.select_app(url, max_tries, ignore_blank)

    def select_page(self, app_id_key: Any, page_id_key: Any, skip_ready_check: bool = False) -> None:
        self.resolver.select_page(app_id_key, page_id_key, skip_ready_check)

    # Navigation

    def navigate(self, url: str, wait_for_readiness: bool = False) -> bool:
        """Navigate the selected page.

        Args:
            url: Absolute URL.
            wait_for_readiness: Also poll document.readyState afterwards, within
                the same page-load budget.

        Returns:
            True if the page load signal arrived in time.
        """
        started = time.monotonic()
        loaded = self.navigation.nav_to_url(url)
        if wait_for_readiness:
            self.navigation.wait_for_dom(started)
        return loaded

    def nav_to_url(self, url: str) -> bool:
        return self.navigation.nav_to_url(url)

    def wait_for_dom(self, started: float | None = None) -> None:
        self.navigation.wait_for_dom(started)

    def check_page_is_ready(self, timeout_ms: float | None = None) -> bool:
        return self.navigation.check_page_is_ready(timeout_ms)

    def cancel_page_load(self) -> None:
        self.navigation.cancel_page_load()

    def is_page_loading_completed(self, ready_state: str | None) -> bool:
        return self.navigation.is_page_loading_completed(ready_state)

    def frame_detached(self) -> None:
        self.navigation.frame_detached()

    # Scripts

    def execute(self, command: str, timeout_ms: float | None = None) -> Any:
        return self.executor.execute(command, timeout_ms)

    def execute_atom(self, atom: str, args: list | None = None, frames: list | None = None) -> Any:
        return self.executor.execute_atom(atom, args, frames)

    def execute_atom_async(self, atom: str, args: list | None = None, frames: list | None = None) -> Any:
        return self.executor.execute_atom_async(atom, args, frames)

    def call_function(self, object_id: str, fn: str, args: list | None = None) -> Any:
        return self.executor.call_function(object_id, fn, args)

    def garbage_collect(self, timeout_ms: float = 5000) -> None:
        self.executor.garbage_collect(timeout_ms)

    def is_javascript_execution_blocked(self, timeout_ms: float = 1000) -> bool:
        return self.executor.is_javascript_execution_blocked(timeout_ms)

    # Passthroughs

    def get_cookies(self) -> dict:
        return self.misc.get_cookies()

    def set_cookie(self, cookie: dict) -> Any:
        return self.misc.set_cookie(cookie)

    def delete_cookie(self, cookie_name: str, url: str) -> Any:
        return self.misc.delete_cookie(cookie_name, url)

    def capture_screenshot(self, rect: dict | None = None, coordinate_system: str = "Viewport") -> str:
        return self.misc.capture_screenshot(rect, coordinate_system)

    def launch_safari(self) -> None:
        self.misc.launch_safari()

    def start_timeline(self, listener: Callable) -> Any:
        return self.misc.start_timeline(listener)

    def stop_timeline(self) -> None:
        self.misc.stop_timeline()

    def override_user_agent(self, value: str) -> Any:
        return self.misc.override_user_agent(value)

    def add_client_event_listener(self, event_name: str, listener: Callable) -> None:
        self.misc.add_client_event_listener(event_name, listener)

    def remove_client_event_listener(self, event_name: str) -> None:
        self.misc.remove_client_event_listener(event_name)

    def start_console(self, listener: Callable) -> None:
        self.misc.start_console(listener)

    def stop_console(self) -> None:
        self.misc.stop_console()

    def start_network(self, listener: Callable) -> None:
        self.misc.start_network(listener)

    def stop_network(self) -> None:
        self.misc.stop_network()


__all__ = ["RemoteDebugger"]
