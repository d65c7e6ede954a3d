"""Application directory kept current from inspector notifications.

The directory is the only writer of the app/page map. Every handler holds the
directory lock for its whole read-modify-write. PageChanged is delivered under
the lock so it cannot race the navigation flag; Disconnected after release.

PUBLIC API:
  - DirectoryService: Notification handlers plus read-only snapshots
"""

import copy
import logging
import threading
from typing import TYPE_CHECKING, Any

from wirtap.events import Disconnected, PageChanged
from wirtap.types import (
    ApplicationRecord,
    PageRecord,
    app_info_from_dict,
    page_array_from_dict,
    strip_pid_prefix,
)

if TYPE_CHECKING:
    from wirtap.debugger import RemoteDebugger

logger = logging.getLogger(__name__)


class DirectoryService:
    """Owns the map of application id to ApplicationRecord.

    Args:
        session: Owning debugger, for selection state, options and events.
    """

    def __init__(self, session: "RemoteDebugger"):
        self.session = session
        self._apps: dict[str, ApplicationRecord] = {}
        self._lock = threading.RLock()

    # Read access

    def snapshot(self) -> dict[str, ApplicationRecord]:
        """Deep copy of the directory at this instant."""
        with self._lock:
            return copy.deepcopy(self._apps)

    def get(self, app_id: str) -> ApplicationRecord | None:
        with self._lock:
            record = self._apps.get(app_id)
            return copy.deepcopy(record) if record else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._apps)

    def is_empty(self) -> bool:
        return len(self) == 0

    def get_debugger_app_key(self, bundle_id: str | None) -> str | None:
        """Pick the app id for bundle_id, preferring the last proxy acting for it."""
        with self._lock:
            return self._debugger_app_key(bundle_id)

    def _debugger_app_key(self, bundle_id: str | None) -> str | None:
        app_id = next((key for key, record in self._apps.items() if record.bundle_id == bundle_id), None)
        if not app_id:
            return None

        logger.debug(f"Found app id key '{app_id}' for bundle '{bundle_id}'")
        proxy_id = None
        for key, record in self._apps.items():
            if record.is_proxy and record.host_id == app_id:
                logger.debug(
                    f"Found separate bundleId '{record.bundle_id}' acting as proxy for '{bundle_id}', "
                    f"with app id '{key}'"
                )
                proxy_id = key
        if proxy_id:
            logger.debug(f"Using proxied app id '{proxy_id}'")
            return proxy_id
        return app_id

    # Writes used by the resolver

    def update_page_array(self, app_id: str, pages: list[PageRecord]) -> None:
        with self._lock:
            record = self._apps.get(app_id)
            if record:
                record.page_array = list(pages)

    def clear(self) -> None:
        with self._lock:
            self._apps.clear()

    def set_navigating(self, navigating: bool) -> None:
        """Flip the navigation flag atomically with respect to page-change delivery."""
        with self._lock:
            self.session.state.is_navigating = navigating

    # Notification handlers

    def _update_apps_with_dict(self, app_dict: dict) -> None:
        app_id, record = app_info_from_dict(app_dict)
        with self._lock:
            existing = self._apps.get(app_id)
            if existing and existing.page_array is not None:
                record.page_array = existing.page_array
            self._apps[app_id] = record

            state = self.session.state
            if not state.app_id_key:
                state.app_id_key = self._debugger_app_key(self.session.options.bundle_id)

    def on_app_connect(self, app_dict: dict) -> None:
        logger.debug(f"Notified that new application '{app_dict.get('WIRApplicationIdentifierKey')}' has connected")
        self._update_apps_with_dict(app_dict)

    def on_app_update(self, app_dict: dict) -> None:
        logger.debug("Notified that an application has been updated")
        self._update_apps_with_dict(app_dict)

    def on_app_disconnect(self, app_dict: dict) -> None:
        app_id = app_dict.get("WIRApplicationIdentifierKey")
        state = self.session.state
        logger.debug(f"Application '{app_id}' disconnected. Removing from app dictionary")
        logger.debug(f"Current app is '{state.app_id_key}'")

        with self._lock:
            self._apps.pop(app_id, None)

            if state.app_id_key == app_id:
                logger.debug("No longer have app id. Attempting to find new one")
                state.app_id_key = self._debugger_app_key(self.session.options.bundle_id)

            now_empty = not self._apps

        if now_empty:
            logger.debug("Main app disconnected. Disconnecting altogether")
            self.session.events.emit(Disconnected())

    def on_page_change(self, app_id_key: str, page_dict: Any) -> None:
        if not page_dict:
            return

        current_pages = page_array_from_dict(page_dict)
        with self._lock:
            record = self._apps.get(app_id_key)
            if record:
                previous_pages = record.page_array
                if previous_pages is not None and previous_pages == current_pages:
                    logger.debug(
                        f"Received page change notice for app '{app_id_key}' but the listing has not changed. Ignoring"
                    )
                    return
                record.page_array = current_pages
                logger.debug(f"Pages changed for {app_id_key}: {previous_pages} -> {current_pages}")

            # A listing seen mid-navigation is not steady state. Emitting under the
            # lock keeps set_navigating() from interleaving with delivery.
            if self.session.state.is_navigating:
                return
            event = PageChanged(app_id=strip_pid_prefix(app_id_key), pages=copy.deepcopy(current_pages))
            self.session.events.emit(event)

    def on_connected_application_list(self, apps: dict) -> None:
        logger.debug(f"Received connected applications list: {', '.join(apps or {})}")

        skipped = set(self.session.options.skipped_apps)
        new_apps: dict[str, ApplicationRecord] = {}
        for app_dict in (apps or {}).values():
            app_id, record = app_info_from_dict(app_dict)
            if record.name in skipped:
                continue
            new_apps[app_id] = record

        with self._lock:
            for app_id, record in new_apps.items():
                self._apps.setdefault(app_id, record)

    def on_connected_driver_list(self, drivers: dict) -> None:
        self.session.state.connected_driver_list = drivers.get("WIRDriverDictionaryKey")
        logger.debug(f"Received connected driver list: {self.session.state.connected_driver_list}")

    def on_current_state(self, state: dict) -> None:
        self.session.state.current_automation_availability = state.get("WIRAutomationAvailabilityKey")
        logger.debug(
            f"Received connected automation availability state: {self.session.state.current_automation_availability}"
        )


__all__ = ["DirectoryService"]
