"""Mutable selection and navigation state for one session.

PUBLIC API:
  - SessionState: Selected app/page, navigation flags and device-wide reports
"""

from dataclasses import dataclass, field
from typing import Any

from wirtap.delay import CancellableDelay


@dataclass
class SessionState:
    """State owned by the orchestrating RemoteDebugger.

    Attributes:
        app_id_key: Selected application key.
        page_id_key: Selected page id within that application.
        is_navigating: Set while navigate() runs; suppresses PageChanged.
        is_page_loading: Set while a page load is being awaited.
        page_load_delay: Cancellable delay tied to the current page load.
        current_automation_availability: Last automation availability report.
        connected_driver_list: Last driver list report.
    """

    app_id_key: str | None = None
    page_id_key: Any = None
    is_navigating: bool = False
    is_page_loading: bool = False
    page_load_delay: CancellableDelay | None = None
    current_automation_availability: Any = None
    connected_driver_list: list = field(default_factory=list)

    def clear(self) -> None:
        """Reset everything on teardown."""
        if self.page_load_delay:
            self.page_load_delay.cancel()
        self.app_id_key = None
        self.page_id_key = None
        self.is_navigating = False
        self.is_page_loading = False
        self.page_load_delay = None
        self.current_automation_availability = None
        self.connected_driver_list = []


__all__ = ["SessionState"]
