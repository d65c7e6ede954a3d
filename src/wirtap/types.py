"""Directory record types and converters for inspector listings.

Raw inspector dictionaries use WIR* keys. These helpers turn them into typed
records that the rest of the package works with.

PUBLIC API:
  - ApplicationRecord: One live application process on the device
  - PageRecord: One open page within an application
  - AutomationState: Tri-state remote automation flag
  - PageLoadStrategy: Readiness policy for document.readyState
  - app_info_from_dict: Convert a raw application dict to (id, record)
  - page_array_from_dict: Convert a raw page listing to PageRecords
  - app_ids_for_bundle: Find application ids by bundle id with web-content fallback
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

SAFARI_BUNDLE_ID = "com.apple.mobilesafari"
WEB_CONTENT_BUNDLE_ID = "com.apple.WebKit.WebContent"
WEB_CONTENT_PROCESS_BUNDLE_ID = "process-com.apple.WebKit.WebContent"
SAFARI_VIEW_PROCESS_BUNDLE_ID = "process-SafariViewService"
SAFARI_VIEW_BUNDLE_ID = "com.apple.SafariViewService"
WILDCARD_BUNDLE_ID = "*"
BLANK_PAGE_URL = "about:blank"

# Page types that host web content; anything else (JSContext, ServiceWorker) is dropped
ACCEPTED_PAGE_TYPES = ("WIRTypeWeb", "WIRTypeWebPage", "WIRTypePage")

INACTIVE_APP_CODE = 0
PID_PREFIX = "PID:"


class AutomationState(str, Enum):
    """Device-wide remote automation setting as reported for an app."""

    ENABLED = "enabled"
    DISABLED = "disabled"
    UNKNOWN = "unknown"


class PageLoadStrategy(str, Enum):
    """When a document.readyState value counts as loaded."""

    NORMAL = "normal"
    EAGER = "eager"
    NONE = "none"

    @classmethod
    def from_name(cls, name: str | None) -> "PageLoadStrategy":
        """Parse a strategy name case-insensitively, defaulting to NORMAL."""
        try:
            return cls((name or "").lower())
        except ValueError:
            return cls.NORMAL

    def is_final(self, ready_state: str | None) -> bool:
        """Whether ready_state ends loading under this strategy."""
        if self is PageLoadStrategy.NONE:
            return True
        if self is PageLoadStrategy.EAGER:
            return ready_state != "loading"
        return ready_state == "complete"


@dataclass
class PageRecord:
    """One open page/tab within an application.

    Attributes:
        id: Page identifier scoped to its application. Denormalized listings
            use "<pid>.<page>" strings.
        url: Current page URL.
        title: Page title.
        is_key: Whether this page carries the active debugging connection.
        bundle_id: Owning application's bundle id, set on denormalized listings.
    """

    id: Any
    url: str = ""
    title: str = ""
    is_key: bool = False
    bundle_id: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ApplicationRecord:
    """One live application process reported by the inspector.

    Attributes:
        id: Application key, "PID:<n>" or a proxy-style key.
        bundle_id: Bundle identifier.
        name: Display name.
        is_proxy: Whether the record forwards to host_id's content.
        host_id: Key of the application this proxy represents.
        is_active: Whether the process is foregrounded.
        is_automation_enabled: Remote automation tri-state.
        page_array: Known pages, or None while pages are not yet reported.
    """

    id: str
    bundle_id: str | None = None
    name: str | None = None
    is_proxy: bool = False
    host_id: str | None = None
    is_active: bool = False
    is_automation_enabled: AutomationState = AutomationState.DISABLED
    page_array: list[PageRecord] | None = None

    @property
    def pages_known(self) -> bool:
        return self.page_array is not None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["is_automation_enabled"] = self.is_automation_enabled.value
        return data


def _parse_is_proxy(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def _parse_automation(app_dict: dict) -> AutomationState:
    state = AutomationState.ENABLED if app_dict.get("WIRRemoteAutomationEnabledKey") else AutomationState.DISABLED

    if "WIRAutomationAvailabilityKey" in app_dict:
        availability = app_dict["WIRAutomationAvailabilityKey"]
        if isinstance(availability, str):
            if availability == "WIRAutomationAvailabilityUnknown":
                state = AutomationState.UNKNOWN
            elif availability == "WIRAutomationAvailabilityAvailable":
                state = AutomationState.ENABLED
            else:
                state = AutomationState.DISABLED
        else:
            state = AutomationState.ENABLED if availability else AutomationState.DISABLED

    return state


def app_info_from_dict(app_dict: dict) -> tuple[str, ApplicationRecord]:
    """Convert a raw inspector application dictionary into a record.

    Args:
        app_dict: Dictionary with WIRApplication* keys.

    Returns:
        Tuple of (application id, ApplicationRecord). The record's page_array
        is None because application reports never carry pages.
    """
    app_id = app_dict["WIRApplicationIdentifierKey"]
    record = ApplicationRecord(
        id=app_id,
        bundle_id=app_dict.get("WIRApplicationBundleIdentifierKey"),
        name=app_dict.get("WIRApplicationNameKey"),
        is_proxy=_parse_is_proxy(app_dict.get("WIRIsApplicationProxyKey")),
        host_id=app_dict.get("WIRHostApplicationIdentifierKey"),
        is_active=app_dict.get("WIRIsApplicationActiveKey", INACTIVE_APP_CODE) != INACTIVE_APP_CODE,
        is_automation_enabled=_parse_automation(app_dict),
    )
    return app_id, record


def page_array_from_dict(page_dict: dict | list | None) -> list[PageRecord]:
    """Convert a raw page listing into web pages only.

    Entries whose WIRTypeKey is present and not a web page type are dropped.
    """
    if not page_dict:
        return []

    entries = page_dict.values() if isinstance(page_dict, dict) else page_dict
    pages = []
    for entry in entries:
        page_type = entry.get("WIRTypeKey")
        if page_type is not None and page_type not in ACCEPTED_PAGE_TYPES:
            continue
        pages.append(
            PageRecord(
                id=entry.get("WIRPageIdentifierKey"),
                title=entry.get("WIRTitleKey", ""),
                url=entry.get("WIRURLKey", ""),
                is_key=entry.get("WIRConnectionIdentifierKey") is not None,
            )
        )
    return pages


def app_ids_for_bundle(bundle_id: str, apps: dict[str, ApplicationRecord]) -> list[str]:
    """Find application ids whose bundle id matches.

    Falls back to the WebKit web-content process when nothing matches, since
    embedded web views host their pages in that process.
    """
    app_ids = [app_id for app_id, record in apps.items() if record.bundle_id == bundle_id]

    if not app_ids and bundle_id != WEB_CONTENT_BUNDLE_ID:
        return app_ids_for_bundle(WEB_CONTENT_BUNDLE_ID, apps)

    return app_ids


def strip_pid_prefix(app_id: str | None) -> str:
    """Return the numeric part of a "PID:<n>" key."""
    if not app_id:
        return ""
    return app_id.replace(PID_PREFIX, "", 1)


__all__ = [
    "ApplicationRecord",
    "PageRecord",
    "AutomationState",
    "PageLoadStrategy",
    "app_info_from_dict",
    "page_array_from_dict",
    "app_ids_for_bundle",
    "strip_pid_prefix",
]
