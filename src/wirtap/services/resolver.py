"""Target resolution: pick a connectable application and page.

Bundle ids are matched against the live directory with proxy and wildcard
semantics, then each candidate is tried through the transport under a
bounded retry policy. The directory is re-read on every attempt.

PUBLIC API:
  - ResolverService: Candidate matching, retrying search and selection
  - AppPage: A resolved application key and page
"""

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from wirtap.errors import AppResolutionError, NotConnectedError, TransientAppError, WirTapError
from wirtap.rpc.client import PageReadinessDetector
from wirtap.types import (
    BLANK_PAGE_URL,
    PID_PREFIX,
    SAFARI_BUNDLE_ID,
    SAFARI_VIEW_BUNDLE_ID,
    SAFARI_VIEW_PROCESS_BUNDLE_ID,
    WEB_CONTENT_BUNDLE_ID,
    WEB_CONTENT_PROCESS_BUNDLE_ID,
    WILDCARD_BUNDLE_ID,
    ApplicationRecord,
    AutomationState,
    PageRecord,
    app_ids_for_bundle,
    page_array_from_dict,
    strip_pid_prefix,
)

if TYPE_CHECKING:
    from wirtap.debugger import RemoteDebugger

logger = logging.getLogger(__name__)

# Processes that host page content for other apps
WELL_KNOWN_BUNDLE_IDS = (
    WEB_CONTENT_BUNDLE_ID,
    WEB_CONTENT_PROCESS_BUNDLE_ID,
    SAFARI_VIEW_PROCESS_BUNDLE_ID,
    SAFARI_VIEW_BUNDLE_ID,
)


@dataclass
class AppPage:
    """Result of a successful search."""

    app_id_key: str
    page: PageRecord


def _unique(items) -> list:
    return list(dict.fromkeys(items))


def possible_app_keys(bundle_ids: list[str], apps: dict[str, ApplicationRecord]) -> list[str]:
    """Match bundle ids to application keys.

    A wildcard returns every key. Otherwise the well-known content processes
    are tried first, then the given bundle ids; each match is followed by the
    proxies acting for it.

    Args:
        bundle_ids: Candidate bundle ids.
        apps: Directory snapshot.

    Returns:
        De-duplicated keys in first-seen order.
    """
    if WILDCARD_BUNDLE_ID in bundle_ids:
        logger.info("Returning all apps because the list of matching bundle identifiers includes a wildcard")
        return list(apps)

    candidates = _unique([*WELL_KNOWN_BUNDLE_IDS, *bundle_ids])
    logger.debug(f"Checking for apps with matching bundle identifiers: {', '.join(candidates)}")

    keys: list[str] = []
    for bundle_id in candidates:
        for app_id in app_ids_for_bundle(bundle_id, apps):
            if app_id in keys:
                continue
            keys.append(app_id)
            logger.debug(f"Found app id key '{app_id}' for bundle '{bundle_id}'")
            for key, record in apps.items():
                if record.is_proxy and record.host_id == app_id and key not in keys:
                    logger.debug(
                        f"Found separate bundleId '{record.bundle_id}' acting as proxy for '{bundle_id}', "
                        f"with app id '{key}'"
                    )
                    keys.append(key)
    return keys


def search_for_page(
    apps: dict[str, ApplicationRecord], url: str | None = None, ignore_blank: bool = False
) -> AppPage | None:
    """Find the first page of an active app that matches url.

    A trailing slash on the page URL is tolerated. With no url any page
    matches, except about:blank when ignore_blank is set.
    """
    for record in apps.values():
        if not record or not record.is_active or not record.page_array:
            continue
        for page in record.page_array:
            if ignore_blank and page.url == BLANK_PAGE_URL:
                continue
            if not url or page.url in (url, f"{url}/"):
                return AppPage(app_id_key=record.id, page=page)
    return None


class ResolverService:
    """Selects applications and pages for a debugger session.

    Args:
        session: Owning debugger.
    """

    def __init__(self, session: "RemoteDebugger"):
        self.session = session

    def candidate_bundle_ids(self) -> list[str]:
        options = self.session.options
        bundle_ids = [options.bundle_id, *(options.additional_bundle_ids or [])]
        if options.include_safari and not options.is_safari:
            bundle_ids.append(SAFARI_BUNDLE_ID)
        return [b for b in bundle_ids if b]

    def log_application_dictionary(self) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug("Current applications available:")
        for app_id, record in self.session.directory.snapshot().items():
            logger.debug(f'    Application: "{app_id}"')
            for key, value in record.to_dict().items():
                if key == "page_array" and value:
                    logger.debug(f"        {key}:")
                    for page in value:
                        prefix = "- "
                        for k, v in page.items():
                            logger.debug(f"          {prefix}{k}: {v!r}")
                            prefix = "  "
                else:
                    logger.debug(f"        {key}: {value!r}")

    def _try_candidates(self, url: str | None, ignore_blank: bool, attempt: int, max_tries: int) -> AppPage | None:
        directory = self.session.directory
        rpc = self.session.require_rpc_client()

        self.log_application_dictionary()
        apps = directory.snapshot()
        keys = possible_app_keys(self.candidate_bundle_ids(), apps)
        logger.debug(f"Trying out the possible app ids: {', '.join(keys)} (try #{attempt} of {max_tries})")

        for key in keys:
            record = apps.get(key)
            if not record:
                continue
            safari_locked = record.bundle_id == SAFARI_BUNDLE_ID and (
                record.is_automation_enabled is AutomationState.DISABLED
            )
            if not record.is_active or safari_locked:
                logger.debug(f"Skipping app '{key}' because it is not {'enabled' if record.is_active else 'active'}")
                continue

            logger.debug(f"Attempting app '{key}'")
            try:
                app_id_key, page_dict = rpc.select_app(key)
            except NotConnectedError:
                raise
            except (WirTapError, TimeoutError) as e:
                if not isinstance(e, TransientAppError):
                    logger.debug(f"Selecting app '{key}' failed", exc_info=True)
                logger.warning(f"The application {key} is not connectable yet: {e}")
                continue

            directory.update_page_array(app_id_key, page_array_from_dict(page_dict))
            result = search_for_page(directory.snapshot(), url, ignore_blank)
            if result:
                return result

            if url:
                logger.debug(f"Received app, but expected url ('{url}') was not found. Trying again")
            else:
                logger.debug("Received app, but no match was found. Trying again")
        return None

    def search_for_app(self, url: str | None = None, max_tries: int | None = None, ignore_blank: bool = False) -> AppPage:
        """Retry candidate selection until a matching page is found.

        Args:
            url: Desired page URL, or None for any page.
            max_tries: Attempts before giving up; defaults to select_app_retries.
            ignore_blank: Skip about:blank pages.

        Returns:
            The matched application key and page.

        Raises:
            AppResolutionError: After max_tries failed attempts.
            NotConnectedError: If the transport closes while searching.
        """
        options = self.session.options
        max_tries = max(1, max_tries if max_tries is not None else options.select_app_retries)
        interval = options.select_app_retry_interval_ms / 1000

        for attempt in range(1, max_tries + 1):
            if not self.session.is_connected:
                raise NotConnectedError("Inspector connection closed while selecting an application")

            result = self._try_candidates(url, ignore_blank, attempt, max_tries)
            if result:
                return result

            if attempt < max_tries:
                time.sleep(interval)

        raise AppResolutionError(
            max_tries, "Make sure it is debuggable and has at least one active page"
        )

    def select_app(self, url: str | None = None, max_tries: int | None = None, ignore_blank: bool = False) -> list[PageRecord]:
        """Resolve an application and list every page of active apps.

        Returns:
            Pages with ids rewritten to "<pid>.<page>" and bundle ids filled
            in, or an empty list if no application is connected.
        """
        logger.debug("Selecting application")
        started = time.monotonic()
        directory = self.session.directory
        state = self.session.state

        if directory.is_empty():
            logger.debug("No applications currently connected")
            return []

        found = self.search_for_app(url, max_tries, ignore_blank)
        if state.app_id_key != found.app_id_key:
            logger.debug(f"Received altered app id, updating from '{state.app_id_key}' to '{found.app_id_key}'")
            state.app_id_key = found.app_id_key
        self.log_application_dictionary()
        logger.debug(f"Finally selecting app {state.app_id_key}")

        pages: list[PageRecord] = []
        for app_id, record in directory.snapshot().items():
            if record.page_array is None or not record.is_active:
                continue
            pid = strip_pid_prefix(app_id)
            for page in record.page_array:
                if ignore_blank and page.url == BLANK_PAGE_URL:
                    continue
                pages.append(
                    PageRecord(
                        id=f"{pid}.{page.id}",
                        url=page.url,
                        title=page.title,
                        is_key=page.is_key,
                        bundle_id=record.bundle_id,
                    )
                )

        logger.debug(f"Selected app after {(time.monotonic() - started) * 1000:.0f}ms")
        return pages

    def select_page(self, app_id_key: Any, page_id_key: Any, skip_ready_check: bool = False) -> None:
        """Attach to a page of an application.

        Args:
            app_id_key: Application key, with or without the "PID:" prefix.
            page_id_key: Page id within that application.
            skip_ready_check: Do not wait for document readiness.
        """
        full_app_id_key = str(app_id_key)
        if not full_app_id_key.startswith(PID_PREFIX):
            full_app_id_key = f"{PID_PREFIX}{full_app_id_key}"

        state = self.session.state
        state.app_id_key = full_app_id_key
        state.page_id_key = page_id_key

        logger.debug(f"Selecting page '{page_id_key}' on app '{full_app_id_key}' and forwarding socket setup")
        started = time.monotonic()

        detector = None
        if not skip_ready_check:
            detector = PageReadinessDetector(
                timeout_ms=self.session.page_load_ms,
                readiness_detector=self.session.navigation.is_page_loading_completed,
            )
        self.session.require_rpc_client().select_page(full_app_id_key, page_id_key, detector)

        logger.debug(f"Selected page after {(time.monotonic() - started) * 1000:.0f}ms")


__all__ = ["ResolverService", "AppPage", "possible_app_keys", "search_for_page"]
