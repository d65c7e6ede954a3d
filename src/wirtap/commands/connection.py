"""Inspector connection and target selection commands.

PUBLIC API:
  - connect: Connect to an inspector relay
  - disconnect: Close the session
  - apps: List applications in the directory
  - select: Resolve an application and list its pages
  - page: Attach to a page
"""

from wirtap.app import app
from wirtap.commands._errors import check_connection, error_response
from wirtap.commands._utils import build_info_response, build_table_response, truncate_string
from wirtap.debugger import RemoteDebugger
from wirtap.errors import WirTapError

_APP_HEADERS = ["ID", "Bundle", "Name", "Active", "Proxy", "Pages"]
_PAGE_HEADERS = ["ID", "Bundle", "Title", "URL", "Key"]


@app.command(display="markdown")
def connect(state, url: str | None = None, bundle_id: str | None = None, timeout_ms: int = 5000) -> dict:
    """Connect to an inspector relay and wait for applications.

    Args:
        url: Relay WebSocket URL. Defaults to `url` from wirtap.toml.
        bundle_id: Bundle id to prefer, "*" for any application.
        timeout_ms: How long to wait for the application list.

    Returns:
        Connection status in markdown
    """
    if state.debugger:
        state.cleanup()

    try:
        debugger = RemoteDebugger(url=url, bundle_id=bundle_id)
        apps = debugger.connect(timeout_ms=timeout_ms)
    except (WirTapError, TimeoutError, OSError) as e:
        return error_response("connect_failed", custom_message=f"Connection failed: {e}")

    state.debugger = debugger
    return build_info_response(
        title="Connection Established",
        fields={"Relay": debugger.options.url, "Bundle": debugger.options.bundle_id, "Applications": len(apps)},
    )


@app.command(display="markdown")
def disconnect(state) -> dict:
    """Disconnect from the inspector."""
    was_connected = bool(state.debugger and state.debugger.is_connected)
    state.cleanup()
    return build_info_response(
        title="Disconnect Status", fields={"Status": "Disconnected" if was_connected else "Not connected"}
    )


@app.command(display="markdown")
def apps(state) -> dict:
    """List applications reported by the inspector."""
    if error := check_connection(state):
        return error

    rows = [
        {
            "ID": app_id,
            "Bundle": record.bundle_id or "",
            "Name": record.name or "",
            "Active": "yes" if record.is_active else "no",
            "Proxy": record.host_id if record.is_proxy else "",
            "Pages": "?" if record.page_array is None else len(record.page_array),
        }
        for app_id, record in state.debugger.app_dict.items()
    ]
    return build_table_response("Applications", _APP_HEADERS, rows, summary=f"{len(rows)} application(s)")


@app.command(display="markdown")
def select(state, url: str | None = None, ignore_blank: bool = False) -> dict:
    """Resolve a connectable application and list its pages.

    Args:
        url: Only accept an application showing this URL.
        ignore_blank: Skip about:blank pages.

    Returns:
        Page table in markdown
    """
    if error := check_connection(state):
        return error

    try:
        pages = state.debugger.select_app(url, ignore_blank=ignore_blank)
    except (WirTapError, TimeoutError) as e:
        return error_response("select_failed", custom_message=f"Selection failed: {e}")

    state.pages = pages
    rows = [
        {
            "ID": p.id,
            "Bundle": p.bundle_id or "",
            "Title": truncate_string(p.title or "", 40),
            "URL": truncate_string(p.url or "", 60),
            "Key": "*" if p.is_key else "",
        }
        for p in pages
    ]
    return build_table_response("Pages", _PAGE_HEADERS, rows, summary="Use page('<pid>.<page>') to attach")


@app.command(display="markdown")
def page(state, app: str, page: int | str | None = None, skip_ready_check: bool = False) -> dict:
    """Attach to a page.

    Args:
        app: Application pid, "PID:<n>" key, or a "<pid>.<page>" id from select().
        page: Page id, when not part of app.
        skip_ready_check: Do not wait for document readiness.

    Returns:
        Selection status in markdown
    """
    if error := check_connection(state):
        return error

    app_id = str(app)
    if page is None:
        if "." not in app_id:
            return error_response("bad_page", custom_message=f"No page given for app '{app_id}'")
        app_id, page = app_id.rsplit(".", 1)
    if isinstance(page, str) and page.isdigit():
        page = int(page)

    try:
        state.debugger.select_page(app_id, page, skip_ready_check=skip_ready_check)
    except (WirTapError, TimeoutError) as e:
        return error_response("page_failed", custom_message=f"Page selection failed: {e}")

    return build_info_response(
        title="Page Selected",
        fields={"App": state.debugger.state.app_id_key, "Page": state.debugger.state.page_id_key},
    )
