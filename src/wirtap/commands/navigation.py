"""Page navigation commands."""

from wirtap.app import app
from wirtap.commands._errors import check_selection, error_response
from wirtap.commands._utils import build_info_response
from wirtap.errors import WirTapError


@app.command(display="markdown")
def navigate(state, url: str, wait: bool = True) -> dict:
    """Navigate the selected page to URL.

    Args:
        url: Absolute URL to load
        wait: Also wait for document readiness after the load signal

    Returns:
        Navigation result in markdown
    """
    if error := check_selection(state):
        return error

    try:
        loaded = state.debugger.navigate(url, wait_for_readiness=wait)
    except (WirTapError, TimeoutError) as e:
        return error_response("navigate_failed", custom_message=f"Navigation failed: {e}")

    return build_info_response(
        title="Navigation",
        fields={"URL": url, "Load event": "received" if loaded else "timed out, continued anyway"},
    )


@app.command(display="markdown")
def ready(state) -> dict:
    """Report whether the selected page satisfies the load strategy."""
    if error := check_selection(state):
        return error

    is_ready = state.debugger.check_page_is_ready()
    return build_info_response(
        title="Page Readiness",
        fields={"Strategy": state.debugger.page_load_strategy, "Ready": "yes" if is_ready else "no"},
    )
