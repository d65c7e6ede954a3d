"""Error handling for wirtap commands.

PUBLIC API:
  - check_connection: Validate the inspector connection
  - check_selection: Validate that a page is selected
  - error_response: Build formatted error responses
"""

from typing import Optional

from replkit2.textkit import markdown

_ERRORS = {
    "not_connected": {
        "message": "Not connected to the inspector",
        "details": "Use `connect()` to connect to a relay",
        "help": [
            "Run `connect('ws://localhost:27753')` with your relay URL",
            "Or set `url` under `[default]` in wirtap.toml",
        ],
    },
    "no_page": {
        "message": "No page selected",
        "details": "Use `select()` to list pages, then `page(app, page)`",
    },
}


def check_connection(state) -> Optional[dict]:
    """Return an error response unless the session is connected."""
    if not (state.debugger and state.debugger.is_connected):
        return error_response("not_connected")
    return None


def check_selection(state) -> Optional[dict]:
    """Return an error response unless a page is selected."""
    if error := check_connection(state):
        return error
    if state.debugger.state.page_id_key is None:
        return error_response("no_page")
    return None


def error_response(error_key: str, custom_message: str | None = None, **kwargs) -> dict:
    """Build an error response in markdown.

    Args:
        error_key: Key from the error templates, or any identifier with custom_message.
        custom_message: Override the template message.
        **kwargs: Extra context lines.
    """
    error_info = _ERRORS.get(error_key, {})
    message = custom_message or error_info.get("message", "Error occurred")

    builder = markdown().element("alert", message=message, level="error")

    if details := error_info.get("details"):
        builder.text(details)

    if help_items := error_info.get("help"):
        builder.text("**How to fix:**")
        builder.list(help_items)

    for key, value in kwargs.items():
        if value:
            builder.text(f"_{key}: {value}_")

    return builder.build()
