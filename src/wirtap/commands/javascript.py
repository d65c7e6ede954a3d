"""JavaScript execution in the selected page."""

import json

from replkit2.textkit import markdown

from wirtap.app import app
from wirtap.commands._errors import check_selection, error_response
from wirtap.errors import WirTapError


@app.command(display="markdown")
def js(state, code: str, wait_async: bool = False, timeout_ms: int = 5000) -> dict:
    """Execute JavaScript in the selected page.

    Code runs as a function body, so use `return` to produce a value.

    Examples:
        js("return document.title")
        js("setTimeout(() => arguments[0](42), 100)", wait_async=True)

    Args:
        code: Function body to run
        wait_async: Wait for the last argument (a callback) to be called
        timeout_ms: Callback timeout when wait_async is set

    Returns:
        Evaluated result in markdown
    """
    if error := check_selection(state):
        return error

    try:
        if wait_async:
            result = state.debugger.execute_atom_async("execute_async_script", [code, [], timeout_ms])
        else:
            result = state.debugger.execute_atom("execute_script", [code, []])
    except (WirTapError, TimeoutError) as e:
        return error_response("js_failed", custom_message=f"JavaScript error: {e}")

    builder = markdown().heading("JavaScript Result", level=2)
    builder.code_block(code, language="javascript")
    builder.code_block(json.dumps(result, indent=2, default=str), language="json")
    return builder.build()
