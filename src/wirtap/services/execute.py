"""Script execution in the selected page.

PUBLIC API:
  - ExecuteService: execute, atoms, async atoms, function calls, GC
"""

import logging
import time
import uuid
from typing import TYPE_CHECKING, Any

from wirtap.errors import AsyncScriptTimeoutError, CommandNotFoundError, MissingParametersError, WirTapError
from wirtap.utils import check_params, convert_javascript_evaluation_result, simple_stringify

if TYPE_CHECKING:
    from wirtap.debugger import RemoteDebugger

logger = logging.getLogger(__name__)

RPC_RESPONSE_TIMEOUT_MS = 5000
GARBAGE_COLLECT_TIMEOUT_MS = 5000
ASYNC_POLL_INTERVAL_MS = 100
SUBCOMMAND_TIMEOUT_MS = 1000
AWAIT_PROMISE_NOT_FOUND = "'Runtime.awaitPromise' was not found"
LOG_LENGTH = 100


def _truncate(text: str, length: int = LOG_LENGTH) -> str:
    return text if len(text) <= length else f"{text[: length - 3]}..."


class ExecuteService:
    """Runs JavaScript in the selected page.

    Args:
        session: Owning debugger.
    """

    def __init__(self, session: "RemoteDebugger"):
        self.session = session

    def _selection(self) -> tuple[str, Any]:
        state = self.session.state
        check_params({"appIdKey": state.app_id_key, "pageIdKey": state.page_id_key})
        return state.app_id_key, state.page_id_key

    def execute(self, command: str, timeout_ms: float | None = None) -> Any:
        """Evaluate an expression and return its converted value.

        Args:
            command: JavaScript expression.
            timeout_ms: Reply timeout, defaults to the client's command timeout.

        Raises:
            MissingParametersError: If no app or page is selected.
            JavaScriptEvaluationError: If the script reports a failure.
            TimeoutError: If the page does not reply in time.
        """
        app_id_key, page_id_key = self._selection()
        if self.session.options.garbage_collect_on_execute:
            self.garbage_collect()

        rpc = self.session.require_rpc_client(check_connected=True)
        rpc.wait_for_page(app_id_key, page_id_key)
        logger.debug(f"Sending javascript command: '{_truncate(command, 50)}'")
        res = rpc.send(
            "Runtime.evaluate",
            {"expression": command, "returnByValue": True},
            app_id_key=app_id_key,
            page_id_key=page_id_key,
            timeout=timeout_ms / 1000 if timeout_ms else None,
        )
        return convert_javascript_evaluation_result(res)

    def execute_atom(self, atom: str, args: list | None = None, frames: list | None = None) -> Any:
        """Run a named atom with args, optionally inside nested frames."""
        args = args or []
        frames = frames or []
        logger.debug(f"Executing atom '{atom}' with 'args={simple_stringify(args)}; frames={frames}'")
        script = self.session.atoms.get_script(atom, args, frames)
        value = self.execute(script)
        logger.debug(f"Received result for atom '{atom}' execution: {_truncate(simple_stringify(value))}")
        return value

    def execute_atom_async(self, atom: str, args: list | None = None, frames: list | None = None) -> Any:
        """Run an atom that reports through a callback.

        A page-side promise is resolved by the callback and awaited with
        Runtime.awaitPromise. Inspectors without that method are polled for
        the stored value instead.

        Args:
            atom: Atom name.
            args: Atom arguments; args[2], when present, is the timeout in ms.
            frames: Frame path to execute in.

        Raises:
            AsyncScriptTimeoutError: If the callback never fired.
        """
        args = args or []
        frames = frames or []
        app_id_key, page_id_key = self._selection()
        rpc = self.session.require_rpc_client(check_connected=True)

        def evaluate(method: str, params: dict) -> Any:
            return rpc.send(
                method,
                {"returnByValue": False, **params},
                app_id_key=app_id_key,
                page_id_key=page_id_key,
            )

        promise_name = f"wirtapAsyncExecutePromise{uuid.uuid4().hex}"
        script = (
            "var res, rej;"
            f"window.{promise_name} = new Promise(function (resolve, reject) {{ res = resolve; rej = reject; }});"
            f"window.{promise_name}.resolve = res;"
            f"window.{promise_name}.reject = rej;"
            f"window.{promise_name};"
        )
        obj = evaluate("Runtime.evaluate", {"expression": script})
        promise_object_id = ((obj or {}).get("result") or {}).get("objectId")

        callback = f"function (res) {{ window.{promise_name}.resolve(res); window.{promise_name}Value = res; }}"
        try:
            self.execute(self.session.atoms.get_script(atom, args, frames, callback))
            try:
                res = evaluate(
                    "Runtime.awaitPromise",
                    {
                        "promiseObjectId": promise_object_id,
                        "returnByValue": True,
                        "generatePreview": True,
                        "saveResult": True,
                    },
                )
            except CommandNotFoundError as e:
                if AWAIT_PROMISE_NOT_FOUND not in str(e):
                    raise
                timeout_ms = args[2] if len(args) >= 3 and args[2] else RPC_RESPONSE_TIMEOUT_MS
                res = self._poll_for_value(evaluate, promise_name, timeout_ms)
        finally:
            self._remove_async_globals(promise_name, frames)

        return convert_javascript_evaluation_result(res)

    def _remove_async_globals(self, promise_name: str, frames: list) -> None:
        cleanup = f"delete window.{promise_name}; delete window.{promise_name}Value;"
        try:
            self.execute_atom("execute_script", [cleanup, [None, None], SUBCOMMAND_TIMEOUT_MS], frames)
        except (WirTapError, TimeoutError) as e:
            logger.debug(f"Could not remove the async globals for '{promise_name}': {e}")

    def _poll_for_value(self, evaluate, promise_name: str, timeout_ms: float) -> Any:
        retries = int(timeout_ms / ASYNC_POLL_INTERVAL_MS) or 1
        started = time.monotonic()
        logger.debug(f"Waiting up to {timeout_ms}ms for async execute to finish")

        for attempt in range(retries):
            has_value = evaluate(
                "Runtime.evaluate",
                {"expression": f"window.hasOwnProperty('{promise_name}Value');", "returnByValue": True},
            )
            if has_value:
                return evaluate(
                    "Runtime.evaluate", {"expression": f"window.{promise_name}Value;", "returnByValue": True}
                )
            if attempt < retries - 1:
                time.sleep(ASYNC_POLL_INTERVAL_MS / 1000)

        raise AsyncScriptTimeoutError(
            f"Timed out waiting for asynchronous script result after {(time.monotonic() - started) * 1000:.0f}ms"
        )

    def call_function(self, object_id: str, fn: str, args: list | None = None) -> Any:
        """Call fn with this bound to a remote object."""
        app_id_key, page_id_key = self._selection()
        if self.session.options.garbage_collect_on_execute:
            self.garbage_collect()

        logger.debug("Calling javascript function")
        res = self.session.require_rpc_client(check_connected=True).send(
            "Runtime.callFunctionOn",
            {"objectId": object_id, "functionDeclaration": fn, "arguments": args, "returnByValue": True},
            app_id_key=app_id_key,
            page_id_key=page_id_key,
        )
        return convert_javascript_evaluation_result(res)

    def garbage_collect(self, timeout_ms: float = GARBAGE_COLLECT_TIMEOUT_MS) -> None:
        """Ask the page to collect garbage. Failures are only logged."""
        logger.debug(f"Garbage collecting with {timeout_ms}ms timeout")
        try:
            app_id_key, page_id_key = self._selection()
        except MissingParametersError:
            logger.debug("Unable to collect garbage at this time")
            return

        try:
            self.session.require_rpc_client().send(
                "Heap.gc", {}, app_id_key=app_id_key, page_id_key=page_id_key, timeout=timeout_ms / 1000
            )
            logger.debug("Garbage collection successful")
        except TimeoutError:
            logger.debug(f"Garbage collection timed out after {timeout_ms}ms")
        except WirTapError as e:
            logger.debug(f"Unable to collect garbage: {e}")

    def is_javascript_execution_blocked(self, timeout_ms: float = 1000) -> bool:
        """True if a trivial evaluation does not come back within timeout_ms."""
        state = self.session.state
        try:
            self.session.require_rpc_client().send(
                "Runtime.evaluate",
                {"expression": "1+1;", "returnByValue": True},
                app_id_key=state.app_id_key,
                page_id_key=state.page_id_key,
                timeout=timeout_ms / 1000,
            )
            return False
        except (WirTapError, TimeoutError):
            return True


__all__ = ["ExecuteService"]
