"""WirTap exceptions.

PUBLIC API:
  - WirTapError: Base exception for all session operations
  - ConfigurationError: Required session state or input is missing/invalid
  - MissingParametersError: App or page not selected
  - InvalidUrlError: Navigation target is not a well-formed URL
  - TransientAppError: Candidate application not connectable yet
  - NewAppConnectedError: Another application connected during selection
  - EmptyPageDictionaryError: Application reported no pages during selection
  - AppResolutionError: All selection attempts exhausted
  - JavaScriptEvaluationError: Remote script reported a failure status
  - AsyncScriptTimeoutError: Async script callback never fired
  - RemoteDebuggerError: Inspector replied with an error
  - CommandNotFoundError: Inspector does not support the command
  - NotConnectedError: Transport missing or closed
  - ConsoleForwardingError: Console events could not be re-enabled
  - AtomNotFoundError: Named atom has no script source
"""

NEW_APP_CONNECTED_ERROR = "New application has connected"
EMPTY_PAGE_DICTIONARY_ERROR = "Empty page dictionary received"


class WirTapError(Exception):
    """Base exception for all session operations."""

    pass


class ConfigurationError(WirTapError):
    """Raised when required session state or caller input is missing or invalid."""

    pass


class MissingParametersError(ConfigurationError):
    """Raised when an operation needs an app or page selection that is not set."""

    def __init__(self, names: list[str]):
        self.names = names
        super().__init__(f"Missing parameter(s): {', '.join(names)}")


class InvalidUrlError(ConfigurationError, ValueError):
    """Raised when a navigation URL is not well-formed."""

    pass


class TransientAppError(WirTapError):
    """Raised when a candidate application cannot be selected right now."""

    pass


class NewAppConnectedError(TransientAppError):
    """Raised when a new application connects while another is being selected."""

    def __init__(self, message: str = NEW_APP_CONNECTED_ERROR):
        super().__init__(message)


class EmptyPageDictionaryError(TransientAppError):
    """Raised when a selected application reports an empty page listing."""

    def __init__(self, message: str = EMPTY_PAGE_DICTIONARY_ERROR):
        super().__init__(message)


class AppResolutionError(WirTapError):
    """Raised when no connectable application is found within the retry budget."""

    def __init__(self, tries: int, detail: str = ""):
        self.tries = tries
        message = f"Could not connect to a valid webapp. Tried {tries} time(s)"
        if detail:
            message = f"{message}. {detail}"
        super().__init__(message)


class JavaScriptEvaluationError(WirTapError):
    """Raised when a remote evaluation reports a non-zero status."""

    def __init__(self, message: str, status: int | None = None, value=None):
        self.status = status
        self.value = value
        super().__init__(message)


class AsyncScriptTimeoutError(WirTapError, TimeoutError):
    """Raised when an async script callback does not fire within its timeout."""

    pass


class RemoteDebuggerError(WirTapError):
    """Raised when the inspector replies to a command with an error."""

    def __init__(self, message: str, code: int | None = None, data=None):
        self.code = code
        self.data = data
        super().__init__(message)


class CommandNotFoundError(RemoteDebuggerError):
    """Raised when the inspector does not implement the requested method."""

    pass


class NotConnectedError(WirTapError):
    """Raised when the transport is missing or closed mid-operation."""

    pass


class ConsoleForwardingError(WirTapError):
    """Raised when console forwarding cannot be re-enabled after navigation."""

    pass


class AtomNotFoundError(WirTapError, FileNotFoundError):
    """Raised when no script source exists for a named atom."""

    pass


__all__ = [
    "WirTapError",
    "ConfigurationError",
    "MissingParametersError",
    "InvalidUrlError",
    "TransientAppError",
    "NewAppConnectedError",
    "EmptyPageDictionaryError",
    "AppResolutionError",
    "JavaScriptEvaluationError",
    "AsyncScriptTimeoutError",
    "RemoteDebuggerError",
    "CommandNotFoundError",
    "NotConnectedError",
    "ConsoleForwardingError",
    "AtomNotFoundError",
    "NEW_APP_CONNECTED_ERROR",
    "EMPTY_PAGE_DICTIONARY_ERROR",
]
