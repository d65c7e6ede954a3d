"""REPL application for wirtap.

Built on ReplKit2. Commands register themselves on import through the
@app.command decorator.
"""

from dataclasses import dataclass, field

from replkit2 import App

from wirtap.debugger import RemoteDebugger
from wirtap.types import PageRecord


@dataclass
class WirTapState:
    """Application state for the wirtap REPL.

    Attributes:
        debugger: Active session, or None before connect().
        pages: Pages listed by the last select() call.
    """

    debugger: RemoteDebugger | None = None
    pages: list[PageRecord] = field(default_factory=list)

    def cleanup(self):
        """Disconnect on exit."""
        if self.debugger and self.debugger.is_connected:
            self.debugger.disconnect()
        self.debugger = None
        self.pages = []


# Must be created before command imports for decorator registration
app = App("wirtap", WirTapState)


# Command imports trigger @app.command decorator registration
from wirtap.commands import connection  # noqa: E402, F401
from wirtap.commands import navigation  # noqa: E402, F401
from wirtap.commands import javascript  # noqa: E402, F401
