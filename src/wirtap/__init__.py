"""WirTap - WebKit Remote Inspector session REPL.

Keeps a live directory of inspectable applications, resolves a target page
under retry, drives navigation to a readiness point and runs JavaScript in
the selected page.

PUBLIC API:
  - RemoteDebugger: Session orchestrator
  - DebuggerOptions: Session settings
  - PageChanged, FramesDetached, Disconnected: Session events
  - main: Entry point function for CLI
  - __version__: Package version string
"""

import atexit
import logging
import os
from importlib.metadata import version

from wirtap.config import DebuggerOptions
from wirtap.debugger import RemoteDebugger
from wirtap.events import Disconnected, FramesDetached, PageChanged

__version__ = version("wirtap-tool")


def main():
    """Entry point for wirtap.

    Starts the REPL. Set WIRTAP_LOG_LEVEL (e.g. DEBUG) to see session logs.
    """
    if level := os.environ.get("WIRTAP_LOG_LEVEL"):
        logging.basicConfig(level=level.upper(), format="%(asctime)s %(name)s %(levelname)s: %(message)s")

    from wirtap.app import app

    atexit.register(lambda: app.state.cleanup() if hasattr(app, "state") and app.state else None)
    app.run(title="WirTap - WebKit Remote Inspector REPL")


__all__ = [
    "RemoteDebugger",
    "DebuggerOptions",
    "PageChanged",
    "FramesDetached",
    "Disconnected",
    "main",
    "__version__",
]
