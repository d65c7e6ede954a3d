"""wirtap REPL commands.

Importing a command module registers its @app.command functions.
"""

from wirtap.commands import _markdown  # noqa: F401
from wirtap.commands import connection, javascript, navigation

__all__ = ["connection", "navigation", "javascript"]
