"""Session services composed by RemoteDebugger.

Each service holds a reference to the owning debugger and reaches shared
state, options and events through it.

PUBLIC API:
  - DirectoryService: Application directory driven by inspector notifications
  - ResolverService: Application and page selection under retry
  - NavigationService: Navigation and page readiness
  - ExecuteService: Script execution and the async bridge
  - MiscService: Passthrough commands and client event forwarding
"""

from wirtap.services.directory import DirectoryService
from wirtap.services.execute import ExecuteService
from wirtap.services.misc import MiscService
from wirtap.services.navigation import NavigationService
from wirtap.services.resolver import ResolverService

__all__ = ["DirectoryService", "ResolverService", "NavigationService", "ExecuteService", "MiscService"]
