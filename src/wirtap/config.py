"""Configuration management for wirtap.

Reads session defaults from wirtap.toml, searched in the current directory and
its parents. Keyword overrides passed to the debugger win over the file.

PUBLIC API:
  - DebuggerOptions: Session settings with their defaults
  - ConfigManager: Loaded configuration file
  - get_config_manager: Global ConfigManager instance
"""

import logging
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Optional

from wirtap.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "wirtap.toml"


@dataclass
class DebuggerOptions:
    """Settings for one debugging session.

    Attributes:
        bundle_id: Primary bundle id to attach to, or "*" for any app.
        additional_bundle_ids: Extra bundle ids tried after the primary one.
        is_safari: Whether the target is Safari itself.
        include_safari: Also try Safari when the target is another app.
        page_load_ms: Navigation timeout in milliseconds.
        page_load_strategy: Readiness strategy name (normal, eager, none).
        page_ready_timeout_ms: Bound for a single readyState probe.
        garbage_collect_on_execute: Run Heap.gc before each script.
        skipped_apps: Application names ignored in the initial app list.
        select_app_retries: Attempts made when resolving an application.
        select_app_retry_interval_ms: Delay between resolution attempts.
        url: Relay endpoint used by the websocket transport.
        log_all_communication: Log every message sent and received.
        full_page_initialization: Enable all inspector domains on page attach.
    """

    bundle_id: Optional[str] = None
    additional_bundle_ids: list[str] = field(default_factory=list)
    is_safari: bool = True
    include_safari: bool = False
    page_load_ms: int = 20000
    page_load_strategy: str = "normal"
    page_ready_timeout_ms: int = 5000
    garbage_collect_on_execute: bool = False
    skipped_apps: list[str] = field(default_factory=list)
    select_app_retries: int = 20
    select_app_retry_interval_ms: int = 500
    url: Optional[str] = None
    log_all_communication: bool = False
    full_page_initialization: bool = False

    def merged(self, **overrides) -> "DebuggerOptions":
        """Return a copy with non-None overrides applied.

        Raises:
            ConfigurationError: If an override names an unknown option.
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown option(s): {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _find_config_file() -> Optional[Path]:
    """Find wirtap.toml in current or parent directories."""
    current = Path.cwd()

    for parent in [current] + list(current.parents):
        config_file = parent / CONFIG_FILE_NAME
        if config_file.exists():
            return config_file

    return None


def _load_config(path: Optional[Path] = None) -> dict:
    """Load raw configuration from file."""
    if path is None:
        path = _find_config_file()

    if path is None or not path.exists():
        return {}

    with open(path, "rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid {path}: {e}") from e


class ConfigManager:
    """Manages configuration for wirtap."""

    def __init__(self, path: Optional[Path] = None):
        self._config_file = path or _find_config_file()
        self.data = _load_config(self._config_file)
        self._default_config = self.data.get("default", {})

        if self._config_file:
            logger.debug(f"Loaded configuration from {self._config_file}")

    @property
    def config_file(self) -> Optional[Path]:
        return self._config_file

    def get_options(self, **overrides) -> DebuggerOptions:
        """Build DebuggerOptions from the [default] table plus overrides.

        Args:
            **overrides: Option values that take precedence over the file.

        Returns:
            Merged DebuggerOptions.

        Raises:
            ConfigurationError: If the file or overrides name unknown options.
        """
        known = {f.name for f in fields(DebuggerOptions)}
        file_values = {k: v for k, v in self._default_config.items() if k in known}
        ignored = set(self._default_config) - known
        if ignored:
            logger.warning(f"Ignoring unknown options in {self._config_file}: {', '.join(sorted(ignored))}")

        return DebuggerOptions(**file_values).merged(**overrides)


# Global config instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get or create the global config manager."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_options(**overrides) -> DebuggerOptions:
    """Get session options from the global config plus overrides."""
    return get_config_manager().get_options(**overrides)


__all__ = ["DebuggerOptions", "ConfigManager", "get_config_manager", "get_options"]
