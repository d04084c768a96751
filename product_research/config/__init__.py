"""Unified configuration module.

Single source of truth for all configuration and settings.
"""

from .settings import (
    MODES,
    ModeConfig,
    RunMode,
    Settings,
    get_settings,
    mode_config,
)
from .domains import (
    DEFAULT_DOMAINS_FILE,
    SourceLists,
    default_source_lists,
    load_source_lists,
)

__all__ = [
    "MODES",
    "ModeConfig",
    "RunMode",
    "Settings",
    "get_settings",
    "mode_config",
    "DEFAULT_DOMAINS_FILE",
    "SourceLists",
    "default_source_lists",
    "load_source_lists",
]
