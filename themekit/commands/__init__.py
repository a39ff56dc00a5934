"""
themekit.commands - Long-running commands: watch mode and live reload.
"""

from themekit.commands.reload import ReloadBroadcaster, ReloadServer, inject_script, rewrite_origin
from themekit.commands.watch import (
    DEBOUNCE_SECONDS,
    RELOAD_TYPES,
    WATCH_SEQUENCES,
    ChangeCategory,
    ChangeClassifier,
    ThemeEventHandler,
    WatchSession,
    WatchState,
    run_watch,
)

__all__ = [
    # Live reload
    "ReloadBroadcaster",
    "ReloadServer",
    "inject_script",
    "rewrite_origin",
    # Watch
    "DEBOUNCE_SECONDS",
    "RELOAD_TYPES",
    "WATCH_SEQUENCES",
    "ChangeCategory",
    "ChangeClassifier",
    "ThemeEventHandler",
    "WatchSession",
    "WatchState",
    "run_watch",
]
