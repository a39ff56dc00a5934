"""
themekit.core - Foundation layer: logging, errors, tool lookup, timing.
"""

from themekit.core.utils import (
    log,
    Logger,
    BuildError,
    CommandError,
    ToolNotFoundError,
    ToolLocator,
    run_tool,
)
from themekit.core.timing import StageTimer, StageTiming, format_duration

__all__ = [
    # Logging
    "log",
    "Logger",
    # Errors
    "BuildError",
    "CommandError",
    "ToolNotFoundError",
    # Tools
    "ToolLocator",
    "run_tool",
    # Timing
    "StageTimer",
    "StageTiming",
    "format_duration",
]
