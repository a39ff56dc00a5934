"""
Shared utilities for themekit.

Logging, external tool lookup and the subprocess runner used by the
compiler adapters and the script pipeline.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


# =============================================================================
# Errors
# =============================================================================


class BuildError(RuntimeError):
    """Failure that aborts the current task sequence."""


class ToolNotFoundError(BuildError):
    """A required external executable could not be located."""

    def __init__(self, name: str, searched: list[Path]):
        self.name = name
        self.searched = searched
        locations = ", ".join(str(p) for p in searched) or "PATH"
        super().__init__(f"'{name}' not found (searched PATH, {locations})")


class CommandError(BuildError):
    """An external tool exited with a non-zero status."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command failed ({returncode}): {' '.join(cmd)}"
        if stderr.strip():
            message += f"\n{stderr.strip()}"
        super().__init__(message)


# =============================================================================
# Logging
# =============================================================================


class Logger:
    """Console output for build runs.

    Every line carries a wall-clock stamp so interleaved watch rebuilds can
    be told apart. Colour is dropped when stdout is not a terminal, when
    NO_COLOR is set, or after ``set_color(False)``.
    """

    ANSI = {
        "stamp": "\033[90m",
        "title": "\033[1;96m",
        "ok": "\033[32m",
        "warn": "\033[33m",
        "fail": "\033[1;31m",
        "faint": "\033[2m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: Optional[bool] = None):
        self._use_color = (
            use_color if use_color is not None
            else sys.stdout.isatty() and "NO_COLOR" not in os.environ
        )

    def set_color(self, use_color: bool) -> None:
        self._use_color = use_color

    def _paint(self, style: str, text: str) -> str:
        if self._use_color:
            return f"{self.ANSI[style]}{text}{self.RESET}"
        return text

    def _emit(self, text: str, tag: str = "", style: str = "") -> None:
        stamp = self._paint("stamp", f"[{datetime.now():%H:%M:%S}]")
        if tag:
            text = f"{self._paint(style, tag)} {text}"
        print(f"{stamp} {text}", flush=True)

    def header(self, message: str) -> None:
        print()
        self._emit(self._paint("title", message))

    def info(self, message: str) -> None:
        self._emit(message)

    def success(self, message: str) -> None:
        self._emit(message, "done", "ok")

    def warning(self, message: str) -> None:
        self._emit(message, "warning", "warn")

    def error(self, message: str) -> None:
        self._emit(message, "error", "fail")

    def dim(self, message: str) -> None:
        self._emit(self._paint("faint", message))


log = Logger()


# =============================================================================
# Tool Lookup
# =============================================================================


class ToolLocator:
    """Finds Node-based build tools on PATH or in the project's node_modules."""

    def __init__(self, project_root: Path):
        self.project_root = project_root
        self._found: dict[str, Optional[str]] = {}

    @property
    def local_bin(self) -> Path:
        return self.project_root / "node_modules" / ".bin"

    def find(self, name: str) -> Optional[str]:
        """Return the executable path for `name`, or None."""
        if name in self._found:
            return self._found[name]

        found = shutil.which(name)
        if found is None:
            local = shutil.which(name, path=str(self.local_bin))
            if local is not None:
                found = local
        self._found[name] = found
        return found

    def require(self, name: str) -> str:
        """Return the executable path for `name` or raise ToolNotFoundError."""
        found = self.find(name)
        if found is None:
            raise ToolNotFoundError(name, [self.local_bin])
        return found


# =============================================================================
# Runtime Utilities
# =============================================================================


async def run_tool(
    cmd: list[str],
    cwd: Optional[Path] = None,
    input_text: Optional[str] = None,
    env: Optional[dict[str, str]] = None,
) -> str:
    """Run an external tool and return its stdout.

    `env` entries are added to the current environment.
    Raises CommandError on a non-zero exit status.
    """
    process = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd else None,
        env={**os.environ, **env} if env else None,
        stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate(
        input_text.encode("utf-8") if input_text is not None else None
    )
    if process.returncode != 0:
        raise CommandError(cmd, process.returncode, stderr.decode("utf-8", errors="replace"))
    return stdout.decode("utf-8")
