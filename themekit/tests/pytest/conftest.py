"""
Shared pytest fixtures for themekit tests.

Provides throwaway theme trees and fakes for the Node executables
(lessc, stylus, babel, postcss). libsass, rjsmin and rcssmin run for real.

Test Tier Markers:
  @pytest.mark.evergreen - Tests that always run, never skip (production tests)
  @pytest.mark.dev       - Development/WIP tests, toggle-able
  @pytest.mark.temporary - Tests with explicit discard flag
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Callable, Optional

import pytest

from themekit.build import compilers, scripts
from themekit.build.config import BuildOptions, ProjectConfig, ProjectLayout
from themekit.core.utils import ToolLocator


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test tiers."""
    config.addinivalue_line(
        "markers",
        "evergreen: tests that always run, never skip (production tests)"
    )
    config.addinivalue_line(
        "markers",
        "dev: development/WIP tests, toggle-able for active development"
    )
    config.addinivalue_line(
        "markers",
        "temporary: tests with explicit discard flag"
    )


# =============================================================================
# Theme Trees
# =============================================================================


def write_files(root: Path, files: dict[str, str]) -> None:
    """Write `files` (relative path -> content) under `root`."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


@pytest.fixture
def theme(tmp_path: Path) -> Path:
    """An empty theme root."""
    root = tmp_path / "theme"
    root.mkdir()
    return root


@pytest.fixture
def write_theme(theme: Path) -> Callable[[dict[str, str]], Path]:
    """Write files into the theme root; returns the root."""
    def _write(files: dict[str, str]) -> Path:
        write_files(theme, files)
        return theme
    return _write


@pytest.fixture
def layout(theme: Path) -> ProjectLayout:
    return ProjectLayout(theme)


@pytest.fixture
def make_options() -> Callable[..., BuildOptions]:
    """Factory for BuildOptions with keyword overrides."""
    def _make(**overrides) -> BuildOptions:
        return BuildOptions(**overrides)
    return _make


@pytest.fixture
def config() -> ProjectConfig:
    return ProjectConfig()


# =============================================================================
# External Tool Fakes
# =============================================================================


class FakeTools:
    """Stands in for the Node executables through run_tool.

    Each fake writes what the real tool would: lessc and stylus copy the
    source through (with a marker comment), babel prefixes "use strict".
    """

    def __init__(self, available: set[str]):
        self.available = available
        self.calls: list[list[str]] = []

    def lookup(self, name: str) -> Optional[str]:
        return f"/fake/bin/{name}" if name in self.available else None

    def names(self) -> list[str]:
        return [os.path.basename(cmd[0]) for cmd in self.calls]

    async def run(self, cmd, cwd=None, input_text=None, env=None) -> str:
        self.calls.append(list(cmd))
        tool = os.path.basename(cmd[0])
        if tool == "lessc":
            return self._lessc(cmd)
        if tool == "stylus":
            return self._stylus(cmd)
        if tool == "babel":
            return '"use strict";\n' + (input_text or "")
        return ""

    @staticmethod
    def _lessc(cmd: list[str]) -> str:
        source, target = Path(cmd[-2]), Path(cmd[-1])
        css = f"/* less */\n{source.read_text()}"
        for arg in cmd:
            if arg.startswith("--source-map="):
                map_path = Path(arg.split("=", 1)[1])
                map_path.write_text(json.dumps({
                    "version": 3,
                    "sources": [os.path.relpath(source, map_path.parent)],
                    "names": [],
                    "mappings": "AAAA",
                }))
                css += f"\n/*# sourceMappingURL={map_path.name} */"
        target.write_text(css)
        return ""

    @staticmethod
    def _stylus(cmd: list[str]) -> str:
        source = Path(cmd[-1])
        out_dir = Path(cmd[cmd.index("--out") + 1])
        produced = out_dir / f"{source.stem}.css"
        css = f"/* stylus */\n{source.read_text()}"
        if "--sourcemap" in cmd:
            map_path = out_dir / f"{source.stem}.css.map"
            map_path.write_text(json.dumps({
                "version": 3,
                "file": produced.name,
                "sources": [os.path.relpath(source, out_dir)],
                "names": [],
                "mappings": "AAAA",
            }))
            css += f"\n/*# sourceMappingURL={map_path.name} */"
        produced.write_text(css)
        return ""


@pytest.fixture
def fake_tools(monkeypatch: pytest.MonkeyPatch) -> FakeTools:
    """lessc, stylus and babel available as fakes; postcss absent."""
    fake = FakeTools({"lessc", "stylus", "babel"})
    monkeypatch.setattr(ToolLocator, "find", lambda self, name: fake.lookup(name))
    monkeypatch.setattr(compilers, "run_tool", fake.run)
    monkeypatch.setattr(scripts, "run_tool", fake.run)
    return fake


@pytest.fixture
def no_tools(monkeypatch: pytest.MonkeyPatch) -> FakeTools:
    """No Node executable can be found."""
    fake = FakeTools(set())
    monkeypatch.setattr(ToolLocator, "find", lambda self, name: fake.lookup(name))
    monkeypatch.setattr(compilers, "run_tool", fake.run)
    monkeypatch.setattr(scripts, "run_tool", fake.run)
    return fake
