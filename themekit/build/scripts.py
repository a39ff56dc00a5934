"""
Script pipeline.

First-party sources (dev/js/*.js) are debug-stripped in production,
transpiled with babel unless --nostrict, minified with rjsmin and written as
assets/js/<name>.min.js. Library files matched by the js_libraries globs
are copied through unchanged.
"""

from __future__ import annotations

import asyncio
import os
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import rjsmin

from themekit.build.config import BuildOptions, ProjectConfig, ProjectLayout
from themekit.build.sourcemaps import coarse_map, js_map_comment, strip_source_map_url, write_map
from themekit.core.utils import BuildError, ToolLocator, log, run_tool


@dataclass
class ScriptBundle:
    """Files written by one script pipeline run."""

    scripts: list[Path] = field(default_factory=list)
    libraries: list[Path] = field(default_factory=list)


# =============================================================================
# Debug Stripping
# =============================================================================

_CONSOLE_CALL_RE = re.compile(r"console\s*\.\s*[A-Za-z_$][\w$]*\s*\(")
_DEBUGGER_RE = re.compile(r"debugger\b")
# A "/" after one of these (or at the start) opens a regex literal
_REGEX_PRECEDERS = set("(,=:[!&|?{};+-*%<>~^")


def _skip_string(source: str, start: int) -> int:
    """Index just past the string or template literal opening at `start`."""
    quote = source[start]
    i = start + 1
    while i < len(source):
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and quote != "`":
            return i
        i += 1
    return len(source)


def _skip_regex(source: str, start: int) -> int:
    i = start + 1
    in_class = False
    while i < len(source):
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "\n":
            return i
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            i += 1
            while i < len(source) and (source[i].isalnum() or source[i] == "_"):
                i += 1
            return i
        i += 1
    return len(source)


def _skip_comment(source: str, start: int) -> Optional[int]:
    if source.startswith("//", start):
        end = source.find("\n", start)
        return len(source) if end == -1 else end
    if source.startswith("/*", start):
        end = source.find("*/", start + 2)
        return len(source) if end == -1 else end + 2
    return None


def _skip_call(source: str, open_paren: int) -> int:
    """Index just past the parenthesis matching `open_paren`."""
    depth = 0
    i = open_paren
    while i < len(source):
        ch = source[i]
        if ch in "'\"`":
            i = _skip_string(source, i)
            continue
        end = _skip_comment(source, i)
        if end is not None:
            i = end
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return len(source)


def _previous_significant(source: str, index: int) -> str:
    i = index - 1
    while i >= 0 and source[i].isspace():
        i -= 1
    return source[i] if i >= 0 else ""


def strip_debug(source: str) -> str:
    """Remove console.* calls and debugger statements.

    Calls are replaced with `void 0` so expressions like `a && console.log(a)`
    stay valid. Strings, template literals, comments and regex literals are
    left untouched.
    """
    out: list[str] = []
    i = 0
    last = 0
    n = len(source)
    while i < n:
        ch = source[i]
        if ch in "'\"`":
            i = _skip_string(source, i)
            continue
        if ch == "/":
            end = _skip_comment(source, i)
            if end is None:
                before = _previous_significant(source, i)
                if not before or before in _REGEX_PRECEDERS:
                    end = _skip_regex(source, i)
            if end is not None:
                i = end
                continue
            i += 1
            continue

        prev = source[i - 1] if i > 0 else ""
        if prev and (prev.isalnum() or prev in "_$."):
            i += 1
            continue

        match = _CONSOLE_CALL_RE.match(source, i)
        if match:
            end = _skip_call(source, match.end() - 1)
            out.append(source[last:i])
            out.append("void 0")
            i = last = end
            continue

        match = _DEBUGGER_RE.match(source, i)
        if match:
            out.append(source[last:i])
            i = last = match.end()
            continue

        i += 1

    out.append(source[last:])
    return "".join(out)


# =============================================================================
# Pipeline
# =============================================================================


class ScriptPipeline:
    """Builds assets/js from dev/js."""

    def __init__(
        self,
        options: BuildOptions,
        layout: ProjectLayout,
        config: ProjectConfig,
        tools: Optional[ToolLocator] = None,
    ):
        self.options = options
        self.layout = layout
        self.config = config
        self.tools = tools or ToolLocator(layout.root)

    def first_party_sources(self) -> list[Path]:
        directory = self.layout.js_source_dir
        if not directory.is_dir():
            return []
        return sorted(
            p for p in directory.glob("*.js")
            if p.is_file() and not p.name.endswith(".min.js")
        )

    def library_sources(self) -> list[Path]:
        directory = self.layout.js_source_dir
        if not directory.is_dir():
            return []
        included: set[Path] = set()
        for pattern in self.config.library_includes:
            included.update(p for p in directory.glob(pattern) if p.is_file())
        for pattern in self.config.library_excludes:
            included.difference_update(directory.glob(pattern))
        return sorted(included)

    @staticmethod
    def output_name(source: Path) -> str:
        return f"{source.stem}.min.js"

    async def transpile(self, source: Path, code: str) -> str:
        babel = self.tools.require("babel")
        return await run_tool(
            [babel, "--filename", str(source)],
            cwd=self.layout.root,
            input_text=code,
        )

    async def compile_scripts(self) -> list[Path]:
        written: list[Path] = []
        out_dir = self.layout.js_output_dir
        for source in self.first_party_sources():
            original = source.read_text(encoding="utf-8")
            code = strip_source_map_url(original)
            if self.options.production:
                code = strip_debug(code)
            if self.options.strict_js:
                code = await self.transpile(source, code)
            minified = rjsmin.jsmin(code, keep_bang_comments=not self.options.production)

            out_dir.mkdir(parents=True, exist_ok=True)
            target = out_dir / self.output_name(source)
            if self.options.source_maps:
                map_file = target.with_name(target.name + ".map")
                relative = Path(os.path.relpath(source, out_dir)).as_posix()
                write_map(map_file, coarse_map(relative, original, target.name))
                minified = f"{minified}\n{js_map_comment(map_file.name)}\n"
            target.write_text(minified, encoding="utf-8")
            written.append(target)

        if self.options.verbosity >= 1:
            log.success("All JS files are compiled successfully")
        return written

    async def copy_libraries(self) -> list[Path]:
        sources = self.library_sources()
        if not sources:
            return []

        reserved = {self.output_name(p) for p in self.first_party_sources()}
        reserved |= {f"{name}.map" for name in reserved}
        js_dir = self.layout.js_source_dir
        out_dir = self.layout.js_output_dir

        copied: list[Path] = []
        for source in sources:
            relative = source.relative_to(js_dir)
            if len(relative.parts) == 1 and relative.name in reserved:
                raise BuildError(
                    f"Library file {relative} would overwrite a compiled script"
                )
            target = out_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copy2, source, target)
            copied.append(target)

        if self.options.verbosity >= 1:
            log.success("All JS libraries files are copied successfully")
        return copied

    async def run(self) -> ScriptBundle:
        scripts = await self.compile_scripts()
        libraries = await self.copy_libraries()
        return ScriptBundle(scripts=scripts, libraries=libraries)
