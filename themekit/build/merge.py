"""
Variant merger.

Concatenates the plain CSS sources and each family's intermediate artifact
for a variant into assets/css/<variant>.css. Families are appended in
MERGE_ORDER so later families win under the normal cascade; a family that
produced nothing for the variant is simply left out.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Iterable, Optional

import rcssmin

from themekit.build.config import MERGE_ORDER, BuildOptions, ProjectLayout
from themekit.build.sourcemaps import (
    css_map_comment,
    identity_map,
    index_map,
    line_count,
    read_map,
    rebase_sources,
    select_lines,
    strip_source_map_url,
    write_map,
)
from themekit.core.utils import log


def minify_css(text: str, production: bool) -> str:
    """Minify merged CSS.

    Production strips every comment and collapses whitespace. Otherwise
    the line-preserving pass of light_minify() is used.
    """
    if production:
        return rcssmin.cssmin(text, keep_bang_comments=False)
    return light_minify(text)[0]


def _blank_comments(text: str) -> str:
    # Overwrite /* ... */ with spaces, keeping newlines and /*! ... */ notices.
    chars = list(text)
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch in "'\"":
            i += 1
            while i < n and text[i] != ch and text[i] != "\n":
                i += 2 if text[i] == "\\" else 1
            i += 1
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            if not text.startswith("/*!", i):
                for j in range(i, end):
                    if chars[j] != "\n":
                        chars[j] = " "
            i = end
            continue
        i += 1
    return "".join(chars)


def light_minify(text: str) -> tuple[str, list[int]]:
    """Drop plain comments, trailing whitespace and blank lines.

    Columns of the surviving lines are unchanged. Returns the minified text
    (no trailing newline) and, for each of its lines, the input line it
    came from, so a source map only needs its lines renumbered.
    """
    kept: list[int] = []
    out: list[str] = []
    for index, line in enumerate(_blank_comments(text).split("\n")):
        line = line.rstrip()
        if line:
            kept.append(index)
            out.append(line)
    return "\n".join(out), kept


class VariantMerger:
    """Produces the final stylesheet of each variant."""

    def __init__(self, options: BuildOptions, layout: ProjectLayout):
        self.options = options
        self.layout = layout

    def base_sources(self) -> list[Path]:
        directory = self.layout.css_source_dir
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.rglob("*.css") if p.is_file())

    def collect_sources(self, variant: str) -> list[Path]:
        """Base CSS followed by the intermediates that exist right now."""
        sources = self.base_sources()
        for family in MERGE_ORDER:
            artifact = self.layout.intermediate_path(family, variant)
            if artifact.exists():
                sources.append(artifact)
        return sources

    async def merge(self, variant: str) -> Optional[Path]:
        """Write assets/css/<variant>.css; None when there is nothing to merge."""
        sources = self.collect_sources(variant)
        if not sources:
            if self.options.verbosity >= 2:
                log.info(f"No CSS sources for [{variant}], nothing to merge")
            return None

        output = await asyncio.to_thread(self._write, variant, sources)
        if self.options.verbosity >= 2:
            log.success(f"All CSS for {variant} are concatenated")
        return output

    async def merge_all(self, variants: Iterable[str]) -> list[Path]:
        written: list[Path] = []
        for variant in variants:
            output = await self.merge(variant)
            if output is not None:
                written.append(output)
        return written

    def _write(self, variant: str, sources: list[Path]) -> Path:
        output = self.layout.stylesheet_path(variant)
        output.parent.mkdir(parents=True, exist_ok=True)

        texts = [strip_source_map_url(p.read_text(encoding="utf-8")) for p in sources]

        if self.options.production:
            merged = "\n".join(text.rstrip("\n") for text in texts)
            output.write_text(minify_css(merged, production=True), encoding="utf-8")
            return output

        parts = []
        for source, text in zip(sources, texts):
            minified, kept = light_minify(text)
            if minified:
                parts.append((source, text, minified, kept))

        map_file = output.with_name(output.name + ".map")
        write_map(map_file, self._build_map(output, parts))

        body = "\n".join(minified for _, _, minified, _ in parts)
        if body:
            body += "\n"
        output.write_text(f"{body}{css_map_comment(map_file.name)}\n", encoding="utf-8")
        return output

    def _build_map(self, output: Path, parts: list[tuple[Path, str, str, list[int]]]) -> dict[str, Any]:
        out_dir = output.parent
        sections: list[tuple[int, dict[str, Any]]] = []
        offset = 0
        for source, text, minified, kept in parts:
            source_map = read_map(source.with_name(source.name + ".map"))
            if source_map is not None:
                section = rebase_sources(select_lines(source_map, kept), source.parent, out_dir)
            else:
                relative = rebase_sources({"sources": [source.name]}, source.parent, out_dir)
                section = identity_map(text, relative["sources"][0], lines=kept)
            sections.append((offset, section))
            offset += line_count(minified)
        return index_map(output.name, sections)
