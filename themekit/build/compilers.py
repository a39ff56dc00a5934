"""
Family compiler adapters.

Each adapter turns one variant's source (dev/<family>/<variant>.<ext>) into
an intermediate stylesheet under assets/styles/<family>/<variant>/. The
compilers themselves are libsass and the lessc/stylus/postcss executables.
"""

from __future__ import annotations

import asyncio
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import sass

from themekit.build.config import BuildOptions, Family, ProjectConfig, ProjectLayout
from themekit.build.sourcemaps import read_map, rebase_sources, relink, write_map
from themekit.core.utils import ToolLocator, log, run_tool


@dataclass(frozen=True)
class IntermediateArtifact:
    """Compiled CSS of one (family, variant) pair, before merging."""

    family: Family
    variant: str
    path: Path
    map_path: Optional[Path] = None


def map_path_for(css_path: Path) -> Path:
    return css_path.with_name(css_path.name + ".map")


# =============================================================================
# Vendor Prefixing
# =============================================================================


class Autoprefixer:
    """Runs postcss + autoprefixer over a compiled stylesheet in place.

    postcss is optional: without it output passes through unprefixed.
    """

    def __init__(self, tools: ToolLocator, browsers: list[str], options: BuildOptions):
        self.tools = tools
        self.browsers = browsers
        self.options = options
        self._warned = False

    async def apply(self, css_path: Path) -> bool:
        executable = self.tools.find("postcss")
        if executable is None:
            if not self._warned:
                log.warning("postcss not found, SASS output is not vendor-prefixed")
                self._warned = True
            return False

        cmd = [
            executable,
            str(css_path),
            "--use", "autoprefixer",
            "--replace",
            "--map" if self.options.source_maps else "--no-map",
        ]
        await run_tool(
            cmd,
            cwd=self.tools.project_root,
            env={"BROWSERSLIST": ", ".join(self.browsers)},
        )
        return True


# =============================================================================
# Adapters
# =============================================================================


class FamilyCompiler(ABC):
    """Compiles one family's variants into intermediate artifacts."""

    family: Family

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

    @property
    def label(self) -> str:
        return self.family.value.upper()

    async def compile(self, variant: Optional[str]) -> Optional[IntermediateArtifact]:
        """Compile `variant`, or resolve to None when there is nothing to do."""
        if not variant:
            if self.options.verbosity >= 1:
                log.error(f"{self.label} compiler - type: [{self.family.value}] | variant: [{variant}]")
            return None

        source = self.layout.family_source(self.family, variant)
        if not source.is_file():
            if self.options.verbosity >= 2:
                log.info(f"{self.label} compiler - no {source.name}, skipping [{variant}]")
            return None

        if self.options.verbosity >= 2:
            log.info(f"{self.label} compiler - variant: [{variant}]")

        target = self.layout.intermediate_path(self.family, variant)
        target.parent.mkdir(parents=True, exist_ok=True)
        await self._compile(source, target)

        source_map = map_path_for(target)
        artifact = IntermediateArtifact(
            family=self.family,
            variant=variant,
            path=target,
            map_path=source_map if self.options.source_maps and source_map.exists() else None,
        )

        if self.options.verbosity >= 2:
            log.success(f"{self.label} > [{variant}] variant compiled successfully")
        return artifact

    @abstractmethod
    async def _compile(self, source: Path, target: Path) -> None:
        """Write the compiled CSS of `source` to `target` (and its map)."""


class SassCompiler(FamilyCompiler):
    family = Family.SASS

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.autoprefixer = Autoprefixer(self.tools, self.config.autoprefix_browsers, self.options)

    async def _compile(self, source: Path, target: Path) -> None:
        css, source_map = await asyncio.to_thread(self._run_libsass, source, target)
        target.write_text(css, encoding="utf-8")
        if source_map is not None:
            map_path_for(target).write_text(source_map, encoding="utf-8")
        await self.autoprefixer.apply(target)

    def _run_libsass(self, source: Path, target: Path) -> tuple[str, Optional[str]]:
        if not self.options.source_maps:
            return sass.compile(filename=str(source), output_style="expanded"), None

        css, source_map = sass.compile(
            filename=str(source),
            output_style="expanded",
            source_map_filename=str(map_path_for(target)),
            output_filename_hint=str(target),
            source_map_contents=True,
        )
        return css, source_map


class LessCompiler(FamilyCompiler):
    family = Family.LESS

    async def _compile(self, source: Path, target: Path) -> None:
        cmd = [self.tools.require("lessc")]
        if self.options.source_maps:
            cmd += [f"--source-map={map_path_for(target)}", "--source-map-include-source"]
        if self.config.autoprefix_browsers:
            cmd.append(f"--autoprefix={';'.join(self.config.autoprefix_browsers)}")
        cmd += [str(source), str(target)]
        await run_tool(cmd, cwd=self.layout.root)


class StylusCompiler(FamilyCompiler):
    family = Family.STYLUS

    async def _compile(self, source: Path, target: Path) -> None:
        # stylus names its output after the source file; compile into a
        # private directory and move the result to the artifact name.
        cmd = [self.tools.require("stylus")]
        out_dir = target.parent / ".stylus"
        if self.options.source_maps:
            cmd.append("--sourcemap")
        cmd += ["--out", str(out_dir), str(source)]

        out_dir.mkdir(parents=True, exist_ok=True)
        try:
            await run_tool(cmd, cwd=self.layout.root)

            produced = out_dir / f"{source.stem}.css"
            shutil.move(str(produced), str(target))
            produced_map = map_path_for(produced)
            source_map = read_map(produced_map)
            if source_map is not None:
                write_map(produced_map, rebase_sources(source_map, out_dir, target.parent))
                relink(target, produced_map, map_path_for(target))
        finally:
            if out_dir.exists():
                shutil.rmtree(out_dir)


COMPILERS: dict[Family, type[FamilyCompiler]] = {
    Family.SASS: SassCompiler,
    Family.LESS: LessCompiler,
    Family.STYLUS: StylusCompiler,
}


def compiler_for(
    family: Family,
    options: BuildOptions,
    layout: ProjectLayout,
    config: ProjectConfig,
    tools: Optional[ToolLocator] = None,
) -> FamilyCompiler:
    return COMPILERS[family](options, layout, config, tools)


async def compile_variant(
    family: Union[Family, str, None],
    variant: Optional[str],
    options: BuildOptions,
    layout: ProjectLayout,
    config: ProjectConfig,
    tools: Optional[ToolLocator] = None,
) -> Optional[IntermediateArtifact]:
    """Compile one (family, variant) pair; bad identifiers are a logged no-op."""
    parsed = Family.parse(family)
    if parsed is None or not variant:
        if options.verbosity >= 1:
            log.error(f"Styles compiler - type: [{family}] | variant: [{variant}]")
        return None
    return await compiler_for(parsed, options, layout, config, tools).compile(variant)
