"""
Build orchestrator for themekit.

Tasks are fixed, ordered sequences of named stages. Each stage awaits the
one before it; the first failure aborts the rest of the sequence and leaves
earlier output in place.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

from themekit.build import phases
from themekit.build.compilers import compiler_for
from themekit.build.config import BuildOptions, ProjectConfig, ProjectLayout
from themekit.build.merge import VariantMerger
from themekit.build.scripts import ScriptPipeline
from themekit.build.variants import VariantRegistry
from themekit.core.timing import StageTimer, format_duration
from themekit.core.utils import ToolLocator, log


# =============================================================================
# Task Sequences
# =============================================================================

TASK_SEQUENCES: dict[str, tuple[str, ...]] = {
    "build": ("clean_all", "images", "fonts", "styles", "javascript", "javascript_libraries"),
    "clean": ("clean_all",),
    "assets": ("images", "fonts"),
    "styles": ("clean_styles", "styles"),
    "js": ("clean_javascript", "javascript", "javascript_libraries"),
}

# Run once when watch mode starts, before any change is handled
INITIAL_WATCH_SEQUENCE: tuple[str, ...] = (
    "clean_all", "fonts", "images", "styles", "javascript", "javascript_libraries",
)

TASKS: tuple[str, ...] = ("watch",) + tuple(TASK_SEQUENCES)

Stage = Callable[[], Awaitable[Any]]


class BuildOrchestrator:
    """Runs task sequences against one theme."""

    def __init__(
        self,
        options: BuildOptions,
        layout: ProjectLayout,
        config: Optional[ProjectConfig] = None,
        tools: Optional[ToolLocator] = None,
    ):
        self.options = options
        self.layout = layout
        self.config = config or ProjectConfig()
        self.tools = tools or ToolLocator(layout.root)

        self.registry = VariantRegistry(layout, options)
        self.merger = VariantMerger(options, layout)
        self.scripts = ScriptPipeline(options, layout, self.config, self.tools)
        self.last_timer = StageTimer()

        self.stages: dict[str, Stage] = {
            "clean_all": self.clean_all,
            "clean_styles": self.clean_styles,
            "clean_javascript": self.clean_javascript,
            "fonts": self.fonts,
            "images": self.images,
            "styles": self.styles,
            "javascript": self.javascript,
            "javascript_libraries": self.javascript_libraries,
        }

    @property
    def timings(self) -> dict[str, float]:
        """Stage durations of the most recently finished sequence."""
        return self.last_timer.as_dict()

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def clean_all(self) -> list[Path]:
        return await phases.clean_all(self.options, self.layout)

    async def clean_styles(self) -> list[Path]:
        return await phases.clean_styles(self.options, self.layout)

    async def clean_javascript(self) -> list[Path]:
        return await phases.clean_javascript(self.options, self.layout)

    async def fonts(self) -> list[Path]:
        return await phases.copy_fonts(self.options, self.layout)

    async def images(self) -> list[Path]:
        return await phases.copy_images(self.options, self.layout)

    async def styles(self) -> list[Path]:
        """Compile every (family, variant) pair, then merge each variant."""
        families = self.config.families
        registry = self.registry  # run_sequence may swap it while this stage awaits
        registry.discover_all(families)

        for family in families:
            compiler = compiler_for(family, self.options, self.layout, self.config, self.tools)
            for variant in registry.discover(family):
                await compiler.compile(variant)

        written = await self.merger.merge_all(registry.variants())
        if self.options.verbosity >= 1:
            log.success("All variants are concatenated successfully")

        await phases.clean_scratch(self.options, self.layout)

        if self.options.verbosity >= 1:
            log.success(f"All CSS files are created successfully ({len(written)} stylesheets)")
        return written

    async def javascript(self) -> list[Path]:
        return await self.scripts.compile_scripts()

    async def javascript_libraries(self) -> list[Path]:
        return await self.scripts.copy_libraries()

    # -------------------------------------------------------------------------
    # Sequencing
    # -------------------------------------------------------------------------

    async def run_sequence(self, sequence: Sequence[str]) -> StageTimer:
        """Await each stage of `sequence` in order and return its timings.

        Variant discovery starts fresh for every sequence. Sequences running
        concurrently in watch mode each get their own timer.
        """
        unknown = [name for name in sequence if name not in self.stages]
        if unknown:
            raise ValueError(f"Unknown stage(s): {', '.join(unknown)}")

        self.registry = VariantRegistry(self.layout, self.options)
        timer = StageTimer()
        try:
            for name in sequence:
                if self.options.verbosity >= 2:
                    log.dim(f"-> {name}")
                with timer.stage(name):
                    await self.stages[name]()
        finally:
            self.last_timer = timer
        return timer

    async def run_task(self, task: str) -> None:
        """Run one of TASK_SEQUENCES by name."""
        if task not in TASK_SEQUENCES:
            raise ValueError(
                f"Unknown task: {task}. Known tasks: {', '.join(sorted(TASK_SEQUENCES))}"
            )

        log.header(f"themekit {task}")
        start = time.monotonic()
        timer = await self.run_sequence(TASK_SEQUENCES[task])

        log.success(f"Finished - {task} in {format_duration(time.monotonic() - start)}")
        if self.options.verbosity >= 1:
            log.dim(timer.summary())
