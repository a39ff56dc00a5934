"""
themekit.build - Style, script and static asset pipelines for a theme.
"""

from themekit.build.config import (
    CONFIG_FILENAME,
    DISCOVERY_ORDER,
    MERGE_ORDER,
    BuildOptions,
    ConfigError,
    Family,
    ProjectConfig,
    ProjectLayout,
    load_project_config,
)
from themekit.build.variants import VariantRegistry
from themekit.build.compilers import (
    FamilyCompiler,
    IntermediateArtifact,
    compile_variant,
    compiler_for,
)
from themekit.build.merge import VariantMerger
from themekit.build.scripts import ScriptBundle, ScriptPipeline, strip_debug
from themekit.build.orchestrator import (
    INITIAL_WATCH_SEQUENCE,
    TASK_SEQUENCES,
    TASKS,
    BuildOrchestrator,
)

__all__ = [
    # Configuration
    "CONFIG_FILENAME",
    "DISCOVERY_ORDER",
    "MERGE_ORDER",
    "BuildOptions",
    "ConfigError",
    "Family",
    "ProjectConfig",
    "ProjectLayout",
    "load_project_config",
    # Styles
    "VariantRegistry",
    "FamilyCompiler",
    "IntermediateArtifact",
    "compile_variant",
    "compiler_for",
    "VariantMerger",
    # Scripts
    "ScriptBundle",
    "ScriptPipeline",
    "strip_debug",
    # Orchestration
    "INITIAL_WATCH_SEQUENCE",
    "TASK_SEQUENCES",
    "TASKS",
    "BuildOrchestrator",
]
