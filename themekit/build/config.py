"""
Build configuration for themekit.

Families, build options resolved from the command line, the fixed project
layout and the optional themekit.yaml project file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from themekit.core.utils import BuildError, log

__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_PORT",
    "DEFAULT_PROXY",
    "DISCOVERY_ORDER",
    "MERGE_ORDER",
    "BuildOptions",
    "ConfigError",
    "Family",
    "ProjectConfig",
    "ProjectLayout",
    "load_project_config",
]


CONFIG_FILENAME = "themekit.yaml"
DEFAULT_PORT = 3000
DEFAULT_PROXY = "http://localhost/"


class ConfigError(BuildError):
    """themekit.yaml could not be read."""


# =============================================================================
# Families
# =============================================================================


class Family(Enum):
    """Supported CSS preprocessor families."""

    SASS = "sass"
    LESS = "less"
    STYLUS = "stylus"

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]

    @classmethod
    def parse(cls, value: Union["Family", str, None]) -> Optional["Family"]:
        """Return the Family for `value`, or None if it is not supported."""
        if isinstance(value, Family):
            return value
        if not value:
            return None
        try:
            return cls(str(value).lower())
        except ValueError:
            return None


_EXTENSIONS = {
    Family.SASS: ".scss",
    Family.LESS: ".less",
    Family.STYLUS: ".styl",
}

# Families are discovered and compiled in this order
DISCOVERY_ORDER: tuple[Family, ...] = (Family.SASS, Family.LESS, Family.STYLUS)

# Later families override earlier ones in the merged stylesheet
MERGE_ORDER: tuple[Family, ...] = (Family.STYLUS, Family.LESS, Family.SASS)


# =============================================================================
# Build Options
# =============================================================================


@dataclass(frozen=True)
class BuildOptions:
    """Options for a build run, resolved once from the command line."""

    production: bool = False
    retain_intermediate: bool = False  # --save
    strict_js: bool = True  # False with --nostrict
    sync: Optional[str] = None  # proxy target when live reload is on
    port: int = DEFAULT_PORT
    verbosity: int = 0

    @property
    def clean_old_files(self) -> bool:
        return not self.retain_intermediate

    @property
    def live_reload(self) -> bool:
        return self.sync is not None

    @property
    def source_maps(self) -> bool:
        return not self.production

    @property
    def ws_port(self) -> int:
        return self.port + 1


# =============================================================================
# Project Layout
# =============================================================================


@dataclass(frozen=True)
class ProjectLayout:
    """Fixed source and output locations relative to the theme root."""

    root: Path

    @property
    def dev_dir(self) -> Path:
        return self.root / "dev"

    @property
    def assets_dir(self) -> Path:
        return self.root / "assets"

    # --- sources ---

    def family_dir(self, family: Family) -> Path:
        return self.dev_dir / family.value

    def family_source(self, family: Family, variant: str) -> Path:
        return self.family_dir(family) / f"{variant}{family.extension}"

    @property
    def css_source_dir(self) -> Path:
        return self.dev_dir / "css"

    @property
    def js_source_dir(self) -> Path:
        return self.dev_dir / "js"

    @property
    def fonts_source_dir(self) -> Path:
        return self.dev_dir / "fonts"

    @property
    def images_source_dir(self) -> Path:
        return self.dev_dir / "images"

    # --- outputs ---

    @property
    def scratch_dir(self) -> Path:
        return self.assets_dir / "styles"

    def intermediate_path(self, family: Family, variant: str) -> Path:
        return self.scratch_dir / family.value / variant / f"{variant}-{family.value}.css"

    @property
    def css_output_dir(self) -> Path:
        return self.assets_dir / "css"

    def stylesheet_path(self, variant: str) -> Path:
        return self.css_output_dir / f"{variant}.css"

    @property
    def js_output_dir(self) -> Path:
        return self.assets_dir / "js"

    @property
    def fonts_output_dir(self) -> Path:
        return self.assets_dir / "fonts"

    @property
    def images_output_dir(self) -> Path:
        return self.assets_dir / "images"


# =============================================================================
# Project File
# =============================================================================


@dataclass
class ProjectConfig:
    """Settings read from themekit.yaml (all optional)."""

    families: list[Family] = field(default_factory=lambda: list(DISCOVERY_ORDER))
    js_libraries: list[str] = field(default_factory=lambda: ["**/*", "!*.js"])
    autoprefix_browsers: list[str] = field(default_factory=lambda: ["last 5 versions"])
    sync_files: list[str] = field(default_factory=lambda: ["**/*.php", "**/*.html"])

    @property
    def library_includes(self) -> list[str]:
        return [p for p in self.js_libraries if not p.startswith("!")]

    @property
    def library_excludes(self) -> list[str]:
        return [p[1:] for p in self.js_libraries if p.startswith("!")]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectConfig":
        """Build a config from parsed YAML, reporting unknown keys and families."""
        config = cls()
        known = {"families", "js_libraries", "autoprefix_browsers", "sync_files"}
        for key in sorted(set(data) - known):
            log.error(f"Unknown key in {CONFIG_FILENAME}: '{key}' (ignored)")

        if "families" in data:
            families: list[Family] = []
            for value in _as_list(data["families"]):
                family = Family.parse(value)
                if family is None:
                    log.error(f"Family [{value}] is not supported (ignored)")
                elif family not in families:
                    families.append(family)
            # Keep discovery order regardless of how the file lists them
            config.families = [f for f in DISCOVERY_ORDER if f in families]

        for key in ("js_libraries", "autoprefix_browsers", "sync_files"):
            if key in data:
                setattr(config, key, [str(v) for v in _as_list(data[key])])

        return config


def _as_list(value: Any) -> list[Any]:
    """A YAML scalar stands for a one-item list."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def load_project_config(root: Path) -> ProjectConfig:
    """Load themekit.yaml from `root`, or return defaults if absent."""
    path = root / CONFIG_FILENAME
    if not path.exists():
        return ProjectConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"{path} is not valid YAML: {e}") from e

    if data is None:
        return ProjectConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    return ProjectConfig.from_dict(data)
