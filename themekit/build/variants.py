"""
Variant discovery.

A variant is a named stylesheet defined in one or more preprocessor
families (dev/sass/default.scss, dev/less/default.less, ...).
"""

from __future__ import annotations

from typing import Iterable, Union

from themekit.build.config import BuildOptions, Family, ProjectLayout
from themekit.core.utils import log


def variant_name(filename: str) -> str:
    """Variant name of a source file: everything before the first dot."""
    return filename.split(".", 1)[0]


class VariantRegistry:
    """Per-run mapping of family -> ordered variant names.

    Each family is scanned at most once; later calls return the cached
    result even if the directory changed in the meantime.
    """

    def __init__(self, layout: ProjectLayout, options: BuildOptions):
        self.layout = layout
        self.options = options
        self._variants: dict[Family, tuple[str, ...]] = {}

    def __contains__(self, family: Family) -> bool:
        return family in self._variants

    def discover(self, family: Union[Family, str, None]) -> tuple[str, ...]:
        """Return the variants defined for `family`, scanning on first use."""
        parsed = Family.parse(family)
        if parsed is None:
            if self.options.verbosity >= 1:
                log.error(f"Schema [{family}] is not supported")
            return ()

        if parsed not in self._variants:
            self._variants[parsed] = self._scan(parsed)
            if self.options.verbosity >= 2:
                names = ", ".join(self._variants[parsed]) or "none"
                log.info(f"{parsed.value.upper()} variants: {names}")
        return self._variants[parsed]

    def discover_all(self, families: Iterable[Family]) -> dict[Family, tuple[str, ...]]:
        return {family: self.discover(family) for family in families}

    def variants(self) -> list[str]:
        """All discovered variant names, in first-seen order."""
        seen: list[str] = []
        for names in self._variants.values():
            for name in names:
                if name not in seen:
                    seen.append(name)
        return seen

    def _scan(self, family: Family) -> tuple[str, ...]:
        directory = self.layout.family_dir(family)
        if not directory.is_dir():
            return ()

        names: list[str] = []
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            if not entry.is_file():
                continue
            name = variant_name(entry.name)
            if not name:
                continue
            # SASS partials are only ever imported
            if family is Family.SASS and name.startswith("_"):
                continue
            if name not in names:
                names.append(name)
        return tuple(names)
