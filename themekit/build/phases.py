"""
Build phases for themekit.

Static asset copies and the clean policy: every clean is a recursive delete
of its output subtree, skipped entirely when --save asks to keep files.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from themekit.build.config import BuildOptions, ProjectLayout
from themekit.core.utils import log


# =============================================================================
# Primitives
# =============================================================================


def remove_tree(path: Path) -> bool:
    """Delete a file or directory tree. Returns True if something was removed."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    if path.exists() or path.is_symlink():
        path.unlink()
        return True
    return False


def copy_tree(source: Path, target: Path) -> list[Path]:
    """Copy every file under `source` to the same relative path under `target`."""
    copied: list[Path] = []
    if not source.is_dir():
        return copied
    for item in sorted(source.rglob("*")):
        if not item.is_file():
            continue
        dest = target / item.relative_to(source)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(item, dest)
        copied.append(dest)
    return copied


# =============================================================================
# Static Assets
# =============================================================================


async def copy_fonts(options: BuildOptions, layout: ProjectLayout) -> list[Path]:
    copied = await asyncio.to_thread(copy_tree, layout.fonts_source_dir, layout.fonts_output_dir)
    if options.verbosity >= 1:
        log.success(f"All FONTS are copied successfully ({len(copied)} files)")
    return copied


async def copy_images(options: BuildOptions, layout: ProjectLayout) -> list[Path]:
    copied = await asyncio.to_thread(copy_tree, layout.images_source_dir, layout.images_output_dir)
    if options.verbosity >= 1:
        log.success(f"All IMAGES are copied successfully ({len(copied)} files)")
    return copied


# =============================================================================
# Clean Policy
# =============================================================================


async def _clean(options: BuildOptions, targets: list[Path], label: str) -> list[Path]:
    if not options.clean_old_files:
        if options.verbosity >= 2:
            log.info(f"Keeping {label} (--save)")
        return []

    removed: list[Path] = []
    for target in targets:
        if await asyncio.to_thread(remove_tree, target):
            removed.append(target)
    if removed and options.verbosity >= 2:
        log.info(f"Removed {', '.join(str(p) for p in removed)}")
    return removed


async def clean_all(options: BuildOptions, layout: ProjectLayout) -> list[Path]:
    return await _clean(options, [layout.assets_dir], "all output")


async def clean_styles(options: BuildOptions, layout: ProjectLayout) -> list[Path]:
    return await _clean(options, [layout.scratch_dir, layout.css_output_dir], "styles")


async def clean_javascript(options: BuildOptions, layout: ProjectLayout) -> list[Path]:
    return await _clean(options, [layout.js_output_dir], "JavaScript")


async def clean_scratch(options: BuildOptions, layout: ProjectLayout) -> list[Path]:
    """Drop intermediate artifacts once they are merged."""
    removed = await _clean(options, [layout.scratch_dir], "intermediate styles")
    if removed and options.verbosity >= 2:
        log.success("All temporary files are deleted successfully")
    return removed
