"""
Watch mode for themekit.

Runs the initial build, then monitors dev/ (and the theme templates when
live reload is on) and re-runs only the stages a change class needs.
"""

from __future__ import annotations

import asyncio
import fnmatch
import time
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Optional, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from themekit.build.config import ProjectConfig, ProjectLayout
from themekit.build.orchestrator import INITIAL_WATCH_SEQUENCE, BuildOrchestrator
from themekit.commands.reload import ReloadServer
from themekit.core.timing import format_duration
from themekit.core.utils import log


# =============================================================================
# Constants
# =============================================================================

DEBOUNCE_SECONDS = 0.2

# Never treated as template sources
IGNORED_DIRS = {"node_modules", "vendor", "__pycache__"}


class WatchState(Enum):
    IDLE = auto()
    INITIAL_BUILD = auto()
    WATCHING = auto()


class ChangeCategory(Enum):
    """Which part of the build a changed file belongs to."""
    STYLES = auto()     # dev/<family>/**, dev/css/**/*.css
    SCRIPTS = auto()    # dev/js/**/*.js
    ASSETS = auto()     # dev/fonts/**, dev/images/**
    TEMPLATES = auto()  # theme PHP/HTML, only with live reload


WATCH_SEQUENCES: dict[ChangeCategory, tuple[str, ...]] = {
    ChangeCategory.STYLES: ("clean_styles", "styles"),
    ChangeCategory.SCRIPTS: ("clean_javascript", "javascript", "javascript_libraries"),
    ChangeCategory.ASSETS: ("fonts", "images"),
    ChangeCategory.TEMPLATES: (),
}

RELOAD_TYPES: dict[ChangeCategory, str] = {
    ChangeCategory.STYLES: "css-reload",
    ChangeCategory.SCRIPTS: "reload",
    ChangeCategory.ASSETS: "reload",
    ChangeCategory.TEMPLATES: "reload",
}


class Reloader(Protocol):
    async def reload(self, reload_type: str = "reload") -> int: ...


# =============================================================================
# Change Classification
# =============================================================================


def _within(path: Path, directory: Path) -> bool:
    try:
        path.relative_to(directory)
        return True
    except ValueError:
        return False


def matches_any(relative: str, patterns: list[str]) -> bool:
    """fnmatch `relative` (posix) against glob patterns; '**/' also matches the root."""
    for pattern in patterns:
        if fnmatch.fnmatch(relative, pattern):
            return True
        if pattern.startswith("**/") and fnmatch.fnmatch(relative, pattern[3:]):
            return True
    return False


class ChangeClassifier:
    """Classifies file change events into change categories."""

    def __init__(self, layout: ProjectLayout, config: ProjectConfig, live_reload: bool = False):
        self.layout = layout
        self.config = config
        self.live_reload = live_reload

    def classify(self, path: Path) -> Optional[ChangeCategory]:
        """Return the category for a changed file, or None to ignore it."""
        layout = self.layout
        if not _within(path, layout.root):
            return None
        relative = path.relative_to(layout.root)

        # Ignore hidden files and editor droppings
        if any(part.startswith(".") for part in relative.parts):
            return None
        if path.name.endswith("~"):
            return None

        if _within(path, layout.dev_dir):
            return self._classify_source(path)

        if not self.live_reload:
            return None
        if _within(path, layout.assets_dir):
            return None
        if any(part in IGNORED_DIRS for part in relative.parts):
            return None
        if matches_any(relative.as_posix(), self.config.sync_files):
            return ChangeCategory.TEMPLATES
        return None

    def _classify_source(self, path: Path) -> Optional[ChangeCategory]:
        layout = self.layout
        for family in self.config.families:
            if _within(path, layout.family_dir(family)):
                return ChangeCategory.STYLES if path.suffix == family.extension else None
        if _within(path, layout.css_source_dir):
            return ChangeCategory.STYLES if path.suffix == ".css" else None
        if _within(path, layout.js_source_dir):
            return ChangeCategory.SCRIPTS if path.suffix == ".js" else None
        if _within(path, layout.fonts_source_dir) or _within(path, layout.images_source_dir):
            return ChangeCategory.ASSETS
        return None


# =============================================================================
# Watch Session
# =============================================================================


class WatchSession:
    """State machine driving rebuilds: IDLE -> INITIAL_BUILD -> WATCHING.

    Change notifications are debounced per category. A category never runs
    twice at once; changes that arrive while it runs collapse into a single
    follow-up run. Changes seen before WATCHING are held until the initial
    build is done. Different categories run independently.
    """

    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        reloader: Optional[Reloader] = None,
        debounce: float = DEBOUNCE_SECONDS,
    ):
        self.orchestrator = orchestrator
        self.reloader = reloader
        self.debounce = debounce
        self.state = WatchState.IDLE

        self._timers: dict[ChangeCategory, asyncio.TimerHandle] = {}
        self._running: set[ChangeCategory] = set()
        self._pending: set[ChangeCategory] = set()
        self._queued: list[ChangeCategory] = []
        self._tasks: set[asyncio.Task] = set()
        self._run_count = 0
        self._failures = 0

    @property
    def run_count(self) -> int:
        return self._run_count

    @property
    def failures(self) -> int:
        return self._failures

    async def start(self) -> bool:
        """Run the initial build and switch to WATCHING. Returns False if it failed."""
        self.state = WatchState.INITIAL_BUILD
        ok = await self._execute("initial build", INITIAL_WATCH_SEQUENCE, "reload")
        self.state = WatchState.WATCHING

        queued, self._queued = self._queued, []
        for category in queued:
            self._fire(category)
        return ok

    def notify(self, category: ChangeCategory) -> None:
        """Register a change. Must be called on the event loop thread."""
        handle = self._timers.pop(category, None)
        if handle is not None:
            handle.cancel()
        loop = asyncio.get_running_loop()
        self._timers[category] = loop.call_later(self.debounce, self._fire, category)

    def _fire(self, category: ChangeCategory) -> None:
        self._timers.pop(category, None)
        if self.state is not WatchState.WATCHING:
            if category not in self._queued:
                self._queued.append(category)
            return
        if category in self._running:
            self._pending.add(category)
            return

        self._running.add(category)
        task = asyncio.get_running_loop().create_task(self._run_category(category))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_category(self, category: ChangeCategory) -> None:
        try:
            while True:
                self._pending.discard(category)
                await self._execute(
                    category.name.lower(),
                    WATCH_SEQUENCES[category],
                    RELOAD_TYPES[category],
                )
                if category not in self._pending:
                    break
        finally:
            self._running.discard(category)

    async def _execute(self, label: str, sequence: tuple[str, ...], reload_type: str) -> bool:
        self._run_count += 1
        number = self._run_count
        start = time.monotonic()

        try:
            await self.orchestrator.run_sequence(sequence)
        except Exception as e:
            self._failures += 1
            elapsed = format_duration(time.monotonic() - start)
            log.error(f"[{number}] {label} failed after {elapsed}: {e}")
            return False

        if sequence:
            elapsed = format_duration(time.monotonic() - start)
            log.success(f"[{number}] {label} completed in {elapsed}")
        if self.reloader is not None:
            try:
                await self.reloader.reload(reload_type)
            except Exception as e:
                log.warning(f"[{number}] Browser reload failed: {e}")
        return True

    async def drain(self) -> None:
        """Wait until no debounce timer is armed and no run is in flight."""
        while self._timers or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self.debounce / 2 or 0.01)

    async def stop(self) -> None:
        """Drop pending notifications and let in-flight runs finish."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._queued.clear()
        self._pending.clear()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.state = WatchState.IDLE


# =============================================================================
# File System Event Handler
# =============================================================================


class ThemeEventHandler(FileSystemEventHandler):
    """Classifies watchdog events and hands them to the event loop."""

    def __init__(
        self,
        classifier: ChangeClassifier,
        loop: asyncio.AbstractEventLoop,
        notify: Callable[[ChangeCategory], None],
        verbose: bool = False,
    ):
        super().__init__()
        self.classifier = classifier
        self.loop = loop
        self.notify = notify
        self.verbose = verbose

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event.src_path)
        self._handle(event.dest_path)

    def _handle(self, src_path) -> None:
        path = Path(src_path if isinstance(src_path, str) else src_path.decode())
        category = self.classifier.classify(path)
        if category is None:
            return
        if self.verbose:
            log.info(f"  Change detected: {path.name} -> {category.name}")
        self.loop.call_soon_threadsafe(self.notify, category)


# =============================================================================
# Watch Command
# =============================================================================


def watch_targets(layout: ProjectLayout, live_reload: bool) -> list[tuple[str, Path, bool]]:
    """(label, path, recursive) entries for the observer."""
    targets: list[tuple[str, Path, bool]] = []
    if layout.dev_dir.is_dir():
        targets.append(("Sources", layout.dev_dir, True))
    else:
        log.warning(f"Source directory not found: {layout.dev_dir}")

    if live_reload:
        targets.append(("Templates", layout.root, False))
        skip = {layout.dev_dir.name, layout.assets_dir.name} | IGNORED_DIRS
        for child in sorted(layout.root.iterdir()):
            if child.is_dir() and child.name not in skip and not child.name.startswith("."):
                targets.append(("Templates", child, True))
    return targets


async def run_watch(orchestrator: BuildOrchestrator, debounce: float = DEBOUNCE_SECONDS) -> None:
    """Run watch mode until cancelled (Ctrl+C)."""
    options = orchestrator.options
    layout = orchestrator.layout

    log.header(f"themekit watch: {layout.root}")

    reloader: Optional[ReloadServer] = None
    if options.live_reload:
        reloader = ReloadServer(options)
        await reloader.start()

    session = WatchSession(orchestrator, reloader, debounce)
    classifier = ChangeClassifier(layout, orchestrator.config, options.live_reload)
    handler = ThemeEventHandler(
        classifier,
        asyncio.get_running_loop(),
        session.notify,
        verbose=options.verbosity >= 1,
    )

    observer = Observer()
    for label, path, recursive in watch_targets(layout, options.live_reload):
        try:
            observer.schedule(handler, str(path), recursive=recursive)
            if options.verbosity >= 2:
                log.info(f"  Watching: {label} ({path})")
        except OSError as e:
            log.warning(f"  Could not watch {label}: {e}")

    observer.start()
    try:
        await session.start()
        log.info("")
        log.info("Watching for changes... (Ctrl+C to stop)")
        if reloader is not None:
            log.info(f"Browse: http://localhost:{options.port}")
        log.info("")
        await asyncio.Event().wait()
    finally:
        observer.stop()
        await asyncio.to_thread(observer.join, 5)
        await session.stop()
        if reloader is not None:
            await reloader.stop()

        log.info(f"Rebuilds performed: {session.run_count}")
        log.success("Watch mode stopped")
