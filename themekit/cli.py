"""
Main CLI for themekit.

    themekit [task] [--prod] [--save] [--nostrict] [--sync[=URL]] [--port=N]
             [--log1 | --log2] [--root DIR]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import traceback
from pathlib import Path

from themekit import __version__
from themekit.build.config import DEFAULT_PORT, DEFAULT_PROXY, BuildOptions, ProjectLayout, load_project_config
from themekit.build.orchestrator import TASKS, BuildOrchestrator
from themekit.core.utils import log


# =============================================================================
# Argument Parsing
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="themekit",
        description="Build pipeline for WordPress theme assets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Tasks:
  build     Clean, then build fonts, images, styles and scripts (default)
  watch     Build once, then rebuild on change
  clean     Remove assets/
  assets    Copy fonts and images
  styles    Rebuild assets/css
  js        Rebuild assets/js

Examples:
  themekit                         # Development build with source maps
  themekit build --prod            # Minified build, no source maps
  themekit watch --sync            # Watch, proxying http://localhost/
  themekit watch --sync=http://mysite.test/ --port=8080
        """,
    )

    parser.add_argument(
        "task",
        nargs="?",
        default="build",
        choices=TASKS,
        help="Task to run (default: build)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--prod",
        action="store_true",
        help="Production build: minify, strip comments and debug calls, no source maps",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Keep existing output and intermediate files",
    )
    parser.add_argument(
        "--nostrict",
        action="store_true",
        help="Skip the babel transform for first-party scripts",
    )
    parser.add_argument(
        "--sync",
        nargs="?",
        const=DEFAULT_PROXY,
        default=None,
        metavar="URL",
        help=f"Enable live reload, proxying URL (default: {DEFAULT_PROXY})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Live reload proxy port; WebSocket uses port + 1 (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--log1",
        action="store_true",
        help="Report each completed stage",
    )
    parser.add_argument(
        "--log2",
        action="store_true",
        help="Report per-variant detail",
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=Path.cwd(),
        help="Theme root directory (default: current directory)",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = create_parser()
    args = parser.parse_args(argv)
    if args.sync in TASKS:
        # "--sync watch": the optional URL took the task name
        if args.task != "build":
            parser.error(f"--sync got task name '{args.sync}', use --sync=URL")
        args.task, args.sync = args.sync, DEFAULT_PROXY
    return args


def options_from_args(args: argparse.Namespace) -> BuildOptions:
    """Resolve BuildOptions once from parsed arguments."""
    verbosity = 2 if args.log2 else 1 if args.log1 else 0
    return BuildOptions(
        production=args.prod,
        retain_intermediate=args.save,
        strict_js=not args.nostrict,
        sync=args.sync,
        port=args.port,
        verbosity=verbosity,
    )


# =============================================================================
# Entry Point
# =============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.no_color:
        log.set_color(False)

    options = options_from_args(args)

    try:
        root = args.root.resolve()
        if not root.is_dir():
            log.error(f"Theme root not found: {root}")
            return 1

        layout = ProjectLayout(root)
        config = load_project_config(root)
        orchestrator = BuildOrchestrator(options, layout, config)

        if args.task == "watch":
            from themekit.commands.watch import run_watch
            asyncio.run(run_watch(orchestrator))
        else:
            asyncio.run(orchestrator.run_task(args.task))
        return 0

    except KeyboardInterrupt:
        log.warning("Interrupted")
        return 130
    except Exception as e:
        log.error(str(e))
        if options.verbosity >= 2:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
