"""
Tests for the themekit command line.
"""

from __future__ import annotations

import io
from contextlib import redirect_stdout
from pathlib import Path

import pytest

from themekit.build.config import DEFAULT_PROXY
from themekit.cli import create_parser, main, options_from_args, parse_args


class CLIResult:
    """Result of running a CLI command."""

    def __init__(self, returncode: int, stdout: str):
        self.returncode = returncode
        self.stdout = stdout

    def __repr__(self) -> str:
        return f"CLIResult(returncode={self.returncode}, stdout={self.stdout[:100]!r}...)"


def run_cli(args: list[str]) -> CLIResult:
    """Run main() in-process with captured output."""
    stdout_capture = io.StringIO()
    with redirect_stdout(stdout_capture):
        try:
            returncode = main(args)
        except SystemExit as e:
            returncode = e.code if isinstance(e.code, int) else 1
    return CLIResult(returncode=returncode or 0, stdout=stdout_capture.getvalue())


# =============================================================================
# Argument Parsing
# =============================================================================


@pytest.mark.evergreen
class TestOptions:

    def parse(self, argv: list[str]):
        return options_from_args(create_parser().parse_args(argv))

    def test_defaults(self) -> None:
        args = create_parser().parse_args([])
        assert args.task == "build"
        options = options_from_args(args)
        assert options.production is False
        assert options.retain_intermediate is False
        assert options.strict_js is True
        assert options.sync is None
        assert options.port == 3000
        assert options.verbosity == 0

    def test_flags(self) -> None:
        options = self.parse(["styles", "--prod", "--save", "--nostrict", "--log1"])
        assert options.production is True
        assert options.retain_intermediate is True
        assert options.strict_js is False
        assert options.verbosity == 1

    def test_log2_wins(self) -> None:
        assert self.parse(["--log1", "--log2"]).verbosity == 2

    def test_sync_without_value_uses_default_proxy(self) -> None:
        assert self.parse(["watch", "--sync"]).sync == DEFAULT_PROXY

    def test_sync_with_value(self) -> None:
        options = self.parse(["watch", "--sync=http://mysite.test/", "--port=8080"])
        assert options.sync == "http://mysite.test/"
        assert options.port == 8080
        assert options.ws_port == 8081

    def test_task_after_bare_sync(self) -> None:
        args = parse_args(["--sync", "watch"])
        assert args.task == "watch"
        assert args.sync == DEFAULT_PROXY

    def test_sync_task_name_with_explicit_task_rejected(self) -> None:
        with pytest.raises(SystemExit) as exc:
            parse_args(["styles", "--sync", "watch"])
        assert exc.value.code == 2

    def test_unknown_task_rejected(self) -> None:
        result = run_cli(["deploy"])
        assert result.returncode == 2


# =============================================================================
# Entry Point
# =============================================================================


@pytest.mark.evergreen
class TestMain:

    def test_missing_root(self, tmp_path: Path) -> None:
        result = run_cli(["build", "--root", str(tmp_path / "absent")])
        assert result.returncode == 1
        assert "Theme root not found" in result.stdout

    def test_clean_task(self, write_theme) -> None:
        root = write_theme({"assets/css/default.css": "", "dev/css/base.css": ""})
        result = run_cli(["clean", "--root", str(root), "--no-color"])
        assert result.returncode == 0
        assert not (root / "assets").exists()
        assert "themekit clean" in result.stdout

    def test_assets_task(self, write_theme) -> None:
        root = write_theme({"dev/fonts/a.woff": "x", "dev/images/b.png": "y"})
        result = run_cli(["assets", "--root", str(root)])
        assert result.returncode == 0
        assert (root / "assets" / "fonts" / "a.woff").exists()
        assert (root / "assets" / "images" / "b.png").exists()

    def test_styles_task(self, write_theme, fake_tools) -> None:
        root = write_theme({"dev/sass/default.scss": "a { color: red; }\n"})
        result = run_cli(["styles", "--root", str(root), "--prod"])
        assert result.returncode == 0
        assert (root / "assets" / "css" / "default.css").read_text() == "a{color:red}"

    def test_invalid_config_exits_1(self, write_theme) -> None:
        root = write_theme({"themekit.yaml": "families: [sass\n"})
        result = run_cli(["build", "--root", str(root)])
        assert result.returncode == 1
        assert "not valid YAML" in result.stdout

    def test_missing_tool_exits_1(self, write_theme, no_tools) -> None:
        root = write_theme({"dev/js/app.js": "var a;"})
        result = run_cli(["js", "--root", str(root)])
        assert result.returncode == 1
        assert "'babel' not found" in result.stdout

    def test_interrupt_exits_130(self, write_theme, monkeypatch) -> None:
        from themekit.build.orchestrator import BuildOrchestrator

        async def interrupted(self, task):
            raise KeyboardInterrupt

        monkeypatch.setattr(BuildOrchestrator, "run_task", interrupted)
        root = write_theme({})
        assert run_cli(["build", "--root", str(root)]).returncode == 130
