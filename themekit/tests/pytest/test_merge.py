"""
Tests for the variant merger: existence-tolerant, precedence-ordered
concatenation of base CSS and family intermediates.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from themekit.build.config import Family
from themekit.build.merge import VariantMerger, light_minify, minify_css
from themekit.build.sourcemaps import decode_mappings, encode_mappings


def write_intermediate(layout, family: Family, variant: str, css: str) -> None:
    path = layout.intermediate_path(family, variant)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(css)


@pytest.mark.evergreen
class TestMergeOrder:
    """Families are appended STYLUS, LESS, SASS after the base CSS."""

    def test_precedence_order(self, write_theme, layout, make_options) -> None:
        write_theme({"dev/css/base.css": ".base {}\n"})
        for family in (Family.SASS, Family.LESS, Family.STYLUS):
            write_intermediate(layout, family, "default", f".{family.value} {{}}\n")

        output = asyncio.run(VariantMerger(make_options(), layout).merge("default"))

        text = output.read_text()
        positions = [text.index(f".{name} ") for name in ("base", "stylus", "less", "sass")]
        assert positions == sorted(positions)

    def test_missing_family_is_tolerated(self, layout, make_options) -> None:
        write_intermediate(layout, Family.LESS, "default", ".less { }\n")
        write_intermediate(layout, Family.SASS, "default", ".sass { }\n")

        output = asyncio.run(VariantMerger(make_options(), layout).merge("default"))

        text = output.read_text()
        assert text.index(".less") < text.index(".sass")
        assert "stylus" not in text

    def test_base_css_sorted_and_recursive(self, write_theme, layout, make_options) -> None:
        write_theme({
            "dev/css/b.css": ".b{}\n",
            "dev/css/a.css": ".a{}\n",
            "dev/css/vendor/c.css": ".c{}\n",
        })
        merger = VariantMerger(make_options(), layout)
        names = [p.name for p in merger.collect_sources("default")]
        assert names == ["a.css", "b.css", "c.css"]

    def test_nothing_to_merge(self, layout, make_options) -> None:
        assert asyncio.run(VariantMerger(make_options(), layout).merge("default")) is None
        assert not layout.stylesheet_path("default").exists()

    def test_merge_all_skips_empty_variants(self, layout, make_options) -> None:
        write_intermediate(layout, Family.SASS, "default", "a{}\n")
        written = asyncio.run(VariantMerger(make_options(), layout).merge_all(["default", "ghost"]))
        assert written == [layout.stylesheet_path("default")]


@pytest.mark.evergreen
class TestMergeOutput:
    """Production minifies without maps; development keeps lines and maps them."""

    def test_production_minified_without_map(self, layout, make_options) -> None:
        write_intermediate(layout, Family.SASS, "default", "/* note */\na {\n  color: red;\n}\n")

        output = asyncio.run(VariantMerger(make_options(production=True), layout).merge("default"))

        text = output.read_text()
        assert "note" not in text
        assert "sourceMappingURL" not in text
        assert "\n" not in text.strip()
        assert not output.with_name("default.css.map").exists()

    def test_development_links_index_map(self, write_theme, layout, make_options) -> None:
        write_theme({"dev/css/base.css": "body {}\nhtml {}\n"})
        write_intermediate(layout, Family.SASS, "default", "a {   \n  color: red;\n}\n")

        output = asyncio.run(VariantMerger(make_options(), layout).merge("default"))

        text = output.read_text()
        assert text.endswith("/*# sourceMappingURL=default.css.map */\n")
        assert "a {\n" in text  # trailing whitespace dropped, lines kept

        source_map = json.loads(output.with_name("default.css.map").read_text())
        offsets = [s["offset"]["line"] for s in source_map["sections"]]
        assert offsets == [0, 2]
        assert source_map["sections"][0]["map"]["sources"] == ["../../dev/css/base.css"]

    def test_intermediate_map_reused(self, layout, make_options) -> None:
        write_intermediate(layout, Family.LESS, "default", "a {}\n/*# sourceMappingURL=default-less.css.map */\n")
        map_path = layout.intermediate_path(Family.LESS, "default").with_name("default-less.css.map")
        map_path.write_text(json.dumps({
            "version": 3,
            "sources": ["../../../../dev/less/default.less"],
            "names": [],
            "mappings": "AAAA",
        }))

        output = asyncio.run(VariantMerger(make_options(), layout).merge("default"))

        text = output.read_text()
        assert "default-less.css.map" not in text
        section = json.loads(output.with_name("default.css.map").read_text())["sections"][0]
        assert section["map"]["sources"] == ["../../dev/less/default.less"]

    def test_trailing_blank_line_does_not_shift_later_sections(self, write_theme, layout, make_options) -> None:
        write_theme({"dev/css/base.css": "a{}\n  "})
        write_intermediate(layout, Family.SASS, "default", ".sass{}\n")

        output = asyncio.run(VariantMerger(make_options(), layout).merge("default"))

        lines = output.read_text().split("\n")
        source_map = json.loads(output.with_name("default.css.map").read_text())
        offsets = [s["offset"]["line"] for s in source_map["sections"]]
        assert offsets == [0, lines.index(".sass{}")]

    def test_comment_only_source_left_out(self, write_theme, layout, make_options) -> None:
        write_theme({"dev/css/a.css": "/* nothing yet */\n", "dev/css/b.css": "b{}\n"})

        output = asyncio.run(VariantMerger(make_options(), layout).merge("default"))

        assert output.read_text() == "b{}\n/*# sourceMappingURL=default.css.map */\n"
        source_map = json.loads(output.with_name("default.css.map").read_text())
        assert [s["map"]["sources"] for s in source_map["sections"]] == [["../../dev/css/b.css"]]

    def test_dropped_lines_renumbered_in_intermediate_map(self, layout, make_options) -> None:
        # Intermediate lines 1 and 3 come from default.scss lines 0 and 4.
        write_intermediate(layout, Family.SASS, "default", "/* a */\na {}\n\nb {}\n")
        map_path = layout.intermediate_path(Family.SASS, "default").with_name("default-sass.css.map")
        map_path.write_text(json.dumps({
            "version": 3,
            "sources": ["default.scss"],
            "names": [],
            "mappings": encode_mappings([[], [[0, 0, 0, 0]], [], [[0, 0, 4, 0]]]),
        }))

        output = asyncio.run(VariantMerger(make_options(), layout).merge("default"))

        assert output.read_text().startswith("a {}\nb {}\n")
        section = json.loads(output.with_name("default.css.map").read_text())["sections"][0]["map"]
        assert decode_mappings(section["mappings"]) == [[[0, 0, 0, 0]], [[0, 0, 4, 0]]]


@pytest.mark.evergreen
class TestLightMinify:

    def test_drops_comments_and_blank_lines(self) -> None:
        text, kept = light_minify("/* header */\n\na {  \n  color: red; /* why */\n}\n")
        assert text == "a {\n  color: red;\n}"
        assert kept == [2, 3, 4]

    def test_keeps_bang_comments(self) -> None:
        assert light_minify("/*! License */\na{}")[0] == "/*! License */\na{}"

    def test_comment_markers_in_strings_untouched(self) -> None:
        source = 'a { content: "/* not a comment */"; }'
        assert light_minify(source) == (source, [0])

    def test_multiline_comment_keeps_line_numbers(self) -> None:
        assert light_minify("/*\n  long\n*/\nb{}") == ("b{}", [3])

    def test_minify_css_development_uses_light_pass(self) -> None:
        assert minify_css("/* drop */  \na{}  ", production=False) == "a{}"
