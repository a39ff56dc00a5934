"""
Source map (v3) helpers.

Only the small subset the pipelines need: identity and coarse maps for
sources without one, index maps for merged stylesheets, source rebasing
and sourceMappingURL handling.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Optional

# /*# sourceMappingURL=x.css.map */ or //# sourceMappingURL=x.js.map at end of file
_TRAILING_URL_RE = re.compile(
    r"\n?(?:/\*[#@]\s*sourceMappingURL=[^*]*\*/|//[#@]\s*sourceMappingURL=\S*)\s*\Z"
)


def strip_source_map_url(text: str) -> str:
    """Remove a trailing sourceMappingURL comment."""
    return _TRAILING_URL_RE.sub("", text)


def css_map_comment(map_name: str) -> str:
    return f"/*# sourceMappingURL={map_name} */"


def js_map_comment(map_name: str) -> str:
    return f"//# sourceMappingURL={map_name}"


def line_count(text: str) -> int:
    """Number of generated lines `text` occupies when followed by a newline."""
    if not text:
        return 0
    return text.count("\n") + (0 if text.endswith("\n") else 1)


def identity_map(
    text: str,
    source: str,
    file: Optional[str] = None,
    lines: Optional[list[int]] = None,
) -> dict[str, Any]:
    """Map each generated line to the start of a line of `source`.

    By default generated line k is source line k. `lines` gives the source
    line for each generated line when some were dropped.
    """
    if lines is None:
        lines = list(range(line_count(text)))
    mappings = encode_mappings([[[0, 0, line, 0]] for line in lines])
    result: dict[str, Any] = {
        "version": 3,
        "sources": [source],
        "sourcesContent": [text],
        "names": [],
        "mappings": mappings,
    }
    if file:
        result["file"] = file
    return result


def coarse_map(source: str, content: str, file: str) -> dict[str, Any]:
    """Map the start of the output to the start of `source`.

    Used for minified output where line structure is gone; carries the
    original content so it can still be inspected from the browser.
    """
    return {
        "version": 3,
        "file": file,
        "sources": [source],
        "sourcesContent": [content],
        "names": [],
        "mappings": "AAAA",
    }


def index_map(file: str, sections: list[tuple[int, dict[str, Any]]]) -> dict[str, Any]:
    """Build an index map from (line offset, map) pairs."""
    return {
        "version": 3,
        "file": file,
        "sections": [
            {"offset": {"line": line, "column": 0}, "map": section}
            for line, section in sections
        ],
    }


def rebase_sources(source_map: dict[str, Any], from_dir: Path, to_dir: Path) -> dict[str, Any]:
    """Return a copy of `source_map` with sources relative to `to_dir`.

    `from_dir` is the directory the map's sources were relative to.
    """
    rebased = dict(source_map)
    root = rebased.pop("sourceRoot", "") or ""
    sources = []
    for source in source_map.get("sources", []):
        if "://" in source:
            sources.append(source)
            continue
        combined = os.path.join(root, source) if root else source
        absolute = os.path.normpath(os.path.join(str(from_dir), combined))
        sources.append(Path(os.path.relpath(absolute, str(to_dir))).as_posix())
    rebased["sources"] = sources
    return rebased


def read_map(path: Path) -> Optional[dict[str, Any]]:
    """Load a source map, or None if it is missing or unreadable."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict) or "sections" in data:
        return None
    return data


def write_map(path: Path, source_map: dict[str, Any]) -> None:
    path.write_text(json.dumps(source_map, separators=(",", ":")), encoding="utf-8")


def relink(css_path: Path, old_map: Path, new_map: Path) -> None:
    """Point `css_path` at `new_map` after a map was renamed.

    Moves `old_map` to `new_map` and updates its `file` field.
    """
    source_map = read_map(old_map)
    if source_map is None:
        return
    source_map["file"] = css_path.name
    write_map(new_map, source_map)
    if old_map != new_map:
        old_map.unlink()

    text = strip_source_map_url(css_path.read_text(encoding="utf-8"))
    css_path.write_text(text.rstrip("\n") + "\n" + css_map_comment(new_map.name) + "\n", encoding="utf-8")


# =============================================================================
# Mappings
# =============================================================================

_BASE64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_BASE64_INDEX = {ch: i for i, ch in enumerate(_BASE64)}


def _decode_vlq(segment: str) -> list[int]:
    values: list[int] = []
    value = shift = 0
    for ch in segment:
        digit = _BASE64_INDEX[ch]
        value += (digit & 31) << shift
        if digit & 32:
            shift += 5
            continue
        values.append(-(value >> 1) if value & 1 else value >> 1)
        value = shift = 0
    return values


def _encode_vlq(value: int) -> str:
    value = (-value << 1) | 1 if value < 0 else value << 1
    out = ""
    while True:
        digit = value & 31
        value >>= 5
        if value:
            out += _BASE64[digit | 32]
        else:
            return out + _BASE64[digit]


def decode_mappings(mappings: str) -> list[list[list[int]]]:
    """Decode a v3 `mappings` string into absolute segments per generated line.

    Each segment is [column] or [column, source, line, column(, name)].
    """
    state = [0, 0, 0, 0]
    lines: list[list[list[int]]] = []
    for group in mappings.split(";"):
        column = 0
        segments: list[list[int]] = []
        for raw in group.split(","):
            if not raw:
                continue
            fields = _decode_vlq(raw)
            column += fields[0]
            segment = [column]
            for i, delta in enumerate(fields[1:]):
                state[i] += delta
                segment.append(state[i])
            segments.append(segment)
        lines.append(segments)
    return lines


def encode_mappings(lines: list[list[list[int]]]) -> str:
    state = [0, 0, 0, 0]
    groups = []
    for segments in lines:
        column = 0
        encoded = []
        for segment in segments:
            parts = [_encode_vlq(segment[0] - column)]
            column = segment[0]
            for i, value in enumerate(segment[1:]):
                parts.append(_encode_vlq(value - state[i]))
                state[i] = value
            encoded.append("".join(parts))
        groups.append(",".join(encoded))
    return ";".join(groups)


def select_lines(source_map: dict[str, Any], kept: list[int]) -> dict[str, Any]:
    """Return a copy of `source_map` whose generated line k was line kept[k]."""
    decoded = decode_mappings(source_map.get("mappings", ""))
    selected = [decoded[i] if i < len(decoded) else [] for i in kept]
    result = dict(source_map)
    result["mappings"] = encode_mappings(selected)
    return result
