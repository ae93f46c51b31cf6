"""
parser.py — Line annotation of source files before summarization.

The summarization engine is asked to link important code blocks by line
range, so every file is sent as a sequence of segments, each preceded by a
`// Line a - b` header.

Segmentation:
- Python, TypeScript/JavaScript, Rust, Go, C, C++: tree-sitter, one segment
  per top-level definition (leading comments stay with the definition)
- Anything else, or a file that fails to parse: fixed line windows
- Segments longer than `max_lines` are split into windows as well
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from tree_sitter import Language, Parser, Node
import tree_sitter_c as tsc
import tree_sitter_cpp as tscpp
import tree_sitter_python as tspython
import tree_sitter_typescript as tsts
import tree_sitter_rust as tsrust
import tree_sitter_go as tsgo


# ---------------------------------------------------------------------------
# Language registry
# ---------------------------------------------------------------------------

_LANGUAGES: dict[str, Language] = {
    "c": Language(tsc.language()),
    "cpp": Language(tscpp.language()),
    "python": Language(tspython.language()),
    "typescript": Language(tsts.language_typescript()),
    "tsx": Language(tsts.language_tsx()),
    "rust": Language(tsrust.language()),
    "go": Language(tsgo.language()),
}

_EXT_MAP: dict[str, str] = {
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".hxx": "cpp",
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".mts": "typescript",
    ".cts": "typescript",
    ".js": "typescript",
    ".mjs": "typescript",
    ".cjs": "typescript",
    ".rs": "rust",
    ".go": "go",
}

_COMMENT_NODES: dict[str, set[str]] = {
    "c": {"comment"},
    "cpp": {"comment"},
    "python": {"comment"},
    "typescript": {"comment"},
    "tsx": {"comment"},
    "rust": {"line_comment", "block_comment"},
    "go": {"comment"},
}

DEFAULT_WINDOW_LINES = 40
DEFAULT_MAX_LINES = 200


@dataclass(frozen=True)
class Segment:
    start_line: int  # 1-based, inclusive
    end_line: int
    text: str


def language_for(path: str) -> Optional[str]:
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return None
    return _EXT_MAP.get("." + name.rsplit(".", 1)[-1].lower())


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

def _definition_starts(root: Node, language: str) -> list[int]:
    """0-based start rows of top-level definitions, pulled up over leading comments."""
    comment_types = _COMMENT_NODES.get(language, set())
    starts: list[int] = []
    pending_comment: Optional[int] = None
    for child in root.children:
        if child.type in comment_types:
            if pending_comment is None:
                pending_comment = child.start_point[0]
            continue
        if child.is_named:
            starts.append(pending_comment if pending_comment is not None else child.start_point[0])
        pending_comment = None
    return sorted(set(starts))


def _windows(first: int, last: int, size: int) -> list[tuple[int, int]]:
    return [(s, min(s + size - 1, last)) for s in range(first, last + 1, size)]


def segment_source(
    path: str,
    content: str,
    *,
    window_lines: int = DEFAULT_WINDOW_LINES,
    max_lines: int = DEFAULT_MAX_LINES,
) -> list[Segment]:
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    if not lines:
        return []
    last = len(lines) - 1

    ranges: list[tuple[int, int]] = []
    language = language_for(path)
    lang_obj = _LANGUAGES.get(language) if language else None
    if lang_obj is not None:
        try:
            tree = Parser(lang_obj).parse(content.encode("utf-8", errors="replace"))
            starts = [s for s in _definition_starts(tree.root_node, language) if s <= last]
        except (ValueError, RuntimeError):
            starts = []
        if starts:
            bounds = sorted(set([0] + starts))
            for i, start in enumerate(bounds):
                end = bounds[i + 1] - 1 if i + 1 < len(bounds) else last
                if end - start + 1 > max_lines:
                    ranges.extend(_windows(start, end, window_lines))
                else:
                    ranges.append((start, end))

    if not ranges:
        ranges = _windows(0, last, window_lines)

    segments = []
    for start, end in ranges:
        text = "\n".join(lines[start:end + 1])
        if text.strip():
            segments.append(Segment(start_line=start + 1, end_line=end + 1, text=text))
    return segments


def annotate_source(path: str, content: str, **kwargs) -> str:
    """Render `content` as `// Line a - b` headed segments."""
    return "\n\n".join(
        f"// Line {seg.start_line} - {seg.end_line}\n{seg.text}"
        for seg in segment_source(path, content, **kwargs)
    )
