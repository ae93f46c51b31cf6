from parser import annotate_source, language_for, segment_source


PY_SOURCE = """import os


def a():
    return 1


# helper
def b():
    return 2
"""


def test_language_for_known_and_unknown_extensions():
    assert language_for("src/app.py") == "python"
    assert language_for("lib/x.HPP") == "cpp"
    assert language_for("web/index.js") == "typescript"
    assert language_for("README.md") is None
    assert language_for("Makefile") is None


def test_python_segments_follow_top_level_definitions():
    segments = segment_source("mod.py", PY_SOURCE)
    assert [(s.start_line, s.end_line) for s in segments] == [(1, 3), (4, 7), (8, 10)]
    assert segments[2].text.startswith("# helper\ndef b():")


def test_annotate_source_adds_line_markers():
    out = annotate_source("mod.py", PY_SOURCE)
    assert out.startswith("// Line 1 - 3\nimport os")
    assert "// Line 4 - 7\ndef a():\n    return 1" in out
    assert "// Line 8 - 10\n# helper\ndef b():\n    return 2" in out


def test_unknown_language_falls_back_to_fixed_windows():
    content = "\n".join(f"line {i}" for i in range(1, 91))
    segments = segment_source("notes.txt", content, window_lines=40)
    assert [(s.start_line, s.end_line) for s in segments] == [(1, 40), (41, 80), (81, 90)]
    assert segments[1].text.splitlines()[0] == "line 41"


def test_long_definitions_are_windowed():
    body = "\n".join(f"    x{i} = {i}" for i in range(30))
    content = f"def big():\n{body}\n    return 0\n"
    segments = segment_source("big.py", content, window_lines=10, max_lines=20)
    assert [(s.start_line, s.end_line) for s in segments] == [(1, 10), (11, 20), (21, 30), (31, 32)]


def test_c_source_is_segmented():
    content = "// Adds two numbers.\nint add(int a, int b) {\n    return a + b;\n}\n\nstruct Point {\n    int x;\n};\n"
    out = annotate_source("math.c", content)
    assert out.startswith("// Line 1 - 5\n// Adds two numbers.\nint add")
    assert "// Line 6 - 8\nstruct Point {" in out


def test_empty_content_has_no_segments():
    assert segment_source("a.py", "") == []
    assert annotate_source("a.py", "") == ""
