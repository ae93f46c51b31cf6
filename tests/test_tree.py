from tree import (
    RepoTree,
    TreeEntry,
    TreeFilter,
    build_tree,
    parent_path,
    prune_tree,
)


def _entries(*items: tuple[str, str]) -> list[TreeEntry]:
    return [TreeEntry(path=p, kind=k) for p, k in items]


def _assert_no_empty_nodes(tree: RepoTree):
    for node in tree.walk():
        if node.path:
            assert not node.is_empty(), f"empty node survived: {node.path}"


SAMPLE = _entries(
    ("README.md", "file"),
    ("setup.py", "file"),
    ("src", "directory"),
    ("src/app.py", "file"),
    ("src/util", "directory"),
    ("src/util/io.py", "file"),
    ("src/util/data.json", "file"),
    ("src/empty", "directory"),
    ("src/empty/notes.txt", "file"),
    ("node_modules", "directory"),
    ("node_modules/lib.js", "file"),
    ("tests", "directory"),
    ("tests/test_app.py", "file"),
)


def test_parent_path():
    assert parent_path("README.md") == ""
    assert parent_path("src/a.py") == "src"
    assert parent_path("a/b/c.py") == "a/b"


def test_build_attaches_files_and_children():
    tree = build_tree(_entries(
        ("README.md", "file"),
        ("src", "directory"),
        ("src/a.py", "file"),
    ))
    assert tree.root.files == ["README.md"]
    assert tree.root.children == ["src"]
    assert tree.nodes["src"].files == ["src/a.py"]
    assert tree.nodes["src"].name == "src"
    assert tree.root.name == ""


def test_build_resolves_parent_listed_after_child():
    tree = build_tree(_entries(
        ("pkg/sub/mod.py", "file"),
        ("pkg/sub", "directory"),
        ("pkg", "directory"),
    ))
    assert tree.root.children == ["pkg"]
    assert tree.nodes["pkg"].children == ["pkg/sub"]
    assert tree.nodes["pkg/sub"].files == ["pkg/sub/mod.py"]


def test_build_drops_orphans():
    tree = build_tree(_entries(
        ("ghost/a.py", "file"),
        ("ghost/inner", "directory"),
        ("ok.py", "file"),
    ))
    assert tree.root.files == ["ok.py"]
    assert tree.root.children == []
    assert [p for p in tree.iter_files()] == ["ok.py"]


def test_end_to_end_pruning_scenario():
    tree = build_tree(_entries(
        ("README.md", "file"),
        ("src", "directory"),
        ("src/a.py", "file"),
        ("src/b.txt", "file"),
    ))
    pruned = prune_tree(tree, TreeFilter.from_exclude([r"\.py$", r"README\.md"], []))

    assert pruned.root.files == ["README.md"]
    assert pruned.root.children == ["src"]
    assert pruned.nodes["src"].files == ["src/a.py"]
    assert list(pruned.iter_files()) == ["README.md", "src/a.py"]


def test_file_retention_uses_include_and_exclude():
    tree = build_tree(_entries(
        ("src", "directory"),
        ("src/main.py", "file"),
        ("src/test_main.py", "file"),
    ))
    pruned = prune_tree(tree, TreeFilter.from_exclude([r"\.py$"], ["test"]))
    assert list(pruned.iter_files()) == ["src/main.py"]


def test_patterns_are_case_insensitive():
    tree = build_tree(_entries(("Main.PY", "file"), ("readme.md", "file")))
    pruned = prune_tree(tree, TreeFilter.from_exclude([r"\.py$", r"README\.md$"], []))
    assert list(pruned.iter_files()) == ["Main.PY", "readme.md"]


def test_excluded_directory_is_never_visited():
    tree = build_tree(_entries(
        ("vendor", "directory"),
        ("vendor/keep.py", "file"),
        ("app.py", "file"),
    ))
    pruned = prune_tree(
        tree,
        TreeFilter(include=[r"\.py$"], exclude_files=[], exclude_dirs=["vendor"]),
    )
    assert "vendor" not in pruned.nodes
    assert list(pruned.iter_files()) == ["app.py"]


def test_empty_directories_removed_recursively():
    tree = build_tree(_entries(
        ("a", "directory"),
        ("a/b", "directory"),
        ("a/b/c", "directory"),
        ("a/b/c/data.bin", "file"),
        ("x.py", "file"),
    ))
    pruned = prune_tree(tree, TreeFilter.from_exclude([r"\.py$"], []))
    assert pruned.root.children == []
    assert set(pruned.nodes) == {""}


def test_root_survives_when_everything_is_pruned():
    tree = build_tree(_entries(("notes.txt", "file")))
    pruned = prune_tree(tree, TreeFilter.from_exclude([r"\.py$"], []))
    assert pruned.root.is_empty()


def test_default_filter_on_sample_tree():
    pruned = prune_tree(build_tree(SAMPLE), TreeFilter())

    assert list(pruned.iter_files()) == ["README.md", "src/app.py", "src/util/io.py"]
    assert "node_modules" not in pruned.nodes
    assert "tests" not in pruned.nodes
    assert "src/empty" not in pruned.nodes
    _assert_no_empty_nodes(pruned)


def test_prune_is_idempotent():
    f = TreeFilter()
    once = prune_tree(build_tree(SAMPLE), f)
    twice = prune_tree(once, f)
    assert once.signature() == twice.signature()


def test_prune_does_not_mutate_input():
    tree = build_tree(SAMPLE)
    before = tree.signature()
    prune_tree(tree, TreeFilter())
    assert tree.signature() == before


def test_walk_is_pre_order():
    tree = build_tree(_entries(
        ("a", "directory"),
        ("a/x", "directory"),
        ("b", "directory"),
    ))
    assert [n.path for n in tree.walk()] == ["", "a", "a/x", "b"]
