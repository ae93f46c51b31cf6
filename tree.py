"""
tree.py — Repository tree building and pruning.

Handles:
- Building a rooted hierarchy from a flat recursive tree listing
- Inclusion/exclusion filtering of files and directories (regex, case-insensitive)
- Recursive removal of directories left empty after filtering

Nodes live in a path-indexed arena (`RepoTree.nodes`); parent/child links are
stored as paths, so pruning always produces a fresh tree and never aliases
nodes of the input tree.
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional


# ---------------------------------------------------------------------------
# Default pattern sets
# ---------------------------------------------------------------------------

DEFAULT_INCLUDE: tuple[str, ...] = (
    r"\.py$",
    r"\.js$",
    r"\.ts$",
    r"\.java$",
    r"\.scala$",
    r"README\.md$",
    r"\.cpp$",
    r"\.cc$",
    r"\.cxx$",
    r"\.hpp$",
    r"\.hxx$",
    r"\.h$",
    r"\.go$",
    r"\.rb$",
    r"\.rs$",
    r"\.php$",
)

DEFAULT_EXCLUDE_FILES: tuple[str, ...] = (
    r"(^|/)\.[^/]+($|/)",   # dotfiles
    r"__\w+",               # __init__.py, __main__.py
    r"setup",
    r"d\.ts$",
    r"build",
    r"demo",
    r"entrypoint",
    r"example",
    r"config",
    r"sponsor",
    r"contrib",
    r"gulpfile",
    r"webpack",
    r"\.min\.js$",
    r"\.spec\.",
    r"types",
)

DEFAULT_EXCLUDE_DIRS: tuple[str, ...] = (
    r"(^|/)\.[^/]+($|/)",   # dot-directories
    r"__\w+",               # __pycache__
    "appimage", "appearance", "art", "assets", "audio", "bench", "bin",
    "build", "cache", "changelog", "ci", "cmake", "contrib", "debug",
    "demo", "developer", "docker", "doc", "e2e", "example", "extra",
    "esm", "guide", "html", "image", "img", "node_modules", "output",
    "public", "picture", "release", "requirement", "sample", "script",
    "setup", "static", "support", "screenshot", "target", "temp",
    "theme", "tool", "test", "third_party", "tmp", "vendor", "video",
    "workflows", "locale", "conf", "tutorial",
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TreeEntry:
    path: str
    kind: str  # "file" | "directory"
    sha: str = ""


@dataclass
class TreeNode:
    path: str
    files: list[str] = field(default_factory=list)
    children: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1] if self.path else ""

    def is_empty(self) -> bool:
        return not self.files and not self.children


@dataclass
class RepoTree:
    nodes: dict[str, TreeNode] = field(default_factory=dict)

    @property
    def root(self) -> TreeNode:
        return self.nodes[""]

    def children_of(self, node: TreeNode) -> list[TreeNode]:
        return [self.nodes[p] for p in node.children]

    def walk(self, start: Optional[TreeNode] = None) -> Iterator[TreeNode]:
        """Pre-order traversal from `start` (root by default)."""
        stack = [start or self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(self.children_of(node)))

    def iter_files(self) -> Iterator[str]:
        for node in self.walk():
            yield from node.files

    def signature(self) -> list[tuple[str, tuple[str, ...], tuple[str, ...]]]:
        """Shape of the reachable tree, used to compare two trees."""
        return [(n.path, tuple(n.files), tuple(n.children)) for n in self.walk()]


def parent_path(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------

def build_tree(entries: Iterable[TreeEntry]) -> RepoTree:
    """
    Build a rooted tree from a flat recursive listing.

    Every directory node is created before any attachment happens, so a
    directory listed after its own children still resolves. Entries whose
    parent path has no node are dropped.
    """
    entries = list(entries)
    tree = RepoTree(nodes={"": TreeNode(path="")})

    for entry in entries:
        if entry.kind == "directory":
            tree.nodes.setdefault(entry.path, TreeNode(path=entry.path))

    for entry in entries:
        parent = tree.nodes.get(parent_path(entry.path))
        if parent is None:
            continue
        if entry.kind == "file":
            parent.files.append(entry.path)
        elif entry.kind == "directory":
            parent.children.append(entry.path)

    return tree


# ---------------------------------------------------------------------------
# Prune
# ---------------------------------------------------------------------------

def _compile(patterns: Iterable[str]) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


class TreeFilter:
    def __init__(
        self,
        include: Iterable[str] = DEFAULT_INCLUDE,
        exclude_files: Iterable[str] = DEFAULT_EXCLUDE_FILES,
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
    ):
        self.include = _compile(include)
        self.exclude_files = _compile(exclude_files)
        self.exclude_dirs = _compile(exclude_dirs)

    @classmethod
    def from_exclude(cls, include: Iterable[str], exclude: Iterable[str]) -> "TreeFilter":
        """One exclusion set applied to files and directories alike."""
        exclude = list(exclude)
        return cls(include=include, exclude_files=exclude, exclude_dirs=exclude)

    def keeps_file(self, path: str) -> bool:
        if not any(p.search(path) for p in self.include):
            return False
        return not any(p.search(path) for p in self.exclude_files)

    def drops_dir(self, path: str) -> bool:
        return any(p.search(path) for p in self.exclude_dirs)


def prune_tree(tree: RepoTree, tree_filter: TreeFilter) -> RepoTree:
    """
    Return a new tree keeping only files accepted by `tree_filter`.

    Excluded directories are dropped without being visited. Surviving
    subdirectories are pruned first; a subdirectory left with no files and
    no children is then dropped from its parent. The root is always kept.
    """
    pruned = RepoTree()

    def visit(node: TreeNode) -> TreeNode:
        kept = TreeNode(
            path=node.path,
            files=[f for f in node.files if tree_filter.keeps_file(f)],
        )
        for child in tree.children_of(node):
            if tree_filter.drops_dir(child.path):
                continue
            sub = visit(child)
            if sub.is_empty():
                pruned.nodes.pop(sub.path, None)
                continue
            kept.children.append(sub.path)
        pruned.nodes[kept.path] = kept
        return kept

    visit(tree.root)
    return pruned
