# codemind/core/path_indexer.py
"""
Turns the flat path list of one load into a parent -> children index and
materializes tree nodes from it on demand.
"""
from typing import Dict, Iterable, List, Set
from loguru import logger

from .models import EntryKind, PathEntry, TreeNode, ExpansionState

ROOT_PATH = ""

ChildrenIndex = Dict[str, Dict[str, PathEntry]]


def _split_path(path: str) -> List[str]:
    return [part for part in path.split("/") if part]


def build_children_index(paths: Iterable[str]) -> ChildrenIndex:
    """
    Registers every prefix of every path under its immediate parent prefix.

    Buckets are keyed by child path, so directories shared by many files are
    registered once. A prefix that is a directory for any path stays a
    directory, which keeps the result independent of input order.
    """
    index: ChildrenIndex = {}
    for raw_path in paths:
        parts = _split_path(raw_path)
        for depth in range(1, len(parts) + 1):
            child_path = "/".join(parts[:depth])
            parent_path = "/".join(parts[:depth - 1])
            kind = EntryKind.FILE if depth == len(parts) else EntryKind.DIRECTORY
            bucket = index.setdefault(parent_path, {})
            existing = bucket.get(child_path)
            if existing is not None and existing.is_dir:
                continue
            bucket[child_path] = PathEntry(path=child_path, name=parts[depth - 1], kind=kind)
    return index


def compute_descendant_counts(index: ChildrenIndex) -> Dict[str, int]:
    """Total number of entries at any depth beneath each indexed parent path."""
    memo: Dict[str, int] = {}

    def count(path: str) -> int:
        if path in memo:
            return memo[path]
        total = 0
        for entry in index.get(path, {}).values():
            total += 1
            if entry.is_dir:
                total += count(entry.path)
        memo[path] = total
        return total

    for parent_path in index:
        count(parent_path)
    return memo


def sort_entries(entries: Iterable[PathEntry]) -> List[PathEntry]:
    """Directories first, then by name."""
    return sorted(entries, key=lambda e: (not e.is_dir, e.name))


class PathIndexer:
    """Static tree index for one load. Immutable once built."""

    def __init__(self, paths: Iterable[str]):
        self.file_paths: Set[str] = {"/".join(_split_path(p)) for p in paths if _split_path(p)}
        self.index = build_children_index(self.file_paths)
        self.descendant_counts = compute_descendant_counts(self.index)
        logger.debug(f"Indexed {len(self.file_paths)} files into {len(self.index)} parent buckets.")

    def is_directory(self, path: str) -> bool:
        return path == ROOT_PATH or path in self.index

    def is_file(self, path: str) -> bool:
        return path in self.file_paths

    def all_entries(self) -> List[PathEntry]:
        return [entry for bucket in self.index.values() for entry in bucket.values()]

    def _make_node(self, entry: PathEntry) -> TreeNode:
        has_children = entry.is_dir and bool(self.index.get(entry.path))
        return TreeNode(
            id=entry.path,
            name=entry.name,
            kind=entry.kind,
            path=entry.path,
            has_children=has_children,
            descendant_count=self.descendant_counts.get(entry.path, 0),
            children=None,
            expansion=ExpansionState.UNEXPANDED,
        )

    def build_child_nodes(self, parent_path: str) -> List[TreeNode]:
        """Direct children of ``parent_path``, not yet expanded themselves."""
        bucket = self.index.get(parent_path, {})
        return [self._make_node(entry) for entry in sort_entries(bucket.values())]

    def build_root(self, name: str) -> TreeNode:
        return TreeNode(
            id=ROOT_PATH,
            name=name,
            kind=EntryKind.DIRECTORY,
            path=ROOT_PATH,
            has_children=bool(self.index.get(ROOT_PATH)),
            descendant_count=self.descendant_counts.get(ROOT_PATH, 0),
        )
