# codemind/core/graph_store.py
"""
Owned, single-writer state of one exploration: the materialized tree, the
semantic edge set, and the UI-facing bits a session snapshot captures.

Semantic edges are only ever replaced per source id: ``replace_semantic_edges``
drops the edges whose source is in the touched set and inserts the new ones,
so re-analyzing one file never disturbs edges contributed by another.
"""
from typing import Dict, Iterable, List, Optional, Set, Tuple
from loguru import logger

from .errors import ExpansionError
from .models import (
    Edge,
    EdgeKind,
    ExpansionState,
    GraphNode,
    LayoutState,
    NodeKind,
    PromptItem,
    SymbolNode,
    TreeNode,
    ViewMode,
)
from .path_indexer import ROOT_PATH, PathIndexer
from .call_graph import SymbolIndex, build_symbol_id, build_symbol_index, flatten_symbols

CLUSTER_SUFFIX = "::__cluster"


class GraphStore:

    def __init__(self):
        self.indexer: Optional[PathIndexer] = None
        self.root: Optional[TreeNode] = None
        self.source_identifier: Optional[str] = None
        self.expanded_directories: Set[str] = set()
        self.highlighted_paths: List[str] = []
        self.view_mode: ViewMode = ViewMode.STRUCTURAL
        self.selected_node_id: Optional[str] = None
        self.prompt_items: List[PromptItem] = []
        self.layout: Optional[LayoutState] = None
        # File contents fetched so far; not part of a snapshot
        self.file_contents: Dict[str, str] = {}
        self._nodes_by_path: Dict[str, TreeNode] = {}
        self._semantic_edges: Dict[str, Edge] = {}

    # --- Loading ---

    def reset(self, indexer: PathIndexer, root_name: str, source_identifier: str) -> TreeNode:
        """Replaces everything with a fresh tree whose root is already expanded."""
        self.indexer = indexer
        self.source_identifier = source_identifier
        self.root = indexer.build_root(root_name)
        self.root.children = indexer.build_child_nodes(ROOT_PATH)
        self.root.expansion = ExpansionState.EXPANDED
        self.expanded_directories = {ROOT_PATH}
        self.highlighted_paths = []
        self.view_mode = ViewMode.STRUCTURAL
        self.selected_node_id = None
        self.prompt_items = []
        self.layout = None
        self.file_contents = {}
        self._semantic_edges = {}
        self._reindex_nodes()
        logger.info(f"Loaded {len(indexer.file_paths)} files from {source_identifier}")
        return self.root

    def replace_state(
        self,
        root: Optional[TreeNode],
        expanded_directories: Iterable[str],
        highlighted_paths: Iterable[str],
        edges: Iterable[Edge],
        view_mode: ViewMode,
        selected_node_id: Optional[str],
        prompt_items: Iterable[PromptItem],
        layout: Optional[LayoutState],
        indexer: Optional[PathIndexer] = None,
        source_identifier: Optional[str] = None,
    ) -> None:
        """
        Wholesale replacement used by session restore. The path index and source
        come from the snapshot and fetched contents are dropped.
        """
        if indexer is None:
            # Snapshot without a path list: keep the current load, or index what it materialized
            if self.indexer is not None:
                indexer = self.indexer
                source_identifier = source_identifier or self.source_identifier
            elif root is not None:
                indexer = PathIndexer(n.path for n in root.walk() if not n.is_dir)
        self.indexer = indexer
        self.source_identifier = source_identifier
        self.file_contents = {}
        self.root = root
        self.expanded_directories = set(expanded_directories)
        self.highlighted_paths = list(highlighted_paths)
        self._semantic_edges = {}
        for edge in edges:
            self._semantic_edges[edge.id] = edge
        self.view_mode = view_mode
        self.selected_node_id = selected_node_id
        self.prompt_items = list(prompt_items)
        self.layout = layout
        self._reindex_nodes()

    def _reindex_nodes(self) -> None:
        self._nodes_by_path = {n.path: n for n in self.root.walk()} if self.root else {}

    # --- Tree access ---

    def node(self, path: str) -> Optional[TreeNode]:
        return self._nodes_by_path.get(path)

    def tree_nodes(self) -> List[TreeNode]:
        return list(self._nodes_by_path.values())

    def known_file_paths(self) -> Set[str]:
        return self.indexer.file_paths if self.indexer else set()

    def ensure_materialized(self, path: str) -> TreeNode:
        """Materializes the ancestors of ``path`` so its TreeNode exists."""
        node = self.node(path)
        if node is not None:
            return node
        if self.indexer is None or self.root is None:
            raise ExpansionError(f"Nothing loaded; cannot locate {path!r}")
        parts = path.split("/")
        for depth in range(0, len(parts)):
            ancestor_path = "/".join(parts[:depth])
            ancestor = self.node(ancestor_path)
            if ancestor is None:
                break
            if ancestor.children is None and ancestor.expansion is not ExpansionState.EXPANDING:
                self._attach_children(ancestor, self.indexer.build_child_nodes(ancestor_path))
        node = self.node(path)
        if node is None:
            raise ExpansionError(f"Path is not part of the loaded tree: {path!r}")
        return node

    # --- Expansion (three-state) ---

    def begin_expansion(self, path: str) -> Optional[TreeNode]:
        """
        Marks ``path`` as expanding and returns its node, or returns None when
        there is nothing to do (already expanded or already in flight).
        """
        if self.indexer is None or not self.indexer.is_directory(path):
            raise ExpansionError(f"Cannot expand {path!r}: not a directory in the index")
        node = self.ensure_materialized(path)
        if node.expansion is ExpansionState.EXPANDING:
            return None
        if node.expansion is ExpansionState.EXPANDED or node.children:
            self.expanded_directories.add(path)
            return None
        node.expansion = ExpansionState.EXPANDING
        return node

    def finish_expansion(self, path: str, children: List[TreeNode]) -> None:
        node = self.node(path)
        if node is None:
            logger.warning(f"Expansion finished for {path!r} after the tree was replaced, dropping it.")
            return
        self._attach_children(node, children)
        self.expanded_directories.add(path)

    def abort_expansion(self, path: str) -> None:
        node = self.node(path)
        if node is not None and node.expansion is ExpansionState.EXPANDING:
            node.expansion = ExpansionState.UNEXPANDED

    def _attach_children(self, node: TreeNode, children: List[TreeNode]) -> None:
        node.children = children
        node.expansion = ExpansionState.EXPANDED
        for child in children:
            self._nodes_by_path[child.path] = child

    def toggle_directory(self, path: str) -> bool:
        """Flips visual expansion. Returns the new expanded flag."""
        if path in self.expanded_directories:
            self.expanded_directories.discard(path)
            return False
        self.expanded_directories.add(path)
        return True

    # --- Symbols ---

    def attach_symbols(self, path: str, symbols: List[SymbolNode]) -> TreeNode:
        node = self.ensure_materialized(path)
        for symbol in flatten_symbols(symbols):
            symbol.id = build_symbol_id(path, symbol)
        node.symbol_tree = symbols
        return node

    def symbol_index(self) -> SymbolIndex:
        return build_symbol_index(self._nodes_by_path.values())

    def find_symbol(self, symbol_id: str) -> Optional[SymbolNode]:
        file_path, _, _ = symbol_id.partition("#")
        node = self.node(file_path)
        if node is None or not node.symbol_tree:
            return None
        for symbol in flatten_symbols(node.symbol_tree):
            if build_symbol_id(file_path, symbol) == symbol_id:
                return symbol
        return None

    # --- Semantic edges ---

    def semantic_edges(self) -> List[Edge]:
        return list(self._semantic_edges.values())

    def replace_semantic_edges(self, touched_source_ids: Set[str], edges: Iterable[Edge]) -> Tuple[int, int]:
        """Scoped replace. Returns (removed, added)."""
        stale = [edge_id for edge_id, edge in self._semantic_edges.items() if edge.source in touched_source_ids]
        for edge_id in stale:
            del self._semantic_edges[edge_id]
        added = 0
        for edge in edges:
            if edge.source not in touched_source_ids:
                logger.warning(f"Ignoring edge {edge.id}: source not owned by this update")
                continue
            self._semantic_edges[edge.id] = edge
            added += 1
        logger.debug(f"Semantic edges: -{len(stale)} +{added} (total {len(self._semantic_edges)})")
        return len(stale), added

    # --- Graph views ---

    def structural_graph(self) -> Tuple[List[GraphNode], List[Edge]]:
        """Flattens the visible tree into nodes and parent -> child links."""
        nodes: List[GraphNode] = []
        links: List[Edge] = []
        if self.root is None:
            return nodes, links

        def add_symbols(owner_id: str, symbols: List[SymbolNode], file_path: str, depth: int):
            for symbol in symbols:
                symbol_id = build_symbol_id(file_path, symbol)
                nodes.append(GraphNode(id=symbol_id, name=symbol.name, kind=symbol.node_kind(),
                                       path=symbol_id, depth=depth))
                links.append(Edge(source=owner_id, target=symbol_id, kind=EdgeKind.STRUCTURAL))
                if symbol.children:
                    add_symbols(symbol_id, symbol.children, file_path, depth + 1)

        def traverse(node: TreeNode, parent_id: Optional[str], depth: int):
            nodes.append(GraphNode(id=node.path, name=node.name, kind=NodeKind(node.kind.value),
                                   path=node.path, depth=depth))
            if parent_id is not None:
                links.append(Edge(source=parent_id, target=node.path, kind=EdgeKind.STRUCTURAL))
            if node.children or node.has_children:
                if node.path in self.expanded_directories and node.children:
                    for child in node.children:
                        traverse(child, node.path, depth + 1)
                else:
                    cluster_id = f"{node.path}{CLUSTER_SUFFIX}"
                    nodes.append(GraphNode(id=cluster_id, name=f"{node.descendant_count} items",
                                           kind=NodeKind.CLUSTER, path=cluster_id, depth=depth + 1))
                    links.append(Edge(source=node.path, target=cluster_id, kind=EdgeKind.STRUCTURAL))
            if node.symbol_tree:
                add_symbols(node.path, node.symbol_tree, node.path, depth + 1)

        traverse(self.root, None, 1)
        return nodes, links

    def graph_links(self, view_mode: Optional[ViewMode] = None) -> List[Edge]:
        mode = view_mode or self.view_mode
        if mode is ViewMode.STRUCTURAL:
            return self.structural_graph()[1]
        return self.semantic_edges()

    def graph_node_ids(self, view_mode: Optional[ViewMode] = None) -> Set[str]:
        mode = view_mode or self.view_mode
        if mode is ViewMode.STRUCTURAL:
            return {node.id for node in self.structural_graph()[0]}
        ids: Set[str] = set()
        for edge in self._semantic_edges.values():
            ids.add(edge.source)
            ids.add(edge.target)
        return ids

    # --- Prompt basket ---

    def add_prompt_item(self, item: PromptItem) -> None:
        self.prompt_items.append(item)

    def remove_prompt_item(self, item_id: str) -> bool:
        before = len(self.prompt_items)
        self.prompt_items = [item for item in self.prompt_items if item.id != item_id]
        return len(self.prompt_items) != before

    def clear_prompt_items(self) -> None:
        self.prompt_items = []
