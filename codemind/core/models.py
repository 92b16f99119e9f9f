# codemind/core/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Set


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class SymbolKind(str, Enum):
    FUNCTION = "function"
    CLASS = "class"
    VARIABLE = "variable"
    ENDPOINT = "api_endpoint"

    @classmethod
    def parse(cls, value: str) -> "SymbolKind":
        """Accepts the wire names plus the short 'endpoint' synonym."""
        if value == "endpoint":
            return cls.ENDPOINT
        return cls(value)


class NodeKind(str, Enum):
    """Every kind of node that can appear in the rendered graph."""
    DIRECTORY = "directory"
    FILE = "file"
    FUNCTION = "function"
    CLASS = "class"
    VARIABLE = "variable"
    ENDPOINT = "api_endpoint"
    CLUSTER = "cluster"
    GHOST_TABLE = "ghost_table"
    GHOST_ENDPOINT = "ghost_endpoint"
    GHOST_SERVICE = "ghost_service"


class EdgeKind(str, Enum):
    IMPORT = "import"
    CALL = "call"
    STRUCTURAL = "structural"


class ExpansionState(str, Enum):
    UNEXPANDED = "unexpanded"
    EXPANDING = "expanding"
    EXPANDED = "expanded"


class ViewMode(str, Enum):
    STRUCTURAL = "structural"
    SEMANTIC = "semantic"


class PromptItemType(str, Enum):
    CODE = "code"
    COMMENT = "comment"
    CONTEXT = "context"


@dataclass(frozen=True)
class PathEntry:
    """One file or directory derived from the flat path list of a load."""
    path: str
    name: str
    kind: EntryKind

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


@dataclass
class SymbolNode:
    """A function/class/variable/endpoint reported by the analysis collaborator."""
    id: str
    name: str
    kind: SymbolKind
    description: str = ""
    snippet: str = ""
    children: List['SymbolNode'] = field(default_factory=list)

    def node_kind(self) -> NodeKind:
        return NodeKind(self.kind.value)


@dataclass
class TreeNode:
    """A materialized entry of the exploration tree."""
    id: str
    name: str
    kind: EntryKind
    path: str
    has_children: bool = False
    descendant_count: int = 0
    # None until the node has been expanded
    children: Optional[List['TreeNode']] = None
    expansion: ExpansionState = ExpansionState.UNEXPANDED
    symbol_tree: Optional[List[SymbolNode]] = None

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    def walk(self):
        """Yields this node and every materialized descendant, depth-first."""
        stack: List[TreeNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            if node.children:
                stack.extend(reversed(node.children))


@dataclass(frozen=True)
class Edge:
    """A directed link between two graph node ids."""
    source: str
    target: str
    kind: EdgeKind

    @property
    def id(self) -> str:
        if self.kind is EdgeKind.STRUCTURAL:
            return f"{self.source}-->{self.target}"
        return f"{self.kind.value}:{self.source}-->{self.target}"


@dataclass(frozen=True)
class GraphNode:
    """Flattened node of the structural graph view."""
    id: str
    name: str
    kind: NodeKind
    path: str
    depth: int


@dataclass
class FlowPath:
    """Result of a shortest-path query. Both lists empty means source == target."""
    node_ids: List[str] = field(default_factory=list)
    link_ids: List[str] = field(default_factory=list)

    @property
    def is_trivial(self) -> bool:
        return not self.node_ids and not self.link_ids


@dataclass
class SemanticLinkResult:
    edges: List[Edge]
    touched_source_ids: Set[str]


@dataclass
class PromptItem:
    id: str
    title: str
    content: str
    type: PromptItemType = PromptItemType.CODE


@dataclass
class LayoutState:
    """Cached node positions for one graph shape."""
    graph_hash: str
    positions: Dict[str, Dict[str, float]] = field(default_factory=dict)
