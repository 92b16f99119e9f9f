# codemind/core/payloads.py
"""
Wire models for analysis responses and session snapshots.

Keys are camelCase on the wire (``codeSnippet``, ``schemaVersion``) and
snake_case in Python. The domain dataclasses in ``models`` are converted to
and from these models at the service and codec boundaries.
"""
from typing import Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import (
    Edge,
    EdgeKind,
    EntryKind,
    ExpansionState,
    LayoutState,
    PromptItem,
    PromptItemType,
    SymbolKind,
    SymbolNode,
    TreeNode,
    ViewMode,
)


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SymbolPayload(WireModel):
    id: str = ""
    name: str
    type: str
    description: str = ""
    code_snippet: str = ""
    children: Optional[List["SymbolPayload"]] = None


class TreeNodePayload(WireModel):
    id: str
    name: str
    type: EntryKind
    path: str
    has_children: bool = False
    descendant_count: int = 0
    children: Optional[List["TreeNodePayload"]] = None
    code_structure: Optional[List[SymbolPayload]] = None


class EdgePayload(WireModel):
    source: str
    target: str
    kind: EdgeKind


class PromptItemPayload(WireModel):
    id: str
    title: str
    content: str
    type: PromptItemType = PromptItemType.CODE


class PositionPayload(WireModel):
    x: float
    y: float


class LayoutPayload(WireModel):
    graph_hash: str
    positions: Dict[str, PositionPayload] = Field(default_factory=dict)


class GraphStatePayload(WireModel):
    root_node: Optional[TreeNodePayload] = None
    highlighted_paths: List[str] = Field(default_factory=list)
    expanded_directories: List[str] = Field(default_factory=list)
    semantic_links: List[EdgePayload] = Field(default_factory=list)
    graph_view_mode: ViewMode = ViewMode.STRUCTURAL
    # Flat path list and source of the load, so the index can be rebuilt on restore
    all_file_paths: Optional[List[str]] = None
    source_identifier: Optional[str] = None


class SelectionPayload(WireModel):
    selected_node_id: Optional[str] = None


class SessionSnapshot(WireModel):
    schema_version: int
    graph: GraphStatePayload = Field(default_factory=GraphStatePayload)
    selection: SelectionPayload = Field(default_factory=SelectionPayload)
    prompts: List[PromptItemPayload] = Field(default_factory=list)
    layout: Optional[LayoutPayload] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


# --- Symbols ---

def symbol_from_payload(payload: SymbolPayload, file_path: str) -> Optional[SymbolNode]:
    """Converts one analysis symbol; ids are rebuilt as ``file#name``. Unknown kinds are dropped."""
    try:
        kind = SymbolKind.parse(payload.type)
    except ValueError:
        logger.warning(f"Dropping symbol {payload.name!r} in {file_path}: unknown type {payload.type!r}")
        return None
    children = symbols_from_payload(payload.children or [], file_path)
    return SymbolNode(
        id=f"{file_path}#{payload.name}",
        name=payload.name,
        kind=kind,
        description=payload.description,
        snippet=payload.code_snippet,
        children=children,
    )


def symbols_from_payload(payloads: List[SymbolPayload], file_path: str) -> List[SymbolNode]:
    symbols = []
    for payload in payloads:
        symbol = symbol_from_payload(payload, file_path)
        if symbol is not None:
            symbols.append(symbol)
    return symbols


def symbol_to_payload(symbol: SymbolNode) -> SymbolPayload:
    return SymbolPayload(
        id=symbol.id,
        name=symbol.name,
        type=symbol.kind.value,
        description=symbol.description,
        code_snippet=symbol.snippet,
        children=[symbol_to_payload(child) for child in symbol.children] or None,
    )


# --- Tree ---

def encode_tree(node: TreeNode) -> TreeNodePayload:
    return TreeNodePayload(
        id=node.id,
        name=node.name,
        type=node.kind,
        path=node.path,
        has_children=node.has_children,
        descendant_count=node.descendant_count,
        children=[encode_tree(child) for child in node.children] if node.children is not None else None,
        code_structure=[symbol_to_payload(s) for s in node.symbol_tree] if node.symbol_tree is not None else None,
    )


def decode_tree(payload: TreeNodePayload) -> TreeNode:
    children = [decode_tree(child) for child in payload.children] if payload.children is not None else None
    symbol_tree = (
        symbols_from_payload(payload.code_structure, payload.path)
        if payload.code_structure is not None else None
    )
    return TreeNode(
        id=payload.id,
        name=payload.name,
        kind=payload.type,
        path=payload.path,
        has_children=payload.has_children,
        descendant_count=payload.descendant_count,
        children=children,
        expansion=ExpansionState.EXPANDED if children is not None else ExpansionState.UNEXPANDED,
        symbol_tree=symbol_tree,
    )


# --- Misc ---

def edge_to_payload(edge: Edge) -> EdgePayload:
    return EdgePayload(source=edge.source, target=edge.target, kind=edge.kind)


def edge_from_payload(payload: EdgePayload) -> Edge:
    return Edge(source=payload.source, target=payload.target, kind=payload.kind)


def prompt_item_to_payload(item: PromptItem) -> PromptItemPayload:
    return PromptItemPayload(id=item.id, title=item.title, content=item.content, type=item.type)


def prompt_item_from_payload(payload: PromptItemPayload) -> PromptItem:
    return PromptItem(id=payload.id, title=payload.title, content=payload.content, type=payload.type)


def layout_to_payload(layout: LayoutState) -> LayoutPayload:
    return LayoutPayload(
        graph_hash=layout.graph_hash,
        positions={k: PositionPayload(x=v["x"], y=v["y"]) for k, v in layout.positions.items()},
    )


def layout_from_payload(payload: LayoutPayload) -> LayoutState:
    return LayoutState(
        graph_hash=payload.graph_hash,
        positions={k: {"x": p.x, "y": p.y} for k, p in payload.positions.items()},
    )
