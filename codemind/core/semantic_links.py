# codemind/core/semantic_links.py
from typing import AbstractSet, List, Optional, Set
from loguru import logger

from .models import Edge, EdgeKind, SemanticLinkResult, SymbolNode
from .import_resolver import resolve_imports
from .call_graph import (
    SymbolIndex,
    build_symbol_id,
    extract_call_identifiers,
    flatten_symbols,
    resolve_call_targets,
)


def _call_edges(source_id: str, text: str, symbol_index: SymbolIndex) -> List[Edge]:
    targets: List[str] = []
    seen: Set[str] = set()
    for name in extract_call_identifiers(text):
        for target in resolve_call_targets(name, symbol_index, caller_id=source_id):
            if target not in seen:
                seen.add(target)
                targets.append(target)
    return [Edge(source=source_id, target=target, kind=EdgeKind.CALL) for target in targets]


def build_semantic_links_for_file(
    source_path: str,
    content: str,
    known_paths: AbstractSet[str],
    symbol_index: SymbolIndex,
    symbol_tree: Optional[List[SymbolNode]] = None,
) -> SemanticLinkResult:
    """
    Computes the import and call edges contributed by one file.

    ``touched_source_ids`` holds the file id and the id of every symbol of the
    file. When merging, only edges whose source is in that set may be replaced.
    """
    edges: List[Edge] = []
    touched: Set[str] = {source_path}

    for target in resolve_imports(source_path, content, known_paths):
        edges.append(Edge(source=source_path, target=target, kind=EdgeKind.IMPORT))

    if symbol_tree:
        for symbol in flatten_symbols(symbol_tree):
            symbol_id = build_symbol_id(source_path, symbol)
            touched.add(symbol_id)
            if symbol.snippet:
                edges.extend(_call_edges(symbol_id, symbol.snippet, symbol_index))
    else:
        edges.extend(_call_edges(source_path, content, symbol_index))

    logger.debug(f"Built {len(edges)} semantic edges for {source_path} ({len(touched)} touched ids)")
    return SemanticLinkResult(edges=edges, touched_source_ids=touched)
