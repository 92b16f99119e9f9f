# codemind/core/call_graph.py
"""
Lexical call extraction and the symbol index used to attribute calls.

This is a heuristic over ``identifier(`` occurrences, not a parser: member
calls (``obj.fn(``) are skipped and a fixed set of keywords and globals is
ignored. Edge counts in the tests depend on exactly this behavior.
"""
import re
from typing import Dict, Iterable, List, Optional

from .models import SymbolNode, TreeNode

CALL_PATTERN = re.compile(r"\b([A-Za-z_$][\w$]*)\s*\(", re.ASCII)

IGNORED_CALLS = frozenset({
    "if", "for", "while", "switch", "catch", "function", "class", "return",
    "import", "export", "await", "new", "super", "this", "typeof",
    "console", "setTimeout", "setInterval", "clearTimeout", "clearInterval",
})

SymbolIndex = Dict[str, List[str]]


def extract_call_identifiers(content: str) -> List[str]:
    identifiers: List[str] = []
    for match in CALL_PATTERN.finditer(content):
        name = match.group(1)
        if not name or name in IGNORED_CALLS:
            continue
        start = match.start(1)
        if start > 0 and content[start - 1] == ".":
            continue
        identifiers.append(name)
    return identifiers


def build_symbol_id(file_path: str, symbol: SymbolNode) -> str:
    return f"{file_path}#{symbol.name}"


def flatten_symbols(symbols: Iterable[SymbolNode]) -> List[SymbolNode]:
    """Depth-first, parents before their children."""
    result: List[SymbolNode] = []

    def visit(node: SymbolNode):
        result.append(node)
        for child in node.children:
            visit(child)

    for symbol in symbols:
        visit(symbol)
    return result


def build_symbol_index(nodes: Iterable[TreeNode]) -> SymbolIndex:
    """Maps symbol name -> ids of every symbol with that name across all analyzed files."""
    index: SymbolIndex = {}
    for node in nodes:
        if not node.symbol_tree:
            continue
        for symbol in flatten_symbols(node.symbol_tree):
            symbol_id = build_symbol_id(node.path, symbol)
            ids = index.setdefault(symbol.name, [])
            if symbol_id not in ids:
                ids.append(symbol_id)
    return index


def resolve_call_targets(name: str, index: SymbolIndex, caller_id: Optional[str] = None) -> List[str]:
    """Exact-name lookup. The caller itself is never a target."""
    return [target for target in index.get(name, []) if target != caller_id]
