# codemind/core/import_resolver.py
"""
Lexical import resolution against the path set of the current load.

Only relative (``./``, ``../``) and root-relative (``/``) specifiers can
resolve. Bare package names are external dependencies and never become edges.
"""
import re
from typing import AbstractSet, List, Optional
from loguru import logger

IMPORT_PATTERNS = [
    # import x from '...', import { a } from "..."
    re.compile(r"""import\s+(?:[^'"]+\s+from\s+)?['"]([^'"]+)['"]"""),
    # import '...'
    re.compile(r"""import\s*['"]([^'"]+)['"]"""),
    # require('...')
    re.compile(r"""require\(\s*['"]([^'"]+)['"]\s*\)"""),
    # import('...')
    re.compile(r"""import\(\s*['"]([^'"]+)['"]\s*\)"""),
]

# Probe order is significant: the first candidate present wins.
FILE_EXTENSIONS = ("", ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".mts", ".cts", ".json")


def extract_import_specifiers(content: str) -> List[str]:
    """Raw specifiers in pattern order. May contain duplicates across forms."""
    specifiers: List[str] = []
    for pattern in IMPORT_PATTERNS:
        for match in pattern.finditer(content):
            if match.group(1):
                specifiers.append(match.group(1))
    return specifiers


def normalize_path(path: str) -> str:
    """Collapses ``.`` and ``..`` segments. ``..`` above the root is dropped."""
    resolved: List[str] = []
    for part in path.split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            if resolved:
                resolved.pop()
            continue
        resolved.append(part)
    return "/".join(resolved)


def dirname(path: str) -> str:
    parts = path.split("/")
    parts.pop()
    return "/".join(parts)


def resolve_import_target(source_path: str, specifier: str, known_paths: AbstractSet[str]) -> Optional[str]:
    """Resolves one specifier to a known file path, or None when it cannot."""
    if not specifier or specifier.startswith("http"):
        return None
    if specifier.startswith("/"):
        raw_path = specifier[1:]
    elif specifier.startswith("."):
        raw_path = normalize_path(f"{dirname(source_path)}/{specifier}")
    else:
        return None

    for ext in FILE_EXTENSIONS:
        candidate = f"{raw_path}{ext}"
        if candidate in known_paths:
            return candidate
    for ext in FILE_EXTENSIONS:
        candidate = f"{raw_path}/index{ext}"
        if candidate in known_paths:
            return candidate

    logger.trace(f"Unresolved import '{specifier}' from {source_path}")
    return None


def resolve_imports(source_path: str, content: str, known_paths: AbstractSet[str]) -> List[str]:
    """Resolved targets of every import in ``content``, de-duplicated by target, first-seen order."""
    targets: List[str] = []
    seen = set()
    for specifier in extract_import_specifiers(content):
        target = resolve_import_target(source_path, specifier, known_paths)
        if target is not None and target not in seen:
            seen.add(target)
            targets.append(target)
    return targets
