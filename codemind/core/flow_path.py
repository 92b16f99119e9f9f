# codemind/core/flow_path.py
from typing import AbstractSet, Dict, Iterable, List, Optional

import networkx as nx
from loguru import logger

from .models import Edge, FlowPath


def build_link_graph(edges: Iterable[Edge]) -> nx.MultiGraph:
    """Undirected multigraph keyed by link id, neighbors kept in edge registration order."""
    graph = nx.MultiGraph()
    for edge in edges:
        graph.add_edge(edge.source, edge.target, key=edge.id)
    return graph


def build_flow_path(
    source_id: str,
    target_id: str,
    edges: Iterable[Edge],
    known_ids: AbstractSet[str],
) -> Optional[FlowPath]:
    """
    Shortest hop-count path between two node ids, treating edges as undirected.

    Returns None when either id is unknown or the target is unreachable, and an
    empty FlowPath when source and target are the same node. The search is a
    single-source BFS visiting neighbors in edge registration order, so ties
    resolve deterministically; between two nodes the first registered link wins.
    """
    if source_id not in known_ids or target_id not in known_ids:
        return None
    if source_id == target_id:
        return FlowPath(node_ids=[], link_ids=[])

    graph = build_link_graph(edges)
    if source_id not in graph or target_id not in graph:
        logger.debug(f"No flow path between {source_id} and {target_id}")
        return None

    # Single-source BFS; each node keeps the parent that discovered it first
    previous: Dict[str, str] = {}
    for node, parent in nx.bfs_predecessors(graph, source_id):
        previous[node] = parent
        if node == target_id:
            break

    if target_id not in previous:
        logger.debug(f"No flow path between {source_id} and {target_id}")
        return None

    node_ids: List[str] = [target_id]
    link_ids: List[str] = []
    current = target_id
    while current != source_id:
        parent = previous[current]
        link_ids.append(next(iter(graph[parent][current])))
        node_ids.append(parent)
        current = parent
    node_ids.reverse()
    link_ids.reverse()
    return FlowPath(node_ids=node_ids, link_ids=link_ids)
