# codemind/core/session_codec.py
import json
from typing import Any, Dict, Iterable, Optional, Set, Union
from loguru import logger
from pydantic import ValidationError

from ..services.cache import hash_content
from .errors import SessionFormatError, SessionSchemaVersionError
from .graph_store import GraphStore
from .path_indexer import PathIndexer
from .payloads import (
    GraphStatePayload,
    SelectionPayload,
    SessionSnapshot,
    decode_tree,
    edge_from_payload,
    edge_to_payload,
    encode_tree,
    layout_from_payload,
    layout_to_payload,
    prompt_item_from_payload,
    prompt_item_to_payload,
)

SESSION_SCHEMA_VERSION = 1

LOCAL_SOURCE = "local"


def compute_project_signature(paths: Iterable[str], source_identifier: str) -> str:
    """Order-independent digest of a load: ``hash(source::sorted(paths)|joined)``."""
    return hash_content(f"{source_identifier}::{'|'.join(sorted(paths))}")


def compute_graph_hash(node_ids: Iterable[str], link_ids: Iterable[str]) -> str:
    """Shape key for cached layouts."""
    return hash_content(f"{','.join(sorted(node_ids))}::{','.join(sorted(link_ids))}")


def build_snapshot(store: GraphStore) -> SessionSnapshot:
    return SessionSnapshot(
        schema_version=SESSION_SCHEMA_VERSION,
        graph=GraphStatePayload(
            root_node=encode_tree(store.root) if store.root is not None else None,
            highlighted_paths=list(store.highlighted_paths),
            expanded_directories=sorted(store.expanded_directories),
            semantic_links=[edge_to_payload(edge) for edge in store.semantic_edges()],
            graph_view_mode=store.view_mode,
            all_file_paths=sorted(store.indexer.file_paths) if store.indexer is not None else None,
            source_identifier=store.source_identifier,
        ),
        selection=SelectionPayload(selected_node_id=store.selected_node_id),
        prompts=[prompt_item_to_payload(item) for item in store.prompt_items],
        layout=layout_to_payload(store.layout) if store.layout is not None else None,
    )


def parse_snapshot(data: Union[SessionSnapshot, Dict[str, Any], str]) -> SessionSnapshot:
    """
    Validates a snapshot before anything is restored.

    Raises SessionSchemaVersionError for an unsupported ``schemaVersion`` and
    SessionFormatError for anything else that does not validate.
    """
    if isinstance(data, SessionSnapshot):
        version = data.schema_version
        if version != SESSION_SCHEMA_VERSION:
            raise SessionSchemaVersionError(version, SESSION_SCHEMA_VERSION)
        return data
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError as e:
            raise SessionFormatError(f"Session payload is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SessionFormatError(f"Session payload must be an object, got {type(data).__name__}")

    version = data.get("schemaVersion", data.get("schema_version"))
    if version != SESSION_SCHEMA_VERSION:
        raise SessionSchemaVersionError(version, SESSION_SCHEMA_VERSION)
    try:
        return SessionSnapshot.model_validate(data)
    except ValidationError as e:
        raise SessionFormatError(f"Invalid session payload: {e}") from e


def restore_snapshot(store: GraphStore, data: Union[SessionSnapshot, Dict[str, Any], str]) -> SessionSnapshot:
    """Fully replaces the store's exploration state. Nothing changes if validation fails."""
    snapshot = parse_snapshot(data)
    graph = snapshot.graph
    store.replace_state(
        root=decode_tree(graph.root_node) if graph.root_node is not None else None,
        expanded_directories=graph.expanded_directories,
        highlighted_paths=graph.highlighted_paths,
        edges=[edge_from_payload(edge) for edge in graph.semantic_links],
        view_mode=graph.graph_view_mode,
        selected_node_id=snapshot.selection.selected_node_id,
        prompt_items=[prompt_item_from_payload(item) for item in snapshot.prompts],
        layout=layout_from_payload(snapshot.layout) if snapshot.layout is not None else None,
        indexer=PathIndexer(graph.all_file_paths) if graph.all_file_paths is not None else None,
        source_identifier=graph.source_identifier,
    )
    logger.info(
        f"Session restored: {len(graph.semantic_links)} semantic links, "
        f"{len(graph.expanded_directories)} expanded directories, {len(snapshot.prompts)} prompt items"
    )
    return snapshot


class AutoRestorePolicy:
    """
    Decides whether a freshly loaded project should be restored from the last
    saved session. Each signature is attempted at most once per policy instance.
    """

    def __init__(self):
        self._attempted: Set[str] = set()

    def session_to_restore(self, signature: str, last_session: Optional[tuple]) -> Optional[str]:
        if signature in self._attempted:
            logger.debug("Auto-restore already attempted for this project signature.")
            return None
        self._attempted.add(signature)
        if last_session is None:
            return None
        session_id, saved_signature = last_session
        if saved_signature != signature:
            logger.debug(f"Last session {session_id} belongs to a different project, not restoring.")
            return None
        return session_id


# Shared for the lifetime of the process
default_restore_policy = AutoRestorePolicy()
