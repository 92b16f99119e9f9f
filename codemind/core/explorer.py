# codemind/core/explorer.py
"""
The consumer-facing API of one exploration: load a project, expand directories,
analyze files, search for relevant files, query flow paths, and save/restore
sessions.

All graph algorithms run synchronously over the GraphStore. The only awaits are
content fetches, analysis calls and session storage. Every write to the store
that follows such an await goes through ``self._lock`` so updates are applied
one at a time. Results that belong to an earlier load are dropped.
"""
import asyncio
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union
from loguru import logger

from ..config.paths import get_cache_db_path, get_sessions_dir, get_user_data_dir
from ..config.schema import AppConfig
from ..services.analysis import CachedAnalysisService, CodeAnalysisService, HttpAnalysisService
from ..services.async_utils import InFlightRegistry, run_in_background
from ..services.cache import ContentCache, SqliteCacheStorage
from ..services.content import ContentFetcher, GitHubContentFetcher, LocalContentFetcher
from ..services.github import GITHUB_SOURCE_PREFIX, GitHubClient, github_source_identifier, parse_github_url
from ..services.session_store import FileSessionStore, HttpSessionStore, SessionStore
from .errors import (
    CodeMindError,
    ContentFetchError,
    NotModifiedWithoutCacheError,
    SessionRestoreError,
    SessionStoreError,
    UnknownNodeError,
)
from .flow_path import build_flow_path
from .fs_scanner import LocalPathScanner
from .graph_store import GraphStore
from .models import FlowPath, LayoutState, PromptItem, PromptItemType, SymbolNode, TreeNode, ViewMode
from .payloads import SessionSnapshot
from .path_indexer import PathIndexer
from .semantic_links import build_semantic_links_for_file
from .session_codec import (
    LOCAL_SOURCE,
    AutoRestorePolicy,
    build_snapshot,
    compute_graph_hash,
    compute_project_signature,
    default_restore_policy,
    restore_snapshot,
)

GOAL_TITLE = "Goal"


def _new_item_id() -> str:
    return uuid.uuid4().hex


class Explorer:

    def __init__(
        self,
        analysis: CodeAnalysisService,
        session_store: Optional[SessionStore] = None,
        github: Optional[GitHubClient] = None,
        restore_policy: Optional[AutoRestorePolicy] = None,
        config: Optional[AppConfig] = None,
    ):
        self.config = config or AppConfig()
        self.analysis = analysis
        self.session_store = session_store
        self.github = github
        self.restore_policy = restore_policy or default_restore_policy
        self.store = GraphStore()
        self.fetcher: Optional[ContentFetcher] = None
        self._signature: Optional[str] = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._analyzing = InFlightRegistry()

    # --- Loading ---

    async def load_paths(
        self,
        paths: Iterable[str],
        source_identifier: str,
        fetcher: Optional[ContentFetcher] = None,
        root_name: str = "root",
    ) -> TreeNode:
        """
        Indexes a flat path list and replaces the current exploration with it.
        Afterwards the last saved session is restored when its signature matches.
        """
        path_list = list(paths)
        indexer = await run_in_background(PathIndexer, path_list)
        async with self._lock:
            self._generation += 1
            self.store.reset(indexer, root_name, source_identifier)
            self.fetcher = fetcher
            self._analyzing = InFlightRegistry()
            self._signature = compute_project_signature(indexer.file_paths, source_identifier)
        await self._auto_restore()
        return self.store.root

    async def load_local(self, root: Union[str, Path], ignore_patterns: Optional[List[str]] = None) -> TreeNode:
        root_path = Path(root).resolve()
        patterns = self.config.ignore_patterns if ignore_patterns is None else ignore_patterns
        scanner = LocalPathScanner(root_path, patterns)
        paths = await run_in_background(scanner.scan_paths)
        return await self.load_paths(paths, LOCAL_SOURCE, LocalContentFetcher(root_path), root_path.name)

    async def load_github(self, url: str, ref: Optional[str] = None) -> TreeNode:
        if self.github is None:
            raise CodeMindError("No GitHub client configured")
        owner, repo = parse_github_url(url)
        paths = await self.github.fetch_tree(owner, repo, ref)
        fetcher = GitHubContentFetcher(self.github, owner, repo)
        return await self.load_paths(paths, github_source_identifier(owner, repo), fetcher, repo)

    async def _auto_restore(self) -> Optional[str]:
        if self.session_store is None or self._signature is None:
            return None
        session_id = self.restore_policy.session_to_restore(self._signature, self.session_store.last_session())
        if session_id is None:
            return None
        try:
            data = await self.session_store.open(session_id)
            await self.restore(data)
        except (SessionStoreError, SessionRestoreError) as e:
            logger.warning(f"Auto-restore of session {session_id} skipped: {e}")
            return None
        logger.info(f"Auto-restored session {session_id}")
        return session_id

    def project_signature(self, paths: Optional[Iterable[str]] = None, source_identifier: Optional[str] = None) -> str:
        """Signature of the given load, or of the current one when called without arguments."""
        if paths is None and source_identifier is None and self._signature is not None:
            return self._signature
        if paths is None:
            paths = self.store.known_file_paths()
        return compute_project_signature(paths, source_identifier or self.store.source_identifier or LOCAL_SOURCE)

    # --- Expansion ---

    async def expand(self, path: str) -> Optional[List[TreeNode]]:
        """
        Materializes the children of a directory. Returns None when the
        directory is already expanded or its expansion is in flight.
        """
        async with self._lock:
            node = self.store.begin_expansion(path)
            generation = self._generation
            indexer = self.store.indexer
        if node is None:
            return None
        try:
            children = await run_in_background(indexer.build_child_nodes, path)
        except BaseException:
            self.store.abort_expansion(path)
            raise
        async with self._lock:
            if generation != self._generation:
                logger.debug(f"Dropping expansion of {path!r} from a previous load")
                return None
            self.store.finish_expansion(path, children)
        logger.debug(f"Expanded {path!r}: {len(children)} children")
        return children

    def toggle_directory(self, path: str) -> bool:
        return self.store.toggle_directory(path)

    def set_view_mode(self, view_mode: ViewMode) -> None:
        self.store.view_mode = view_mode

    # --- Analysis ---

    async def _content_for(self, path: str) -> str:
        cached = self.store.file_contents.get(path)
        if cached is not None:
            return cached
        if self.fetcher is None:
            raise ContentFetchError(f"No content source for {path}")
        generation = self._generation
        content = await self.fetcher.fetch(path)
        if generation == self._generation:
            self.store.file_contents[path] = content
        return content

    def _link_file(self, path: str, content: str, symbols: Optional[List[SymbolNode]]) -> None:
        result = build_semantic_links_for_file(
            path, content, self.store.known_file_paths(), self.store.symbol_index(), symbols
        )
        self.store.replace_semantic_edges(result.touched_source_ids, result.edges)

    async def analyze_selected(self, path: str) -> Optional[List[SymbolNode]]:
        """
        Selects a file, fetches its content, attaches its symbol tree and
        re-resolves the file's semantic edges.

        Returns None when an analysis of the same file is already in flight.
        Fetch and analysis failures propagate and leave the node unanalyzed.
        """
        if self.store.indexer is None or not self.store.indexer.is_file(path):
            raise UnknownNodeError(f"Not a known file: {path!r}")
        self.store.selected_node_id = path
        if not self._analyzing.claim(path):
            return None
        generation = self._generation
        try:
            content = await self._content_for(path)
            node = self.store.ensure_materialized(path)
            symbols = node.symbol_tree
            if symbols is None:
                symbols = await self.analysis.analyze(content, path)
            async with self._lock:
                if generation != self._generation:
                    logger.info(f"Dropping analysis of {path} from a previous load")
                    return None
                node = self.store.attach_symbols(path, symbols)
                self._link_file(path, content, node.symbol_tree)
        finally:
            self._analyzing.release(path)
        logger.info(f"Analyzed {path}: {len(symbols)} top-level symbols")
        return node.symbol_tree

    async def ingest_contents(self, contents: Dict[str, str]) -> int:
        """Registers already-read file contents and links them. Unknown paths are skipped."""
        known = self.store.known_file_paths()
        accepted = 0
        async with self._lock:
            for path, content in contents.items():
                if path not in known:
                    logger.debug(f"Ignoring content for unknown path {path!r}")
                    continue
                self.store.file_contents[path] = content
                accepted += 1
        await self.refresh_semantic_links()
        return accepted

    async def load_all_contents(self) -> int:
        """
        Fetches every known file. Files that cannot be read, including a 304
        without a cached body, are logged and left out.
        """
        contents: Dict[str, str] = {}
        for path in sorted(self.store.known_file_paths()):
            try:
                contents[path] = await self._content_for(path)
            except (ContentFetchError, NotModifiedWithoutCacheError) as e:
                logger.warning(f"Skipping {path}: {e}")
        return await self.ingest_contents(contents)

    async def refresh_semantic_links(self) -> int:
        """Re-resolves the edges of every file with known content. Returns the edge count."""
        async with self._lock:
            for path in sorted(self.store.file_contents):
                node = self.store.node(path)
                symbols = node.symbol_tree if node is not None else None
                self._link_file(path, self.store.file_contents[path], symbols)
            return len(self.store.semantic_edges())

    # --- Relevance ---

    async def find_relevant(self, query: str) -> List[str]:
        paths = sorted(self.store.known_file_paths())
        relevant = await self.analysis.find_relevant(query, paths)
        known = set(paths)
        highlighted = [p for p in relevant if p in known]
        async with self._lock:
            self.store.highlighted_paths = highlighted
            self.store.add_prompt_item(
                PromptItem(id=_new_item_id(), title=GOAL_TITLE, content=query, type=PromptItemType.CONTEXT)
            )
        logger.info(f"Relevance search matched {len(highlighted)} of {len(paths)} files")
        return highlighted

    # --- Queries ---

    def query(self, source_id: str, target_id: str, view_mode: Optional[ViewMode] = None) -> Optional[FlowPath]:
        """Shortest path over the active (or given) view; None when unreachable."""
        return build_flow_path(
            source_id,
            target_id,
            self.store.graph_links(view_mode),
            self.store.graph_node_ids(view_mode),
        )

    # --- Prompt basket ---

    def add_prompt_item(self, content: str, title: str = "", item_type: PromptItemType = PromptItemType.COMMENT) -> PromptItem:
        item = PromptItem(id=_new_item_id(), title=title, content=content, type=item_type)
        self.store.add_prompt_item(item)
        return item

    def add_symbol_to_prompt(self, symbol_id: str) -> PromptItem:
        symbol = self.store.find_symbol(symbol_id)
        if symbol is None:
            raise UnknownNodeError(f"Unknown symbol: {symbol_id!r}")
        return self.add_prompt_item(symbol.snippet or symbol.description, symbol_id, PromptItemType.CODE)

    # --- Layout ---

    def _current_graph_hash(self) -> str:
        links = self.store.graph_links()
        return compute_graph_hash(self.store.graph_node_ids(), [link.id for link in links])

    def set_layout(self, positions: Dict[str, Dict[str, float]]) -> LayoutState:
        self.store.layout = LayoutState(graph_hash=self._current_graph_hash(), positions=dict(positions))
        return self.store.layout

    def layout_for_current_graph(self) -> Optional[Dict[str, Dict[str, float]]]:
        layout = self.store.layout
        if layout is None or layout.graph_hash != self._current_graph_hash():
            return None
        known = self.store.graph_node_ids()
        return {node_id: pos for node_id, pos in layout.positions.items() if node_id in known}

    # --- Sessions ---

    def snapshot(self) -> SessionSnapshot:
        return build_snapshot(self.store)

    def _fetcher_for_source(self, source_identifier: Optional[str]) -> Optional[ContentFetcher]:
        if self.github is None or not source_identifier or not source_identifier.startswith(GITHUB_SOURCE_PREFIX):
            return None
        owner, repo = parse_github_url(source_identifier[len(GITHUB_SOURCE_PREFIX):])
        return GitHubContentFetcher(self.github, owner, repo)

    async def restore(
        self,
        data: Union[SessionSnapshot, Dict[str, Any], str],
        fetcher: Optional[ContentFetcher] = None,
    ) -> SessionSnapshot:
        """
        Replaces the exploration with a saved session, path index included.

        The current content source is kept when the session comes from the same
        source. Otherwise a GitHub source is reopened through the configured client;
        pass ``fetcher`` to read a restored local project.
        """
        async with self._lock:
            previous_source = self.store.source_identifier
            snapshot = restore_snapshot(self.store, data)
            self._generation += 1
            self._analyzing = InFlightRegistry()
            source = self.store.source_identifier
            if fetcher is not None:
                self.fetcher = fetcher
            elif source != previous_source:
                self.fetcher = self._fetcher_for_source(source)
            indexer = self.store.indexer
            self._signature = (
                compute_project_signature(indexer.file_paths, source) if indexer is not None and source else None
            )
        return snapshot

    def _require_session_store(self) -> SessionStore:
        if self.session_store is None:
            raise SessionStoreError("No session store configured")
        return self.session_store

    async def save_session(self, session_id: Optional[str] = None) -> str:
        store = self._require_session_store()
        payload = self.snapshot().model_dump(mode="json", by_alias=True)
        saved_id = await store.save(payload, session_id)
        if self._signature is not None:
            store.remember(saved_id, self._signature)
        return saved_id

    async def open_session(self, session_id: str, fetcher: Optional[ContentFetcher] = None) -> SessionSnapshot:
        data = await self._require_session_store().open(session_id)
        return await self.restore(data, fetcher)


def create_explorer(config: AppConfig) -> Explorer:
    """Wires the HTTP collaborators, the sqlite cache and the configured session store."""
    cache = ContentCache(SqliteCacheStorage(get_cache_db_path()))
    analysis = CachedAnalysisService(
        HttpAnalysisService(config.ai_base_url, timeout=config.ai_timeout_s),
        cache,
        analysis_ttl_ms=config.analysis_cache_ttl_ms,
        relevance_ttl_ms=config.relevance_cache_ttl_ms,
    )
    github = GitHubClient(cache, token=config.github_token, api_url=config.github_api_url,
                          timeout=config.github_timeout_s)
    if config.session_api_url:
        session_store: SessionStore = HttpSessionStore(config.session_api_url, get_user_data_dir())
    else:
        session_store = FileSessionStore(get_sessions_dir())
    return Explorer(analysis, session_store=session_store, github=github, config=config)
