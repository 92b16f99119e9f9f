# tests/core/test_explorer.py
import asyncio

import pytest

from codemind.config.schema import AppConfig
from codemind.core.errors import (
    AnalysisError,
    CodeMindError,
    ContentFetchError,
    ExpansionError,
    NotModifiedWithoutCacheError,
    UnknownNodeError,
)
from codemind.core.explorer import Explorer, create_explorer
from codemind.core.models import ExpansionState, PromptItemType, SymbolKind, SymbolNode, ViewMode
from codemind.core.session_codec import AutoRestorePolicy, compute_project_signature
from codemind.services.analysis import CachedAnalysisService
from codemind.services.session_store import FileSessionStore, HttpSessionStore

FILES = {
    "src/index.ts": "import { format } from './utils/helpers'\nexport function main() { return format(1) }\n",
    "src/utils/helpers.ts": "export function format(x) { return pad(String(x)) }\nfunction pad(s) { return s }\n",
    "src/api.ts": "import React from 'react'\nexport const load = () => fetch('/x')\n",
    "README.md": "# demo\n",
}

SYMBOLS = {
    "src/index.ts": [("main", "export function main() { return format(1) }")],
    "src/utils/helpers.ts": [("format", "export function format(x) { return pad(String(x)) }"),
                             ("pad", "function pad(s) { return s }")],
}


class DictFetcher:
    def __init__(self, files, gate=None):
        self.files = files
        self.calls = []
        self.gate = gate

    async def fetch(self, path):
        self.calls.append(path)
        if self.gate is not None:
            await self.gate.wait()
        if path not in self.files:
            raise ContentFetchError(f"Could not read {path}")
        return self.files[path]


class FakeAnalysis:
    def __init__(self, relevant=None, fail=False):
        self.analyzed = []
        self.relevant = relevant or []
        self.fail = fail

    async def analyze(self, content, filename):
        self.analyzed.append(filename)
        if self.fail:
            raise AnalysisError("AI request failed (500).")
        return [SymbolNode(id=name, name=name, kind=SymbolKind.FUNCTION, snippet=snippet)
                for name, snippet in SYMBOLS.get(filename, [])]

    async def find_relevant(self, query, paths):
        if self.fail:
            raise AnalysisError("AI request failed (500).")
        return self.relevant


def _explorer(tmp_path, analysis=None, policy=None):
    return Explorer(
        analysis or FakeAnalysis(),
        session_store=FileSessionStore(tmp_path / "sessions"),
        restore_policy=policy or AutoRestorePolicy(),
    )


async def _loaded(tmp_path, analysis=None, policy=None, fetcher=None):
    explorer = _explorer(tmp_path, analysis, policy)
    await explorer.load_paths(list(FILES), "local", fetcher or DictFetcher(FILES), "demo")
    return explorer


@pytest.mark.anyio
async def test_load_builds_root_and_signature(tmp_path):
    explorer = await _loaded(tmp_path)
    root = explorer.store.root
    assert root.name == "demo"
    assert [c.name for c in root.children] == ["src", "README.md"]
    assert explorer.project_signature() == compute_project_signature(FILES, "local")
    assert explorer.project_signature(list(FILES), "github:o/r") != explorer.project_signature()


@pytest.mark.anyio
async def test_expand_is_deduplicated_while_in_flight(tmp_path):
    explorer = await _loaded(tmp_path)
    first, second = await asyncio.gather(explorer.expand("src"), explorer.expand("src"))
    results = [r for r in (first, second) if r is not None]
    assert len(results) == 1
    assert [c.name for c in results[0]] == ["utils", "api.ts", "index.ts"]
    assert explorer.store.node("src").expansion is ExpansionState.EXPANDED
    assert await explorer.expand("src") is None

    with pytest.raises(ExpansionError):
        await explorer.expand("README.md")


@pytest.mark.anyio
async def test_toggle_directory(tmp_path):
    explorer = await _loaded(tmp_path)
    await explorer.expand("src")
    assert explorer.toggle_directory("src") is False
    assert explorer.toggle_directory("src") is True


@pytest.mark.anyio
async def test_analyze_selected_attaches_symbols_and_links(tmp_path):
    analysis = FakeAnalysis()
    explorer = await _loaded(tmp_path, analysis)

    await explorer.analyze_selected("src/utils/helpers.ts")
    symbols = await explorer.analyze_selected("src/index.ts")

    assert [s.id for s in symbols] == ["src/index.ts#main"]
    assert explorer.store.selected_node_id == "src/index.ts"
    edge_ids = {e.id for e in explorer.store.semantic_edges()}
    assert "import:src/index.ts-->src/utils/helpers.ts" in edge_ids
    assert "call:src/index.ts#main-->src/utils/helpers.ts#format" in edge_ids
    assert "call:src/utils/helpers.ts#format-->src/utils/helpers.ts#pad" in edge_ids

    # Already analyzed: content and symbols are reused
    await explorer.analyze_selected("src/index.ts")
    assert analysis.analyzed == ["src/utils/helpers.ts", "src/index.ts"]


@pytest.mark.anyio
async def test_analyze_rejects_directories_and_unknown_paths(tmp_path):
    explorer = await _loaded(tmp_path)
    with pytest.raises(UnknownNodeError):
        await explorer.analyze_selected("src")
    with pytest.raises(UnknownNodeError):
        await explorer.analyze_selected("nope.ts")


@pytest.mark.anyio
async def test_analysis_failure_leaves_node_unanalyzed(tmp_path):
    explorer = await _loaded(tmp_path, FakeAnalysis(fail=True))
    with pytest.raises(AnalysisError):
        await explorer.analyze_selected("src/index.ts")
    assert explorer.store.node("src/index.ts").symbol_tree is None
    assert explorer.store.semantic_edges() == []


@pytest.mark.anyio
async def test_fetch_failure_propagates(tmp_path):
    explorer = await _loaded(tmp_path, fetcher=DictFetcher({}))
    with pytest.raises(ContentFetchError):
        await explorer.analyze_selected("README.md")


@pytest.mark.anyio
async def test_duplicate_analysis_requests_are_ignored(tmp_path):
    gate = asyncio.Event()
    fetcher = DictFetcher(FILES, gate=gate)
    explorer = await _loaded(tmp_path, fetcher=fetcher)

    first = asyncio.ensure_future(explorer.analyze_selected("src/index.ts"))
    await asyncio.sleep(0)
    assert await explorer.analyze_selected("src/index.ts") is None
    gate.set()
    assert [s.name for s in await first] == ["main"]
    assert fetcher.calls == ["src/index.ts"]


@pytest.mark.anyio
async def test_load_all_contents_links_without_analysis(tmp_path):
    files = dict(FILES, **{"src/broken.ts": None})
    fetcher = DictFetcher({k: v for k, v in files.items() if v is not None})
    explorer = _explorer(tmp_path)
    await explorer.load_paths(list(files), "local", fetcher)

    assert await explorer.load_all_contents() == len(FILES)
    edge_ids = {e.id for e in explorer.store.semantic_edges()}
    assert edge_ids == {"import:src/index.ts-->src/utils/helpers.ts"}


@pytest.mark.anyio
async def test_refresh_picks_up_newly_analyzed_symbols(tmp_path):
    explorer = await _loaded(tmp_path)
    await explorer.ingest_contents({"src/index.ts": FILES["src/index.ts"], "unknown.ts": "x()"})
    assert "call:src/index.ts-->src/utils/helpers.ts#format" not in {e.id for e in explorer.store.semantic_edges()}

    await explorer.analyze_selected("src/utils/helpers.ts")
    await explorer.refresh_semantic_links()
    assert "call:src/index.ts-->src/utils/helpers.ts#format" in {e.id for e in explorer.store.semantic_edges()}


@pytest.mark.anyio
async def test_query_over_semantic_and_structural_views(tmp_path):
    explorer = await _loaded(tmp_path)
    await explorer.analyze_selected("src/utils/helpers.ts")
    await explorer.analyze_selected("src/index.ts")

    flow = explorer.query("src/index.ts#main", "src/utils/helpers.ts#pad", ViewMode.SEMANTIC)
    assert flow.node_ids == ["src/index.ts#main", "src/utils/helpers.ts#format", "src/utils/helpers.ts#pad"]
    assert explorer.query("README.md", "src/index.ts", ViewMode.SEMANTIC) is None

    # Only visible nodes take part in the structural view
    assert explorer.query("README.md", "src/index.ts#main", ViewMode.STRUCTURAL) is None
    await explorer.expand("src")
    structural = explorer.query("README.md", "src/index.ts#main", ViewMode.STRUCTURAL)
    assert structural.node_ids == ["README.md", "", "src", "src/index.ts", "src/index.ts#main"]
    assert structural.link_ids[0] == "-->README.md"
    assert explorer.query("src", "src", ViewMode.STRUCTURAL).is_trivial


@pytest.mark.anyio
async def test_find_relevant_highlights_and_adds_goal(tmp_path):
    explorer = await _loaded(tmp_path, FakeAnalysis(relevant=["src/api.ts", "ghost.ts"]))
    assert await explorer.find_relevant("where do we load data?") == ["src/api.ts"]
    assert explorer.store.highlighted_paths == ["src/api.ts"]
    goal = explorer.store.prompt_items[-1]
    assert (goal.title, goal.content, goal.type) == ("Goal", "where do we load data?", PromptItemType.CONTEXT)


@pytest.mark.anyio
async def test_find_relevant_failure_keeps_highlights(tmp_path):
    explorer = await _loaded(tmp_path, FakeAnalysis(fail=True))
    explorer.store.highlighted_paths = ["README.md"]
    with pytest.raises(AnalysisError):
        await explorer.find_relevant("anything")
    assert explorer.store.highlighted_paths == ["README.md"]
    assert explorer.store.prompt_items == []


@pytest.mark.anyio
async def test_add_symbol_to_prompt(tmp_path):
    explorer = await _loaded(tmp_path)
    await explorer.analyze_selected("src/utils/helpers.ts")
    item = explorer.add_symbol_to_prompt("src/utils/helpers.ts#pad")
    assert (item.title, item.content, item.type) == (
        "src/utils/helpers.ts#pad", "function pad(s) { return s }", PromptItemType.CODE)
    with pytest.raises(UnknownNodeError):
        explorer.add_symbol_to_prompt("src/utils/helpers.ts#missing")


@pytest.mark.anyio
async def test_layout_only_applies_to_the_same_graph(tmp_path):
    explorer = await _loaded(tmp_path)
    explorer.set_layout({"src": {"x": 1.0, "y": 2.0}, "gone": {"x": 0.0, "y": 0.0}})
    assert explorer.layout_for_current_graph() == {"src": {"x": 1.0, "y": 2.0}}
    await explorer.expand("src")
    assert explorer.layout_for_current_graph() is None


@pytest.mark.anyio
async def test_save_then_auto_restore_on_matching_reload(tmp_path):
    policy = AutoRestorePolicy()
    explorer = await _loaded(tmp_path, policy=policy)
    await explorer.expand("src")
    await explorer.analyze_selected("src/index.ts")
    explorer.add_prompt_item("Why?")
    session_id = await explorer.save_session()

    fresh = await _loaded(tmp_path, policy=AutoRestorePolicy())
    assert fresh.store.selected_node_id == "src/index.ts"
    assert "src" in fresh.store.expanded_directories
    assert [i.content for i in fresh.store.prompt_items] == ["Why?"]
    assert [s.id for s in fresh.store.node("src/index.ts").symbol_tree] == ["src/index.ts#main"]

    # Same policy: already attempted for this signature
    again = await _loaded(tmp_path, policy=policy)
    assert again.store.prompt_items == []

    # Different project: never restored
    other = _explorer(tmp_path)
    await other.load_paths(["other.ts"], "local", DictFetcher({}))
    assert other.store.prompt_items == []

    reopened = await _loaded(tmp_path, policy=policy)
    await reopened.open_session(session_id)
    assert [i.content for i in reopened.store.prompt_items] == ["Why?"]


@pytest.mark.anyio
async def test_auto_restore_skips_unreadable_session(tmp_path):
    store = FileSessionStore(tmp_path / "sessions")
    signature = compute_project_signature(FILES, "local")
    store.remember("gone", signature)
    explorer = await _loaded(tmp_path)
    assert explorer.store.root.name == "demo"


class FakeGitHub:
    def __init__(self, files):
        self.files = files
        self.trees = []

    async def fetch_tree(self, owner, repo, ref=None):
        self.trees.append((owner, repo, ref))
        return list(self.files)

    async def fetch_file(self, owner, repo, path):
        return self.files[path]


@pytest.mark.anyio
async def test_load_github_uses_repo_source(tmp_path):
    github = FakeGitHub(FILES)
    explorer = Explorer(FakeAnalysis(), github=github, restore_policy=AutoRestorePolicy())
    root = await explorer.load_github("https://github.com/acme/demo.git", ref="dev")

    assert github.trees == [("acme", "demo", "dev")]
    assert root.name == "demo"
    assert explorer.store.source_identifier == "github:acme/demo"
    assert explorer.project_signature() == compute_project_signature(FILES, "github:acme/demo")

    await explorer.analyze_selected("src/index.ts")
    assert "import:src/index.ts-->src/utils/helpers.ts" in {e.id for e in explorer.store.semantic_edges()}


@pytest.mark.anyio
async def test_load_github_without_client():
    explorer = Explorer(FakeAnalysis())
    with pytest.raises(CodeMindError):
        await explorer.load_github("acme/demo")


def test_create_explorer_wires_file_sessions():
    explorer = create_explorer(AppConfig())
    assert isinstance(explorer.session_store, FileSessionStore)
    assert isinstance(explorer.analysis, CachedAnalysisService)
    assert explorer.github is not None


def test_create_explorer_uses_session_backend():
    explorer = create_explorer(AppConfig(session_api_url="http://localhost:3001"))
    assert isinstance(explorer.session_store, HttpSessionStore)


@pytest.mark.anyio
async def test_restore_into_fresh_explorer_can_expand_and_analyze(tmp_path):
    explorer = await _loaded(tmp_path)
    await explorer.expand("src")
    payload = explorer.snapshot().to_json()

    fresh = Explorer(FakeAnalysis(), restore_policy=AutoRestorePolicy())
    await fresh.restore(payload, fetcher=DictFetcher(FILES))

    children = await fresh.expand("src/utils")
    assert [c.path for c in children] == ["src/utils/helpers.ts"]
    symbols = await fresh.analyze_selected("src/utils/helpers.ts")
    assert [s.id for s in symbols] == ["src/utils/helpers.ts#format", "src/utils/helpers.ts#pad"]
    assert fresh.project_signature() == compute_project_signature(FILES, "local")


@pytest.mark.anyio
async def test_restore_replaces_other_project(tmp_path):
    snapshot = (await _loaded(tmp_path)).snapshot()

    github = FakeGitHub({"other/z.ts": "export const z = 1\n"})
    explorer = Explorer(
        FakeAnalysis(),
        session_store=FileSessionStore(tmp_path / "other-sessions"),
        github=github,
        restore_policy=AutoRestorePolicy(),
    )
    await explorer.load_github("acme/other")
    await explorer.load_all_contents()
    await explorer.restore(snapshot)

    signature = compute_project_signature(FILES, "local")
    assert explorer.store.source_identifier == "local"
    assert "other/z.ts" not in explorer.store.known_file_paths()
    assert explorer.store.file_contents == {}
    assert explorer.fetcher is None
    assert explorer.project_signature() == signature
    with pytest.raises(ContentFetchError):
        await explorer.analyze_selected("src/index.ts")

    session_id = await explorer.save_session()
    assert explorer.session_store.last_session() == (session_id, signature)


@pytest.mark.anyio
async def test_restore_reopens_github_source(tmp_path):
    github = FakeGitHub(FILES)
    source = Explorer(FakeAnalysis(), github=github, restore_policy=AutoRestorePolicy())
    await source.load_github("acme/demo")

    fresh = Explorer(FakeAnalysis(), github=github, restore_policy=AutoRestorePolicy())
    await fresh.restore(source.snapshot())
    symbols = await fresh.analyze_selected("src/index.ts")
    assert [s.id for s in symbols] == ["src/index.ts#main"]


@pytest.mark.anyio
async def test_load_all_contents_skips_files_without_cached_revalidation(tmp_path):
    class StaleFetcher(DictFetcher):
        async def fetch(self, path):
            if path == "src/api.ts":
                raise NotModifiedWithoutCacheError(f"https://api.github.com/contents/{path}")
            return await super().fetch(path)

    explorer = await _loaded(tmp_path, fetcher=StaleFetcher(FILES))
    assert await explorer.load_all_contents() == len(FILES) - 1
    assert "src/api.ts" not in explorer.store.file_contents
    assert "import:src/index.ts-->src/utils/helpers.ts" in {e.id for e in explorer.store.semantic_edges()}
