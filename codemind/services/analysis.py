# codemind/services/analysis.py
from typing import Any, List, Optional, Protocol

import httpx
from loguru import logger
from pydantic import ValidationError

from ..core.errors import AnalysisError
from ..core.models import SymbolNode
from ..core.payloads import SymbolPayload, symbol_to_payload, symbols_from_payload
from .cache import ContentCache, hash_content


class CodeAnalysisService(Protocol):
    async def analyze(self, content: str, filename: str) -> List[SymbolNode]:
        """Symbol tree of one file. ``filename`` is the root-relative path."""
        ...

    async def find_relevant(self, query: str, paths: List[str]) -> List[str]:
        """Subset of ``paths`` relevant to ``query``."""
        ...


def _parse_symbols(raw: Any, filename: str) -> List[SymbolNode]:
    if not isinstance(raw, list):
        return []
    payloads = []
    for item in raw:
        try:
            payloads.append(SymbolPayload.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed symbol in analysis of {filename}: {e.error_count()} errors")
    return symbols_from_payload(payloads, filename)


class HttpAnalysisService:
    """Talks to the AI proxy endpoints (``/api/ai/analyze-file``, ``/api/ai/relevant-files``)."""

    def __init__(self, base_url: str, timeout: float = 60.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _post(self, endpoint: str, payload: dict) -> Any:
        url = f"{self.base_url}/api/ai/{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"AI request {endpoint} failed ({e.response.status_code})")
            raise AnalysisError(f"AI request failed ({e.response.status_code}).") from e
        except httpx.HTTPError as e:
            logger.error(f"AI request {endpoint} failed: {e}")
            raise AnalysisError(f"AI request failed: {e}") from e
        except ValueError as e:
            raise AnalysisError(f"AI response for {endpoint} is not valid JSON") from e

    async def analyze(self, content: str, filename: str) -> List[SymbolNode]:
        result = await self._post("analyze-file", {"code": content, "filename": filename})
        nodes = result.get("nodes") if isinstance(result, dict) else None
        return _parse_symbols(nodes, filename)

    async def find_relevant(self, query: str, paths: List[str]) -> List[str]:
        result = await self._post("relevant-files", {"query": query, "filePaths": paths})
        relevant = result.get("relevantFiles") if isinstance(result, dict) else None
        if not isinstance(relevant, list):
            return []
        return [p for p in relevant if isinstance(p, str)]


class CachedAnalysisService:
    """
    Content-addressed caching in front of a CodeAnalysisService.

    Analysis is keyed by ``hash(filename:content)``. Relevance is keyed by
    ``hash(repo_hash:query)`` and gated on ``repo_hash``, the hash of the sorted
    path list, so a changed file set never reuses an older answer. Errors from
    the wrapped service propagate; they are never cached or turned into empty
    results.
    """

    def __init__(self, inner: CodeAnalysisService, cache: ContentCache,
                 analysis_ttl_ms: Optional[int] = None, relevance_ttl_ms: Optional[int] = None):
        self.inner = inner
        self.cache = cache
        self.analysis_ttl_ms = analysis_ttl_ms
        self.relevance_ttl_ms = relevance_ttl_ms

    async def analyze(self, content: str, filename: str) -> List[SymbolNode]:
        key = hash_content(f"{filename}:{content}")
        cached = self.cache.get_analysis(key)
        if cached is not None:
            return _parse_symbols(cached, filename)

        symbols = await self.inner.analyze(content, filename)
        payload = [symbol_to_payload(s).model_dump(by_alias=True, exclude_none=True) for s in symbols]
        self.cache.set_analysis(key, payload, self.analysis_ttl_ms)
        logger.debug(f"Analyzed {filename}: {len(symbols)} top-level symbols")
        return symbols

    async def find_relevant(self, query: str, paths: List[str]) -> List[str]:
        normalized = sorted(paths)
        repo_hash = hash_content("\n".join(normalized))
        key = hash_content(f"{repo_hash}:{query}")
        cached = self.cache.get_relevance(key, repo_hash)
        if cached is not None:
            return list(cached)

        relevant = await self.inner.find_relevant(query, normalized)
        self.cache.set_relevance(key, relevant, repo_hash, self.relevance_ttl_ms)
        return relevant
