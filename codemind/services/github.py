# codemind/services/github.py
import base64
import re
from typing import Any, List, Optional, Tuple
from urllib.parse import quote

import httpx
from loguru import logger

from ..core.errors import NotModifiedWithoutCacheError, TransportError
from .cache import ContentCache

GITHUB_ACCEPT_HEADER = "application/vnd.github+json"
DEFAULT_API_URL = "https://api.github.com"
GITHUB_SOURCE_PREFIX = "github:"

_GITHUB_URL_RE = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s#?]+)")
_SHORT_RE = re.compile(r"^([\w.-]+)/([\w.-]+)$")


def parse_github_url(url: str) -> Tuple[str, str]:
    """Returns (owner, repo) for a github.com URL or an ``owner/repo`` shorthand."""
    text = url.strip()
    match = _GITHUB_URL_RE.search(text) or _SHORT_RE.match(text)
    if not match:
        raise ValueError(f"Not a GitHub repository reference: {url!r}")
    owner, repo = match.group(1), match.group(2)
    if repo.endswith(".git"):
        repo = repo[:-4]
    return owner, repo


def github_source_identifier(owner: str, repo: str) -> str:
    return f"{GITHUB_SOURCE_PREFIX}{owner}/{repo}"


class GitHubClient:
    """Read-only GitHub REST client with ETag revalidation through ContentCache."""

    def __init__(
        self,
        cache: ContentCache,
        token: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache = cache
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _headers(self, etag: Optional[str]) -> dict:
        headers = {"Accept": GITHUB_ACCEPT_HEADER}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if etag:
            headers["If-None-Match"] = etag
        return headers

    async def fetch_json(self, url: str) -> Any:
        """GET ``url`` as JSON, sending the cached ETag and reusing cached data on 304."""
        cached = self.cache.get_http(url)
        headers = self._headers(cached.etag if cached else None)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.error(f"GitHub request failed for {url}: {exc}")
            raise TransportError(f"GitHub request failed for {url}. {exc}") from exc

        if response.status_code == 304:
            if cached is not None and cached.data is not None:
                logger.debug(f"GitHub 304, serving cached payload for {url}")
                return cached.data
            logger.error(f"GitHub returned 304 for {url} but nothing is cached")
            raise NotModifiedWithoutCacheError(url)

        if response.is_error:
            message = _extract_error_message(response)
            logger.error(f"GitHub request failed for {url} ({response.status_code}): {message}")
            raise TransportError(f"GitHub request failed for {url}. {message}")

        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError(f"GitHub returned invalid JSON for {url}") from exc
        self.cache.set_http(url, data, response.headers.get("ETag"))
        return data

    async def default_branch(self, owner: str, repo: str) -> str:
        data = await self.fetch_json(f"{self.api_url}/repos/{owner}/{repo}")
        branch = data.get("default_branch") if isinstance(data, dict) else None
        return branch or "main"

    async def fetch_tree(self, owner: str, repo: str, ref: Optional[str] = None) -> List[str]:
        """Every blob path of the repository at ``ref`` (default branch when omitted)."""
        ref = ref or await self.default_branch(owner, repo)
        url = f"{self.api_url}/repos/{owner}/{repo}/git/trees/{quote(ref, safe='')}?recursive=1"
        data = await self.fetch_json(url)
        entries = data.get("tree", []) if isinstance(data, dict) else []
        if isinstance(data, dict) and data.get("truncated"):
            logger.warning(f"GitHub tree for {owner}/{repo}@{ref} is truncated")
        paths = [entry["path"] for entry in entries if entry.get("type") == "blob" and entry.get("path")]
        logger.info(f"Fetched {len(paths)} paths from {owner}/{repo}@{ref}")
        return paths

    async def fetch_file(self, owner: str, repo: str, path: str) -> str:
        url = f"{self.api_url}/repos/{owner}/{repo}/contents/{quote(path)}"
        data = await self.fetch_json(url)
        encoded = data.get("content") if isinstance(data, dict) else None
        if encoded is None:
            raise TransportError(f"GitHub returned no content for {owner}/{repo}/{path}")
        try:
            raw = base64.b64decode(encoded)
        except ValueError as exc:
            raise TransportError(f"GitHub content for {path} is not valid base64") from exc
        return raw.decode("utf-8", errors="replace")


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
        if isinstance(data, dict) and isinstance(data.get("message"), str):
            return data["message"]
    except ValueError:
        pass
    return response.text or f"Request failed ({response.status_code})."
