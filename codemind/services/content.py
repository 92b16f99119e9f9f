# codemind/services/content.py
from pathlib import Path
from typing import Protocol
from loguru import logger

from ..core.errors import ContentFetchError, TransportError
from .async_utils import run_in_background
from .github import GitHubClient


class ContentFetcher(Protocol):
    async def fetch(self, path: str) -> str:
        """Content of the file at root-relative ``path``."""
        ...


def read_text_file(file_path: Path) -> str:
    """Reads a text file as UTF-8, falling back to latin-1, which decodes any byte sequence."""
    try:
        return file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        logger.debug(f"{file_path} is not valid UTF-8, reading as latin-1")
        return file_path.read_text(encoding="latin-1")


class LocalContentFetcher:
    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def read_local(self, path: str) -> str:
        file_path = (self.root / path).resolve()
        if not file_path.is_relative_to(self.root):
            raise ContentFetchError(f"Path escapes the project root: {path}")
        try:
            return read_text_file(file_path)
        except OSError as e:
            logger.warning(f"Could not read {file_path}: {e}")
            raise ContentFetchError(f"Could not read {path}: {e}") from e

    async def fetch(self, path: str) -> str:
        return await run_in_background(self.read_local, path)


class GitHubContentFetcher:
    def __init__(self, client: GitHubClient, owner: str, repo: str):
        self.client = client
        self.owner = owner
        self.repo = repo

    async def fetch_remote(self, owner: str, repo: str, path: str) -> str:
        try:
            return await self.client.fetch_file(owner, repo, path)
        except ContentFetchError:
            raise
        except TransportError as e:
            raise ContentFetchError(str(e)) from e

    async def fetch(self, path: str) -> str:
        return await self.fetch_remote(self.owner, self.repo, path)
