# codemind/services/session_store.py
import json
import os
import re
import tempfile
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple

import httpx
from loguru import logger

from ..core.errors import SessionStoreError

LAST_SESSION_FILE = "last_session.json"
_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class SessionStore(Protocol):
    async def save(self, snapshot: Dict[str, Any], session_id: Optional[str] = None) -> str: ...
    async def open(self, session_id: str) -> Dict[str, Any]: ...
    def remember(self, session_id: str, signature: str) -> None: ...
    def last_session(self) -> Optional[Tuple[str, str]]: ...


def _atomic_write_json(target: Path, data: Any) -> None:
    """Writes JSON next to ``target`` and swaps it in with os.replace."""
    temp_file_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=target.parent,
            prefix=f".{target.name}_tmp",
            suffix=".json",
            delete=False,
        ) as temp_f:
            temp_file_path = Path(temp_f.name)
            json.dump(data, temp_f, indent=2)
            temp_f.flush()
            os.fsync(temp_f.fileno())
        os.replace(temp_file_path, target)
        temp_file_path = None
    finally:
        if temp_file_path and temp_file_path.exists():
            try:
                temp_file_path.unlink()
            except OSError as unlink_err:
                logger.error(f"Failed to remove temporary file {temp_file_path}: {unlink_err}")


class _SessionPointer:
    """The single persisted (session_id, signature) pair used for auto-restore."""

    def __init__(self, directory: Path):
        self.path = Path(directory) / LAST_SESSION_FILE

    def remember(self, session_id: str, signature: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write_json(self.path, {"sessionId": session_id, "signature": signature})
        except OSError as e:
            logger.warning(f"Could not persist last session pointer: {e}")

    def last_session(self) -> Optional[Tuple[str, str]]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return str(data["sessionId"]), str(data["signature"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable last session pointer {self.path}: {e}")
            return None


class FileSessionStore:
    """Sessions as ``<id>.json`` files in one directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self._pointer = _SessionPointer(self.directory)

    def _session_path(self, session_id: str) -> Path:
        if not _SESSION_ID_RE.match(session_id):
            raise SessionStoreError(f"Invalid session id: {session_id!r}")
        return self.directory / f"{session_id}.json"

    async def save(self, snapshot: Dict[str, Any], session_id: Optional[str] = None) -> str:
        session_id = session_id or uuid.uuid4().hex
        target = self._session_path(session_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            _atomic_write_json(target, snapshot)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save session {session_id}: {e}")
            raise SessionStoreError(f"Failed to save session {session_id}: {e}") from e
        logger.info(f"Session saved: {target}")
        return session_id

    async def open(self, session_id: str) -> Dict[str, Any]:
        target = self._session_path(session_id)
        try:
            return json.loads(target.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise SessionStoreError(f"Session not found: {session_id}") from e
        except (OSError, ValueError) as e:
            logger.error(f"Failed to open session {session_id}: {e}")
            raise SessionStoreError(f"Failed to open session {session_id}: {e}") from e

    def remember(self, session_id: str, signature: str) -> None:
        self._pointer.remember(session_id, signature)

    def last_session(self) -> Optional[Tuple[str, str]]:
        return self._pointer.last_session()


class HttpSessionStore:
    """Backend session endpoints: ``POST /api/sessions/save`` and ``GET /api/sessions/{id}``."""

    def __init__(self, base_url: str, pointer_dir: Path, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._pointer = _SessionPointer(pointer_dir)

    async def _request(self, method: str, url: str, error_message: str, **kwargs) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{error_message} ({url}): {e}")
            raise SessionStoreError(error_message) from e
        if not isinstance(data, dict) or "session" not in data:
            raise SessionStoreError(f"{error_message} Unexpected response shape.")
        return data

    async def save(self, snapshot: Dict[str, Any], session_id: Optional[str] = None) -> str:
        body: Dict[str, Any] = {"session": snapshot}
        if session_id:
            body["sessionId"] = session_id
        data = await self._request("POST", f"{self.base_url}/api/sessions/save",
                                   "Failed to save session.", json=body)
        saved_id = data.get("sessionId") or session_id
        if not saved_id:
            raise SessionStoreError("Failed to save session. No session id returned.")
        return str(saved_id)

    async def open(self, session_id: str) -> Dict[str, Any]:
        data = await self._request("GET", f"{self.base_url}/api/sessions/{session_id}",
                                   "Failed to open session.")
        return data["session"]

    def remember(self, session_id: str, signature: str) -> None:
        self._pointer.remember(session_id, signature)

    def last_session(self) -> Optional[Tuple[str, str]]:
        return self._pointer.last_session()
