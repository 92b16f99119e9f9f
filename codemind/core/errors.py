# codemind/core/errors.py
from typing import Optional


class CodeMindError(Exception):
    """Base class for every error raised by codemind."""


class ExpansionError(CodeMindError):
    """Raised when expanding a path that is not a known directory."""


class UnknownNodeError(CodeMindError):
    """Raised when an operation targets a path that is not a known file."""


# --- Transport failures: explicit, abort the operation ---

class TransportError(CodeMindError):
    """Network fetch or remote call failed."""


class ContentFetchError(TransportError):
    pass


class AnalysisError(TransportError):
    pass


class SessionStoreError(TransportError):
    pass


# --- Protocol violations: fatal for the operation, never defaulted ---

class ProtocolError(CodeMindError):
    pass


class NotModifiedWithoutCacheError(ProtocolError):
    """Server answered 304 but nothing is cached for the URL."""

    def __init__(self, url: str):
        super().__init__(f"Server returned 304 for {url} without cached data.")
        self.url = url


class SessionRestoreError(ProtocolError):
    pass


class SessionSchemaVersionError(SessionRestoreError):
    def __init__(self, found: Optional[int], expected: int):
        super().__init__(f"Unsupported session schema version {found!r} (expected {expected}).")
        self.found = found
        self.expected = expected


class SessionFormatError(SessionRestoreError):
    pass


class CacheStorageError(CodeMindError):
    """Cache backend read/write failed. Downgraded to a miss or a warning by ContentCache."""
