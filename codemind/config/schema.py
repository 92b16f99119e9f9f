# codemind/config/schema.py
from pydantic import BaseModel, Field
from typing import List, Optional

DAY_MS = 24 * 60 * 60 * 1000


class AppConfig(BaseModel):
    ignore_patterns: List[str] = Field(default_factory=lambda: [
        # Version control
        ".git", ".svn", ".hg",
        # IDE/Editor config
        ".idea", ".vscode",
        # Python specific
        "__pycache__", "*.pyc", ".pytest_cache", ".mypy_cache", "*.egg-info",
        # Virtual environments
        "venv", ".venv",
        # Build artifacts / dependencies
        "build", "dist", "node_modules", "target", "coverage", ".next",
        # OS specific
        ".DS_Store", "Thumbs.db",
        "*.log",
    ])

    # None means cached entries never expire
    analysis_cache_ttl_ms: Optional[int] = None
    relevance_cache_ttl_ms: Optional[int] = DAY_MS

    ai_base_url: str = "http://localhost:8787"
    ai_timeout_s: float = 60.0

    github_api_url: str = "https://api.github.com"
    github_token: Optional[str] = None
    github_timeout_s: float = 30.0

    # When unset, sessions are stored as JSON files in the user data dir
    session_api_url: Optional[str] = None

    max_prompt_tokens: int = 32000
    token_encoding: str = "cl100k_base"
