# codemind/config/paths.py
import os
import sys
from pathlib import Path


def _get_app_name() -> str:
    return "CodeMind"


def get_user_data_dir() -> Path:
    """
    Get the per-user application data directory.

    CODEMIND_HOME wins when set; otherwise %APPDATA%/CodeMind on Windows and
    ~/.codemind elsewhere.
    """
    override = os.environ.get("CODEMIND_HOME")
    if override:
        path = Path(override)
    elif sys.platform == "win32":
        appdata_path = os.environ.get("APPDATA")
        if appdata_path:
            path = Path(appdata_path) / _get_app_name()
        else:
            path = Path.home() / "AppData/Roaming" / _get_app_name()
    else:
        path = Path.home() / ".codemind"

    path.mkdir(parents=True, exist_ok=True)
    return path


def get_user_config_file() -> Path:
    """Get the path to the user's config.json file."""
    return get_user_data_dir() / "config.json"


def get_user_log_dir() -> Path:
    path = get_user_data_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_db_path() -> Path:
    """SQLite file backing the analysis/relevance/http caches."""
    return get_user_data_dir() / "cache.sqlite3"


def get_sessions_dir() -> Path:
    path = get_user_data_dir() / "sessions"
    path.mkdir(parents=True, exist_ok=True)
    return path
