# tests/conftest.py
import pytest

from codemind.config.loader import reset_config_cache

_ENV_VARS = ("GITHUB_TOKEN", "CODEMIND_GITHUB_TOKEN", "CODEMIND_AI_BASE_URL", "CODEMIND_SESSION_API_URL")


@pytest.fixture(autouse=True)
def codemind_home(tmp_path, monkeypatch):
    """Points every user directory at a temp dir and clears config overrides."""
    home = tmp_path / "codemind_home"
    monkeypatch.setenv("CODEMIND_HOME", str(home))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config_cache()
    yield home
    reset_config_cache()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
