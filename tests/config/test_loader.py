# tests/config/test_loader.py
import json

from codemind.config.loader import get_config, load_config, reset_config_cache, save_config
from codemind.config.paths import get_cache_db_path, get_sessions_dir, get_user_config_file
from codemind.config.schema import DAY_MS, AppConfig


def test_defaults_without_user_file(codemind_home):
    config = load_config()
    assert config == AppConfig()
    assert config.relevance_cache_ttl_ms == DAY_MS
    assert config.analysis_cache_ttl_ms is None
    assert "node_modules" in config.ignore_patterns
    assert get_config() is config


def test_user_dirs_live_under_codemind_home(codemind_home):
    assert get_user_config_file().parent == codemind_home
    assert get_cache_db_path() == codemind_home / "cache.sqlite3"
    assert get_sessions_dir().is_dir()


def test_save_and_reload(codemind_home):
    config = AppConfig(max_prompt_tokens=1000, ai_base_url="http://ai.internal")
    save_config(config)
    reset_config_cache()
    loaded = load_config()
    assert loaded.max_prompt_tokens == 1000
    assert loaded.ai_base_url == "http://ai.internal"
    assert not list(codemind_home.glob(".config.json_tmp*"))


def test_corrupted_file_is_backed_up(codemind_home):
    get_user_config_file().write_text("{not json", encoding="utf-8")
    assert load_config() == AppConfig()
    assert (codemind_home / "config.json.corrupted").exists()
    assert not get_user_config_file().exists()


def test_invalid_values_fall_back_to_defaults(codemind_home):
    get_user_config_file().write_text(json.dumps({"max_prompt_tokens": "lots"}), encoding="utf-8")
    assert load_config().max_prompt_tokens == AppConfig().max_prompt_tokens


def test_environment_overrides(monkeypatch, codemind_home):
    monkeypatch.setenv("GITHUB_TOKEN", "generic")
    monkeypatch.setenv("CODEMIND_GITHUB_TOKEN", "specific")
    monkeypatch.setenv("CODEMIND_SESSION_API_URL", "http://sessions.test")
    config = load_config()
    assert config.github_token == "specific"
    assert config.session_api_url == "http://sessions.test"
