"""Tests for EngineConfig."""

from stepflow.config import DEFAULT_LLM_API_URL, EngineConfig, get_config, reset_config


def test_defaults():
    config = EngineConfig()
    assert config.sandbox_memory_mb == 256
    assert config.sandbox_timeout_ms == 30000
    assert config.http_timeout_ms == 30000
    assert config.history_limit == 100
    assert config.llm_api_key is None
    assert config.llm_api_url == DEFAULT_LLM_API_URL
    assert "http://localhost:3000" in config.cors_origins


def test_environment(monkeypatch):
    monkeypatch.setenv("STEPFLOW_SANDBOX_TIMEOUT_MS", "5000")
    monkeypatch.setenv("STEPFLOW_HISTORY_LIMIT", "10")
    monkeypatch.setenv("STEPFLOW_CORS_ORIGINS", "https://a.example.com, https://b.example.com")

    config = EngineConfig()

    assert config.sandbox_timeout_ms == 5000
    assert config.history_limit == 10
    assert config.cors_origins == ["https://a.example.com", "https://b.example.com"]


def test_invalid_environment_falls_back(monkeypatch):
    monkeypatch.setenv("STEPFLOW_HISTORY_LIMIT", "-3")
    monkeypatch.setenv("STEPFLOW_HTTP_TIMEOUT_MS", "soon")

    config = EngineConfig()

    assert config.history_limit == 100
    assert config.http_timeout_ms == 30000


def test_api_key_lookup(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "fallback-key")
    assert EngineConfig().llm_api_key == "fallback-key"

    monkeypatch.setenv("STEPFLOW_LLM_API_KEY", "preferred-key")
    assert EngineConfig().llm_api_key == "preferred-key"


def test_placeholder_key_ignored(monkeypatch):
    monkeypatch.setenv("STEPFLOW_LLM_API_KEY", "your_api_key_here")
    assert EngineConfig().llm_api_key is None


def test_keyword_arguments_override_environment(monkeypatch):
    monkeypatch.setenv("STEPFLOW_HISTORY_LIMIT", "10")
    assert EngineConfig(history_limit=3).history_limit == 3


def test_get_config_cached_until_reset(monkeypatch):
    first = get_config()
    assert get_config() is first

    monkeypatch.setenv("STEPFLOW_HISTORY_LIMIT", "7")
    reset_config()

    assert get_config() is not first
    assert get_config().history_limit == 7
