"""Tests for configuration loading."""

from pathlib import Path

from duet.config import DUET_HOME, MemoryConfig, config_from_env


def test_defaults(monkeypatch):
    for name in ("GROQ_API_KEY", "ANTHROPIC_API_KEY", "TELEGRAM_TOKEN", "DUET_DB_PATH", "DUET_ALLOWED_USERS"):
        monkeypatch.delenv(name, raising=False)

    settings = config_from_env()

    assert settings.groq_api_key is None
    assert settings.memory.db_path == DUET_HOME / "memory.db"
    assert settings.memory.max_facts_per_user == 200
    assert settings.dispatch.fast_timeout_s == 30.0
    assert settings.dispatch.reasoning_timeout_s == 60.0
    assert settings.response.max_unit_length == 4096
    assert settings.allowed_users == frozenset()
    assert settings.live_data.enabled


def test_env_overrides(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    monkeypatch.setenv("DUET_DB_PATH", str(tmp_path / "m.db"))
    monkeypatch.setenv("DUET_MAX_FACTS", "10")
    monkeypatch.setenv("DUET_CONTEXT_BUDGET", "1500")
    monkeypatch.setenv("DUET_FAST_TIMEOUT", "5")
    monkeypatch.setenv("DUET_TIMEZONE", "UTC")
    monkeypatch.setenv("DUET_ALLOWED_USERS", "123, 456,,")
    monkeypatch.setenv("DUET_LIVE_DATA", "off")

    settings = config_from_env()

    assert settings.groq_api_key == "gsk-test"
    assert settings.anthropic_api_key == "sk-ant-test"
    assert settings.memory.db_path == tmp_path / "m.db"
    assert settings.memory.max_facts_per_user == 10
    assert settings.context.budget_chars == 1500
    assert settings.dispatch.fast_timeout_s == 5.0
    assert settings.dispatch.timezone == "UTC"
    assert settings.allowed_users == frozenset({"123", "456"})
    assert not settings.live_data.enabled


def test_memory_config_explicit_path(tmp_path: Path):
    assert MemoryConfig(db_path=tmp_path / "x.db").db_path == tmp_path / "x.db"
