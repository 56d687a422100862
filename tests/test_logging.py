"""Tests for JSONL logging."""

import json
from pathlib import Path

import pytest

from duet.logging import JSONLLogger, LogEntry, UsageEvent, configure_logger, get_logger


@pytest.fixture
def logger(tmp_path: Path) -> JSONLLogger:
    return JSONLLogger(log_dir=tmp_path / "jsonl")


def read_entries(logger: JSONLLogger) -> list[dict]:
    with open(logger.log_path) as f:
        return [json.loads(line) for line in f]


def test_log_entry_to_dict():
    """Test LogEntry excludes None values."""
    entry = LogEntry(timestamp="2026-01-01T00:00:00Z", event="test")
    data = entry.to_dict()

    assert "timestamp" in data
    assert "event" in data
    assert "user_id" not in data  # None excluded
    assert "extra" not in data  # Empty dict excluded


def test_log_creates_file(logger: JSONLLogger):
    """Test that logging creates the log file."""
    logger.log("test_event")

    assert logger.log_path.exists()


def test_log_writes_jsonl(logger: JSONLLogger):
    """Test that logs are written in JSONL format."""
    logger.log("event1", user_id="123")
    logger.log("event2", user_id="456")

    entries = read_entries(logger)

    assert len(entries) == 2
    assert entries[0]["event"] == "event1"
    assert entries[0]["user_id"] == "123"
    assert entries[1]["event"] == "event2"


def test_log_usage(logger: JSONLLogger):
    """Test that provider calls share one event shape."""
    logger.log_usage(
        UsageEvent("groq", "chat.completions", {"model": "llama", "latency_ms": 12.5}),
        user_id="42",
    )

    entry = read_entries(logger)[0]
    assert entry["event"] == "usage"
    assert entry["user_id"] == "42"
    assert entry["extra"]["provider"] == "groq"
    assert entry["extra"]["endpoint"] == "chat.completions"
    assert entry["extra"]["metrics"]["latency_ms"] == 12.5


def test_log_classification(logger: JSONLLogger):
    logger.log_classification("42", "regime", "complex", "both", specialized_function="regime")

    entry = read_entries(logger)[0]
    assert entry["query_type"] == "regime"
    assert entry["extra"]["preferred_backend"] == "both"
    assert entry["extra"]["specialized_function"] == "regime"


def test_log_dispatch(logger: JSONLLogger):
    logger.log_dispatch("secondary", 2150.0, user_id="42", attempts=["a", "b"])

    entry = read_entries(logger)[0]
    assert entry["event"] == "dispatch"
    assert entry["backend_used"] == "secondary"
    assert entry["duration_ms"] == 2150.0
    assert entry["extra"]["attempts"] == ["a", "b"]


def test_non_ascii_preserved(logger: JSONLLogger):
    logger.log("note", text="សួស្តី")

    with open(logger.log_path, encoding="utf-8") as f:
        assert "សួស្តី" in f.read()


def test_rotation(tmp_path: Path):
    """Test log rotation when max size is exceeded."""
    logger = JSONLLogger(log_dir=tmp_path, max_size_mb=0.001)  # ~1KB

    for i in range(100):
        logger.log(f"event_{i}", data="x" * 100)

    log_files = list(tmp_path.glob("logs*.jsonl"))
    assert len(log_files) >= 2


def test_configure_logger_replaces_global(tmp_path: Path):
    configured = configure_logger(tmp_path / "other")
    assert get_logger() is configured
    assert configured.log_dir == tmp_path / "other"
