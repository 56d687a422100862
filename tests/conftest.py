"""Shared fixtures."""

from pathlib import Path

import pytest

from duet.logging import configure_logger


@pytest.fixture(autouse=True)
def json_log(tmp_path: Path):
    """Send JSONL logs to a per-test directory instead of ~/.duet."""
    return configure_logger(tmp_path / "logs")
