"""JSONL logging for observability."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class UsageEvent:
    """One call against an external provider.

    Attributes:
        provider: Service name, e.g. 'groq', 'anthropic', 'coingecko'.
        endpoint: Operation invoked on the provider, e.g. 'chat.completions'.
        metrics: Free-form measurements (model, latency_ms, tokens, success).
    """

    provider: str
    endpoint: str
    metrics: dict[str, Any] = field(default_factory=dict)


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    user_id: str | None = None
    duration_ms: float | None = None
    query_type: str | None = None
    backend_used: str | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured logs in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "logs.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".duet" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        """Write a log entry to the file."""
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False, default=str) + "\n")

    def log(
        self,
        event: str,
        *,
        user_id: str | None = None,
        duration_ms: float | None = None,
        query_type: str | None = None,
        backend_used: str | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            user_id=user_id,
            duration_ms=duration_ms,
            query_type=query_type,
            backend_used=backend_used,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_usage(self, usage: UsageEvent, *, user_id: str | None = None) -> None:
        """Log a provider call.

        Every backend, transcription and live-data request goes through here,
        so usage is tracked in one shape regardless of provider.
        """
        self.log(
            "usage",
            user_id=user_id,
            provider=usage.provider,
            endpoint=usage.endpoint,
            metrics=usage.metrics,
        )

    def log_classification(
        self,
        user_id: str,
        query_type: str,
        complexity: str,
        preferred_backend: str,
        *,
        specialized_function: str | None = None,
    ) -> None:
        """Log the routing decision for a message."""
        self.log(
            "classification",
            user_id=user_id,
            query_type=query_type,
            complexity=complexity,
            preferred_backend=preferred_backend,
            specialized_function=specialized_function,
        )

    def log_dispatch(
        self,
        backend_used: str,
        duration_ms: float,
        *,
        user_id: str | None = None,
        query_type: str | None = None,
        attempts: list[str] | None = None,
    ) -> None:
        """Log the outcome of a dispatch."""
        self.log(
            "dispatch",
            user_id=user_id,
            duration_ms=duration_ms,
            query_type=query_type,
            backend_used=backend_used,
            attempts=attempts or [],
        )


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger
