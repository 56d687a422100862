"""Configuration for Duet, loaded from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

DUET_HOME = Path.home() / ".duet"


@dataclass
class MemoryConfig:
    """Configuration for the memory store and background persistence."""

    db_path: Path | None = None
    max_facts_per_user: int = 200
    max_turns_per_user: int = 50
    persist_attempts: int = 3
    persist_backoff_s: float = 0.5
    persist_response_chars: int = 500
    persist_specialist_chars: int = 200

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = DUET_HOME / "memory.db"


@dataclass
class ContextConfig:
    """Configuration for context assembly."""

    max_turns: int = 6
    max_facts: int = 30
    max_items_per_group: int = 5
    turn_chars: int = 200
    budget_chars: int = 4000
    store_timeout_s: float = 5.0
    long_history_turns: int = 3


@dataclass
class DispatchConfig:
    """Configuration for backend dispatch and the fallback chain."""

    fast_model: str = "llama-3.3-70b-versatile"
    reasoning_model: str = "claude-sonnet-4-20250514"
    fast_timeout_s: float = 30.0
    reasoning_timeout_s: float = 60.0
    deadline_s: float = 90.0
    temperature: float = 0.7
    fallback_max_tokens: int = 800
    fallback_context_chars: int = 500
    timezone: str = "Asia/Phnom_Penh"
    answer_datetime_locally: bool = True


@dataclass
class ResponseConfig:
    """Configuration for response cleanup, budgeting and chunking."""

    max_unit_length: int = 4096
    safety_ratio: float = 0.9
    apply_budget: bool = True
    budget_multiplier: float = 2.0


@dataclass
class LiveDataConfig:
    """Configuration for the live market snapshot."""

    enabled: bool = True
    ttl_s: float = 300.0
    timeout_s: float = 8.0
    fx_url: str = "https://api.exchangerate-api.com/v4/latest/USD"
    crypto_url: str = (
        "https://api.coingecko.com/api/v3/simple/price"
        "?ids=bitcoin,ethereum&vs_currencies=usd"
    )
    fx_symbols: tuple[str, ...] = ("KHR", "EUR", "THB", "CNY", "JPY")


@dataclass
class Settings:
    """Top-level settings shared by the CLI and the Telegram bot."""

    groq_api_key: str | None = None
    anthropic_api_key: str | None = None
    telegram_token: str | None = None
    transcription_model: str = "whisper-large-v3-turbo"
    allowed_users: frozenset[str] = field(default_factory=frozenset)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    response: ResponseConfig = field(default_factory=ResponseConfig)
    live_data: LiveDataConfig = field(default_factory=LiveDataConfig)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_users(name: str) -> frozenset[str]:
    value = os.getenv(name, "")
    return frozenset(part.strip() for part in value.split(",") if part.strip())


def config_from_env() -> Settings:
    """Load settings from environment variables."""
    db_path = os.getenv("DUET_DB_PATH")

    memory = MemoryConfig(
        db_path=Path(db_path).expanduser() if db_path else None,
        max_facts_per_user=int(os.getenv("DUET_MAX_FACTS", "200")),
        max_turns_per_user=int(os.getenv("DUET_MAX_TURNS", "50")),
    )

    context = ContextConfig(
        budget_chars=int(os.getenv("DUET_CONTEXT_BUDGET", "4000")),
    )

    dispatch = DispatchConfig(
        fast_model=os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"),
        reasoning_model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
        fast_timeout_s=float(os.getenv("DUET_FAST_TIMEOUT", "30")),
        reasoning_timeout_s=float(os.getenv("DUET_REASONING_TIMEOUT", "60")),
        deadline_s=float(os.getenv("DUET_DEADLINE", "90")),
        timezone=os.getenv("DUET_TIMEZONE", "Asia/Phnom_Penh"),
    )

    return Settings(
        groq_api_key=os.getenv("GROQ_API_KEY"),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
        telegram_token=os.getenv("TELEGRAM_TOKEN"),
        allowed_users=_env_users("DUET_ALLOWED_USERS"),
        memory=memory,
        context=context,
        dispatch=dispatch,
        live_data=LiveDataConfig(enabled=_env_bool("DUET_LIVE_DATA", True)),
    )
