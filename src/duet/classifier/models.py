"""Routing decision types produced by the query classifier."""

from dataclasses import dataclass
from enum import Enum, IntEnum


class QueryType(Enum):
    """Category of an incoming message."""

    MULTIMODAL = "multimodal"
    MEMORY = "memory"
    DATETIME = "datetime"
    CASUAL = "casual"
    REGIME = "regime"
    ANOMALY = "anomaly"
    PORTFOLIO = "portfolio"
    REGIONAL = "regional"
    MARKET = "market"
    COMPLEX = "complex"
    GENERAL = "general"
    UNKNOWN = "unknown"


class Complexity(IntEnum):
    """Ordered complexity scale."""

    MINIMAL = 0
    SIMPLE = 1
    MEDIUM = 2
    COMPLEX = 3
    MAXIMUM = 4

    @property
    def label(self) -> str:
        return self.name.lower()


class PreferredBackend(Enum):
    """Which backend(s) the dispatcher should try first."""

    FAST = "fast"
    REASONING = "reasoning"
    BOTH = "both"


class SpecializedFunction(Enum):
    """Specialist analyses that replace the generic backend call."""

    REGIME = "regime"
    ANOMALY = "anomaly"
    PORTFOLIO = "portfolio"
    REGIONAL = "regional"


SPECIALIST_TYPES = frozenset({
    QueryType.REGIME,
    QueryType.ANOMALY,
    QueryType.PORTFOLIO,
    QueryType.REGIONAL,
})


@dataclass(frozen=True)
class QueryClassification:
    """Transient routing decision for one message. Never cached."""

    query_type: QueryType
    complexity: Complexity
    preferred_backend: PreferredBackend
    confidence: float
    max_response_tokens: int
    needs_live_data: bool = False
    is_memory_relevant: bool = False
    specialized_function: SpecializedFunction | None = None
    reason: str = ""
