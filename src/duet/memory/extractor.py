"""Rule-based fact extraction from conversation exchanges."""

import re
from dataclasses import dataclass

from ..classifier.models import SPECIALIST_TYPES, QueryType
from .models import Importance, content_hash

# Captured values outside this window are treated as noise.
MIN_VALUE_CHARS = 2
MAX_VALUE_CHARS = 200
# Rendered facts outside this window are rejected.
MIN_FACT_CHARS = 5
MAX_FACT_CHARS = 300

PERSIST_TRIGGERS = (
    "my name",
    "remember",
    "i am",
    "i'm a",
    "my goal",
    "my plan",
    "i prefer",
    "i live",
    "i work",
    "risk tolerance",
    "investment horizon",
)

_VALUE = r"([^.,!?;\n]+)"
_CLAUSE = r"([^.!?;\n]+)"


@dataclass(frozen=True)
class FactRule:
    """One labeled extraction rule.

    Attributes:
        label: Name of the rule, for logs and tests.
        pattern: Regex with one capture group for the fact value.
        template: Format string receiving the captured value.
        importance: Tier assigned to facts produced by this rule.
        category: Salient group the fact is rendered under.
        source: 'user' to match the user message, 'response' for the model's.
    """

    label: str
    pattern: re.Pattern[str]
    template: str
    importance: Importance
    category: str
    source: str = "user"


@dataclass(frozen=True)
class FactCandidate:
    """A fact proposed by the extractor, not yet persisted."""

    fact_text: str
    importance: Importance
    category: str
    label: str

    @property
    def content_hash(self) -> str:
        return content_hash(self.fact_text)


def _rule(
    label: str,
    pattern: str,
    template: str,
    importance: Importance,
    category: str,
    source: str = "user",
) -> FactRule:
    return FactRule(
        label=label,
        pattern=re.compile(pattern, re.IGNORECASE),
        template=template,
        importance=importance,
        category=category,
        source=source,
    )


FACT_RULES: tuple[FactRule, ...] = (
    _rule("name", rf"\bmy name is {_VALUE}", "User's name: {}", Importance.HIGH, "identity"),
    _rule(
        "identity",
        rf"\bi(?: am|'m) ((?:a|an) [^.,!?;\n]+)",
        "User is {}",
        Importance.HIGH,
        "identity",
    ),
    _rule(
        "goal",
        rf"\bmy (?:goal|plan) is (?:to )?{_CLAUSE}",
        "User's goal: {}",
        Importance.HIGH,
        "goal",
    ),
    _rule(
        "goal",
        rf"\bi(?: am|'m) (?:saving|planning|trying) (?:up )?(?:to|for) {_CLAUSE}",
        "User's goal: {}",
        Importance.HIGH,
        "goal",
    ),
    _rule("preference", rf"\bi prefer {_CLAUSE}", "User prefers {}", Importance.MEDIUM, "preference"),
    _rule(
        "preference",
        rf"\bmy risk tolerance is {_VALUE}",
        "User's risk tolerance: {}",
        Importance.MEDIUM,
        "preference",
    ),
    _rule("location", rf"\bi live in {_VALUE}", "User lives in {}", Importance.MEDIUM, "identity"),
    _rule(
        "location",
        rf"\bi(?: am|'m) (?:from|based in) {_VALUE}",
        "User is from {}",
        Importance.MEDIUM,
        "identity",
    ),
    _rule(
        "work",
        rf"\bi work ((?:at|for|in|as) [^.,!?;\n]+)",
        "User works {}",
        Importance.MEDIUM,
        "identity",
    ),
    _rule(
        "remember",
        rf"(?:^|[.!?\n]\s*|\bplease\s+)remember (?:that )?{_CLAUSE}",
        "User asked to remember: {}",
        Importance.HIGH,
        "note",
    ),
    _rule(
        "insight",
        r"\b(?:key (?:insight|takeaway):?|takeaway:|important:)\s*([^\n]+)",
        "Insight: {}",
        Importance.LOW,
        "insight",
        source="response",
    ),
    _rule(
        "insight",
        r"\bbottom line:\s*([^\n]+)",
        "Insight: {}",
        Importance.LOW,
        "insight",
        source="response",
    ),
)


def _clean_value(value: str) -> str:
    """Trim whitespace, markdown emphasis and trailing punctuation."""
    value = value.replace("**", "").replace("__", "")
    return value.strip().strip("*_\"'`").rstrip(" .,:;").strip()


class FactExtractor:
    """Derives durable facts from a (user message, model response) pair.

    Extraction is pure: it never touches storage. Writing the candidates
    is the caller's job.
    """

    def __init__(
        self,
        rules: tuple[FactRule, ...] = FACT_RULES,
        persist_response_chars: int = 500,
        persist_specialist_chars: int = 200,
    ) -> None:
        """Initialize the extractor.

        Args:
            rules: Extraction rule table.
            persist_response_chars: Response length that alone justifies persisting.
            persist_specialist_chars: Lower threshold for specialist query types.
        """
        self.rules = rules
        self.persist_response_chars = persist_response_chars
        self.persist_specialist_chars = persist_specialist_chars

    def extract(self, user_message: str, model_response: str = "") -> list[FactCandidate]:
        """Extract candidate facts from an exchange.

        Args:
            user_message: What the user wrote.
            model_response: What the model answered.

        Returns:
            Candidates in rule order, deduplicated by content hash.
        """
        candidates: list[FactCandidate] = []
        seen: set[str] = set()

        for rule in self.rules:
            text = user_message if rule.source == "user" else model_response
            if not text:
                continue

            for match in rule.pattern.finditer(text):
                value = _clean_value(match.group(1))
                if not MIN_VALUE_CHARS <= len(value) <= MAX_VALUE_CHARS:
                    continue

                fact_text = rule.template.format(value)
                if not MIN_FACT_CHARS <= len(fact_text) <= MAX_FACT_CHARS:
                    continue

                candidate = FactCandidate(
                    fact_text=fact_text,
                    importance=rule.importance,
                    category=rule.category,
                    label=rule.label,
                )
                if candidate.content_hash in seen:
                    continue
                seen.add(candidate.content_hash)
                candidates.append(candidate)

        return candidates

    def should_persist(
        self,
        user_message: str,
        model_response: str,
        query_type: QueryType | None = None,
    ) -> bool:
        """Decide whether an exchange is worth persisting at all.

        True when the user message carries a trigger phrase, when the
        response is long, or when a specialist answer passes a lower bar.
        """
        lowered = user_message.lower()
        if any(trigger in lowered for trigger in PERSIST_TRIGGERS):
            return True

        if len(model_response) > self.persist_response_chars:
            return True

        return (
            query_type in SPECIALIST_TYPES
            and len(model_response) > self.persist_specialist_chars
        )
