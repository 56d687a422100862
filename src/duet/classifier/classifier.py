"""Deterministic query classification.

The classifier is a pure function of its inputs: it performs no I/O and
keeps no state, so the same text always produces the same routing.
"""

import re

from .models import (
    Complexity,
    PreferredBackend,
    QueryClassification,
    QueryType,
)
from .rules import (
    CATEGORY_RULES,
    CLAUSE_MARKERS,
    COMPLEX_VOCABULARY,
    DEFAULT_RULE,
    MAX_RESPONSE_TOKENS,
    TECHNICAL_VOCABULARY,
    TOKEN_BUDGETS,
    CategoryRule,
)

PERSONAL_REFERENCE = re.compile(r"\b(i|me|my|mine|i'm|i've)\b")
SENTENCE_END = re.compile(r"[.!?]+(?:\s|$)")

# (upper bound exclusive, complexity) pairs for bucketing the score.
COMPLEXITY_BUCKETS = (
    (1.0, Complexity.MINIMAL),
    (3.0, Complexity.SIMPLE),
    (5.0, Complexity.MEDIUM),
    (8.0, Complexity.COMPLEX),
)


def default_classification(reason: str = "fallback") -> QueryClassification:
    """Classification used when classification itself fails."""
    return QueryClassification(
        query_type=QueryType.GENERAL,
        complexity=Complexity.MINIMAL,
        preferred_backend=PreferredBackend.FAST,
        confidence=0.0,
        max_response_tokens=TOKEN_BUDGETS[QueryType.GENERAL],
        reason=reason,
    )


def score_complexity(text: str) -> float:
    """Weighted complexity score of lower-cased text."""
    score = 0.0

    length = len(text)
    if length >= 500:
        score += 4
    elif length >= 200:
        score += 3
    elif length >= 60:
        score += 2
    elif length >= 10:
        score += 1

    words = len(text.split())
    if words > 120:
        score += 3
    elif words > 60:
        score += 2
    elif words > 20:
        score += 1

    score += min(text.count("?"), 3) * 0.5

    sentences = len(SENTENCE_END.findall(text))
    if sentences > 6:
        score += 2
    elif sentences > 3:
        score += 1

    score += min(sum(1 for p in COMPLEX_VOCABULARY if p.search(text)) * 1.5, 3.0)
    score += min(sum(1 for p in TECHNICAL_VOCABULARY if p.search(text)), 3)
    score += min(len(CLAUSE_MARKERS.findall(text)) * 0.5, 2.0)

    return score


def bucket_complexity(score: float) -> Complexity:
    """Map a complexity score onto the ordered scale."""
    for upper, complexity in COMPLEXITY_BUCKETS:
        if score < upper:
            return complexity
    return Complexity.MAXIMUM


def match_rule(text: str, has_attachment: bool = False) -> CategoryRule:
    """Return the first rule matching the text, in precedence order."""
    for rule in CATEGORY_RULES:
        if rule.matches(text, has_attachment):
            return rule
    return DEFAULT_RULE


def _select_backend(
    rule: CategoryRule,
    complexity: Complexity,
    prior_context_available: bool,
) -> PreferredBackend:
    if rule.caps_complexity:
        return PreferredBackend.FAST

    strong_category = (
        rule.specialized_function is not None
        or rule.query_type is QueryType.COMPLEX
    )
    if strong_category and complexity >= Complexity.COMPLEX and prior_context_available:
        return PreferredBackend.BOTH
    if strong_category or complexity >= Complexity.COMPLEX:
        return PreferredBackend.REASONING
    return rule.backend


def classify(
    text: str,
    prior_context_available: bool = False,
    has_attachment: bool = False,
) -> QueryClassification:
    """Classify a message for routing.

    Args:
        text: The raw message text. Callers reject non-string input.
        prior_context_available: Whether the user has a meaningful history.
        has_attachment: Whether the message carried a document or media.

    Returns:
        The routing decision for this message.
    """
    normalized = text.strip().lower()

    if not normalized and not has_attachment:
        return QueryClassification(
            query_type=QueryType.UNKNOWN,
            complexity=Complexity.MINIMAL,
            preferred_backend=PreferredBackend.FAST,
            confidence=0.0,
            max_response_tokens=TOKEN_BUDGETS[QueryType.UNKNOWN],
            reason="empty input",
        )

    rule = match_rule(normalized, has_attachment)

    complexity = bucket_complexity(score_complexity(normalized))
    if rule.caps_complexity:
        complexity = min(complexity, Complexity.SIMPLE)

    max_tokens = TOKEN_BUDGETS[rule.query_type]
    if complexity >= Complexity.COMPLEX:
        max_tokens = int(max_tokens * 1.5)

    reason = (
        f"matched {rule.query_type.value} rule"
        if rule is not DEFAULT_RULE
        else "no category matched"
    )

    return QueryClassification(
        query_type=rule.query_type,
        complexity=complexity,
        preferred_backend=_select_backend(rule, complexity, prior_context_available),
        confidence=rule.confidence,
        max_response_tokens=min(max_tokens, MAX_RESPONSE_TOKENS),
        needs_live_data=rule.needs_live_data,
        is_memory_relevant=rule.is_memory_relevant
        or bool(PERSONAL_REFERENCE.search(normalized)),
        specialized_function=rule.specialized_function,
        reason=reason,
    )
