"""Query classification: category, complexity and backend preference."""

from .classifier import classify, default_classification, score_complexity
from .models import (
    SPECIALIST_TYPES,
    Complexity,
    PreferredBackend,
    QueryClassification,
    QueryType,
    SpecializedFunction,
)
from .rules import CATEGORY_RULES, CategoryRule

__all__ = [
    "CATEGORY_RULES",
    "CategoryRule",
    "Complexity",
    "PreferredBackend",
    "QueryClassification",
    "QueryType",
    "SPECIALIST_TYPES",
    "SpecializedFunction",
    "classify",
    "default_classification",
    "score_complexity",
]
