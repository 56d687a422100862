"""Category rule table and scoring vocabularies for the query classifier.

Keyword lists here are tuning data. Extend them freely; the classifier's
control flow only depends on the order of CATEGORY_RULES.
"""

import re
from dataclasses import dataclass

from .models import PreferredBackend, QueryType, SpecializedFunction


@dataclass(frozen=True)
class CategoryRule:
    """One entry of the ordered category table.

    Attributes:
        query_type: Category assigned when the rule matches.
        patterns: Any match wins. Applied to lower-cased text.
        backend: Default backend before complexity is taken into account.
        confidence: Confidence reported for a match.
        needs_live_data: Whether answers benefit from a market snapshot.
        is_memory_relevant: Whether stored facts matter for this category.
        specialized_function: Specialist analysis replacing the generic call.
        requires_attachment: Matches only messages carrying an attachment.
        caps_complexity: Forces complexity down to SIMPLE at most.
    """

    query_type: QueryType
    patterns: tuple[re.Pattern[str], ...] = ()
    backend: PreferredBackend = PreferredBackend.FAST
    confidence: float = 0.7
    needs_live_data: bool = False
    is_memory_relevant: bool = False
    specialized_function: SpecializedFunction | None = None
    requires_attachment: bool = False
    caps_complexity: bool = False

    def matches(self, text: str, has_attachment: bool) -> bool:
        if self.requires_attachment:
            return has_attachment
        return any(pattern.search(text) for pattern in self.patterns)


def _patterns(*sources: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(source) for source in sources)


CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(
        query_type=QueryType.MULTIMODAL,
        requires_attachment=True,
        confidence=0.95,
    ),
    CategoryRule(
        query_type=QueryType.MEMORY,
        patterns=_patterns(
            r"\b(remember|recall|you mentioned|we discussed|last time|previously)\b",
            r"\b(my name|my preference|i told you|i said|you know my)\b",
            r"\b(as we discussed|like i mentioned|you said|we talked about)\b",
        ),
        confidence=0.9,
        is_memory_relevant=True,
    ),
    CategoryRule(
        query_type=QueryType.DATETIME,
        patterns=_patterns(
            r"^(what time|what's the time|current time|time now)\b",
            r"^(what date|what's the date|today's date|current date)\b",
            r"^(what day|which day) (is it|is today)\b",
        ),
        confidence=0.95,
        caps_complexity=True,
    ),
    CategoryRule(
        query_type=QueryType.CASUAL,
        patterns=_patterns(
            r"^(hello|hi|hey|yo|good (morning|afternoon|evening)|what'?s up)[\s!.?]*$",
            r"^how are you( doing)?[\s!.?]*$",
            r"^(thanks|thank you|cool|nice|great|awesome)[\s!.?]*$",
            r"^(ok|okay|got it|understood|sure)[\s!.?]*$",
        ),
        confidence=0.95,
        caps_complexity=True,
    ),
    CategoryRule(
        query_type=QueryType.REGIME,
        patterns=_patterns(
            r"\b(economic|market) regime\b|\bregime analysis\b",
            r"\bgrowth\b.*\binflation\b",
            r"\b(all weather|ray dalio|bridgewater)\b",
            r"\b(recession|stagflation|reflation)\b",
        ),
        backend=PreferredBackend.REASONING,
        confidence=0.9,
        needs_live_data=True,
        is_memory_relevant=True,
        specialized_function=SpecializedFunction.REGIME,
    ),
    CategoryRule(
        query_type=QueryType.ANOMALY,
        patterns=_patterns(
            r"\b(anomaly|anomalies|market stress|crisis)\b",
            r"\b(bubble|crash|panic|volatility spike)\b",
            r"\byield curve\b.*\binver|\binverted yield\b",
            r"\bcredit spreads?\b",
        ),
        backend=PreferredBackend.REASONING,
        confidence=0.85,
        needs_live_data=True,
        specialized_function=SpecializedFunction.ANOMALY,
    ),
    CategoryRule(
        query_type=QueryType.PORTFOLIO,
        patterns=_patterns(
            r"\bportfolio\b.*\boptimi[sz]",
            r"\b(rebalanc\w*|diversif\w*|correlation)\b",
            r"\b(risk[- ]adjusted|hedg\w*|position siz\w*)\b",
            r"\basset allocation\b",
        ),
        backend=PreferredBackend.REASONING,
        confidence=0.85,
        is_memory_relevant=True,
        specialized_function=SpecializedFunction.PORTFOLIO,
    ),
    CategoryRule(
        query_type=QueryType.REGIONAL,
        patterns=_patterns(
            r"\b(cambodia|cambodian|khmer|phnom penh|siem reap)\b",
            r"\busd\W*khr\b|\briel\b",
        ),
        backend=PreferredBackend.REASONING,
        confidence=0.85,
        needs_live_data=True,
        is_memory_relevant=True,
        specialized_function=SpecializedFunction.REGIONAL,
    ),
    CategoryRule(
        query_type=QueryType.MARKET,
        patterns=_patterns(
            r"\b(market|stocks?|bonds?|crypto|bitcoin|forex|etf)\b",
            r"\b(trading|investment|invest|buy|sell)\b",
            r"\b(price|exchange rate|yield|returns?)\b",
            r"\b(forecast|outlook)\b",
        ),
        confidence=0.75,
        needs_live_data=True,
    ),
    CategoryRule(
        query_type=QueryType.COMPLEX,
        patterns=_patterns(
            r"\b(strategy|strategic|comprehensive)\b",
            r"\b(detailed|thorough|in-depth)\b",
            r"\b(compare|comparison|versus|vs\.?)\b",
            r"\b(research|evaluate|assess)\b",
        ),
        backend=PreferredBackend.REASONING,
        confidence=0.7,
        is_memory_relevant=True,
    ),
)

DEFAULT_RULE = CategoryRule(query_type=QueryType.GENERAL, confidence=0.5)

# Base response budget in tokens per category.
TOKEN_BUDGETS: dict[QueryType, int] = {
    QueryType.MULTIMODAL: 1500,
    QueryType.MEMORY: 1500,
    QueryType.DATETIME: 200,
    QueryType.CASUAL: 400,
    QueryType.REGIME: 2500,
    QueryType.ANOMALY: 2000,
    QueryType.PORTFOLIO: 2500,
    QueryType.REGIONAL: 2000,
    QueryType.MARKET: 1500,
    QueryType.COMPLEX: 3000,
    QueryType.GENERAL: 1200,
    QueryType.UNKNOWN: 400,
}
MAX_RESPONSE_TOKENS = 4000

COMPLEX_VOCABULARY = _patterns(
    r"\b(analy[sz]e|analysis|implications?|trade-?offs?|scenarios?)\b",
    r"\b(explain why|step by step|pros and cons|in detail)\b",
)

TECHNICAL_VOCABULARY = _patterns(
    r"\b(volatility|liquidity|duration|convexity|sharpe|beta|alpha)\b",
    r"\b(inflation|gdp|monetary policy|fiscal|interest rates?|fed)\b",
    r"\b(derivatives?|options?|futures|leverage|margin)\b",
    r"\b(equities|fixed income|commodities|treasur(y|ies))\b",
)

CLAUSE_MARKERS = re.compile(r"\b(and|but|because|while|whereas|however|although)\b|;")
