"""Specialist analyses layered on top of a generic backend."""

from ..classifier import SpecializedFunction
from .base import Backend, Completion

SPECIALIST_PROMPTS: dict[SpecializedFunction, str] = {
    SpecializedFunction.REGIME: (
        "You are acting as a macro strategist. Frame the answer in terms of the "
        "growth/inflation regime quadrants (rising or falling growth, rising or "
        "falling inflation). State which regime current conditions suggest, the "
        "evidence for it, which asset classes have historically done well in it, "
        "and what would signal a regime change."
    ),
    SpecializedFunction.ANOMALY: (
        "You are acting as a market risk analyst. Identify stress signals and "
        "anomalies relevant to the question: volatility spikes, yield curve "
        "inversions, credit spread widening, liquidity shortfalls or bubble-like "
        "valuations. Rate severity as low, moderate or severe and say what to watch."
    ),
    SpecializedFunction.PORTFOLIO: (
        "You are acting as a portfolio construction advisor. Discuss allocation, "
        "diversification, correlation between holdings, risk-adjusted returns, "
        "hedging and position sizing. Tie recommendations to the user's stated "
        "goals and risk tolerance when known, and flag assumptions explicitly."
    ),
    SpecializedFunction.REGIONAL: (
        "You are acting as an analyst for Cambodia and the Mekong region. Account "
        "for the dual USD/KHR currency system, local banking and microfinance, "
        "the real estate market, and regional trade links. Prefer concrete local "
        "context over generic emerging-market commentary."
    ),
}


class SpecializedBackend(Backend):
    """Runs a specialist analysis through another backend.

    Shares the Backend request/response shape, so the dispatcher applies the
    same timeout and fallback handling as for generic calls.
    """

    def __init__(self, base: Backend, function: SpecializedFunction) -> None:
        super().__init__(base.model, f"{base.label} ({function.value})")
        self.base = base
        self.function = function
        self.provider = base.provider
        self.endpoint = f"{base.endpoint}:{function.value}"

    async def _complete(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        system: str | None,
    ) -> Completion:
        instructions = SPECIALIST_PROMPTS[self.function]
        merged = f"{system}\n\n{instructions}" if system else instructions
        return await self.base._complete(prompt, max_tokens, temperature, merged)
