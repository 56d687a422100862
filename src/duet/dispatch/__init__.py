"""Model dispatch: path selection, timeouts and fallback."""

from .dispatcher import (
    FALLBACK_MESSAGE,
    BackendUsed,
    Dispatcher,
    DispatchPlan,
    DispatchResult,
    DispatchStage,
)
from .prompt import build_fallback_prompt, build_system_prompt, format_dual_response

__all__ = [
    "BackendUsed",
    "DispatchPlan",
    "DispatchResult",
    "DispatchStage",
    "Dispatcher",
    "FALLBACK_MESSAGE",
    "build_fallback_prompt",
    "build_system_prompt",
    "format_dual_response",
]
