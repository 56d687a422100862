"""LLM backends the dispatcher can call."""

from .anthropic_backend import AnthropicBackend
from .base import Backend, BackendError, BackendErrorKind, Completion
from .groq_backend import GroqBackend
from .specialized import SPECIALIST_PROMPTS, SpecializedBackend

__all__ = [
    "AnthropicBackend",
    "Backend",
    "BackendError",
    "BackendErrorKind",
    "Completion",
    "GroqBackend",
    "SPECIALIST_PROMPTS",
    "SpecializedBackend",
]
