"""Response assembly for the message transport."""

from .assembler import (
    TRUNCATION_NOTICE,
    Chunk,
    ResponseAssembler,
    clean_response,
    enforce_budget,
    estimate_tokens,
    split_message,
)

__all__ = [
    "Chunk",
    "ResponseAssembler",
    "TRUNCATION_NOTICE",
    "clean_response",
    "enforce_budget",
    "estimate_tokens",
    "split_message",
]
