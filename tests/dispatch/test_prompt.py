"""Tests for system prompt building."""

from duet.classifier import Complexity, PreferredBackend, QueryClassification, QueryType
from duet.dispatch import build_fallback_prompt, build_system_prompt, format_dual_response
from duet.dispatch.prompt import (
    FALLBACK_SYSTEM_PROMPT,
    LENGTH_HINTS,
    MEMORY_INSTRUCTIONS,
    SYSTEM_PROMPT_BASE,
)


def make_classification(complexity=Complexity.SIMPLE, memory_relevant=False) -> QueryClassification:
    return QueryClassification(
        query_type=QueryType.GENERAL,
        complexity=complexity,
        preferred_backend=PreferredBackend.FAST,
        confidence=0.5,
        max_response_tokens=1200,
        is_memory_relevant=memory_relevant,
    )


def test_base_prompt_and_length_hint():
    prompt = build_system_prompt("", make_classification(Complexity.MAXIMUM))
    assert prompt.startswith(SYSTEM_PROMPT_BASE)
    assert LENGTH_HINTS[Complexity.MAXIMUM] in prompt
    assert "<context>" not in prompt


def test_context_wrapped_in_tags():
    prompt = build_system_prompt("User's name: Dara", make_classification())
    assert "<context>\nUser's name: Dara\n</context>" in prompt


def test_memory_instructions_only_when_relevant():
    assert MEMORY_INSTRUCTIONS not in build_system_prompt("ctx", make_classification())
    assert MEMORY_INSTRUCTIONS in build_system_prompt("ctx", make_classification(memory_relevant=True))


def test_fallback_prompt_truncates_context():
    prompt = build_fallback_prompt("abcdefghij", 4)
    assert prompt == f"{FALLBACK_SYSTEM_PROMPT}\n\n<context>\nabcd\n</context>"


def test_fallback_prompt_without_context():
    assert build_fallback_prompt("  ", 500) == FALLBACK_SYSTEM_PROMPT


def test_dual_response_format():
    text = format_dual_response([("Quick Analysis", " fast \n"), ("Deep Analysis", "slow")])
    assert text == "**Quick Analysis:**\nfast\n\n**Deep Analysis:**\nslow"
