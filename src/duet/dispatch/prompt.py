"""Prompt builder for backend calls."""

from ..classifier import Complexity, QueryClassification

SYSTEM_PROMPT_BASE = """You are Duet, a conversational assistant for personal finance, markets and everyday questions.

Answer clearly and directly. Prefer short paragraphs and bullet points over deep heading levels, and avoid code blocks unless the user asks for code.
If you are not sure about a figure or a fact, say so instead of guessing."""

MEMORY_INSTRUCTIONS = """Use what you know about the user when it is relevant to the answer. Do not recite the context back to the user."""

LENGTH_HINTS = {
    Complexity.MINIMAL: "Reply in one or two sentences.",
    Complexity.SIMPLE: "Keep the reply short.",
    Complexity.MEDIUM: "Give a focused answer of a few paragraphs at most.",
    Complexity.COMPLEX: "Give a structured, thorough answer.",
    Complexity.MAXIMUM: "Give a comprehensive, well-structured analysis.",
}

FALLBACK_SYSTEM_PROMPT = """You are Duet, a helpful assistant. Answer the user's message briefly and accurately."""


def build_system_prompt(
    context_block: str,
    classification: QueryClassification,
    live_data: str = "",
) -> str:
    """Build the system prompt with context, live data and length guidance.

    Args:
        context_block: Rendered memory and history for this user.
        classification: Routing decision for the message.
        live_data: Optional market snapshot.

    Returns:
        Complete system prompt string.
    """
    prompt = SYSTEM_PROMPT_BASE
    prompt += "\n\n" + LENGTH_HINTS[classification.complexity]

    if classification.is_memory_relevant:
        prompt += "\n" + MEMORY_INSTRUCTIONS

    if context_block.strip():
        prompt += f"\n\n<context>\n{context_block}\n</context>"

    if live_data.strip():
        prompt += f"\n\n<live_data>\n{live_data}\n</live_data>"

    return prompt


def build_fallback_prompt(context_block: str, max_context_chars: int) -> str:
    """Reduced system prompt for the secondary attempt."""
    if not context_block.strip() or max_context_chars <= 0:
        return FALLBACK_SYSTEM_PROMPT
    excerpt = context_block[:max_context_chars]
    return f"{FALLBACK_SYSTEM_PROMPT}\n\n<context>\n{excerpt}\n</context>"


def format_dual_response(sections: list[tuple[str, str]]) -> str:
    """Join labeled answers from several backends."""
    return "\n\n".join(f"**{label}:**\n{text.strip()}" for label, text in sections)
