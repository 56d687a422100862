"""Response cleanup, length budgeting and transport chunking."""

import math
import re
from dataclasses import dataclass

from ..classifier import QueryClassification
from ..config import ResponseConfig

TRUNCATION_NOTICE = "\n\n*(Response truncated for length)*"
CHARS_PER_TOKEN = 4
# Minimum room kept in every chunk for a "(12/13)" style marker.
MARKER_RESERVE = 12

_FENCED_CODE = re.compile(r"```[\w+-]*\n?(.*?)```", re.DOTALL)
_EXCESS_EMPHASIS = re.compile(r"\*{3,}")
_DEEP_HEADER = re.compile(r"^#{4,6}\s+(.+)$", re.MULTILINE)
_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")
_THINKING_BLOCK = re.compile(r"<thinking>.*?</thinking>", re.DOTALL | re.IGNORECASE)
_CONFIDENCE_MARKER = re.compile(r"\s*\((?:confidence|certainty):\s*\d+%\)", re.IGNORECASE)
_REASONING_TAG = re.compile(r"\[/?(?:reasoning|thinking)\]", re.IGNORECASE)

# Truncation boundaries, most preferred first. Cut happens at match.start().
_TRUNCATION_BOUNDARIES = (
    re.compile(r"\n\n"),
    re.compile(r"\n(?:#{1,3} |---|\*\*)"),
    re.compile(r"(?<=[.!?])\s"),
)

# Split boundaries, most preferred first. Cut happens at match.end().
_SPLIT_BOUNDARIES = (
    re.compile(r"\n[ \t]*\n\s*"),
    re.compile(r"\n\s*"),
    re.compile(r"(?:(?<=[.!?])|(?<=[.!?][)\"']))\s+"),
    re.compile(r"\s+"),
)


@dataclass(frozen=True)
class Chunk:
    """One transport-sized unit of outbound text."""

    text: str
    index: int
    total: int


def _marker(index: int, total: int) -> str:
    return f"\n\n({index}/{total})"


def _replace_fence(match: re.Match[str]) -> str:
    code = match.group(1).strip("\n")
    if "\n" not in code:
        return f"`{code}`"
    return code


def clean_response(text: str) -> str:
    """Strip artifact markers without dropping content."""
    text = _THINKING_BLOCK.sub("", text)
    text = _FENCED_CODE.sub(_replace_fence, text)
    text = _EXCESS_EMPHASIS.sub("**", text)
    text = _DEEP_HEADER.sub(r"• \1", text)
    text = _CONFIDENCE_MARKER.sub("", text)
    text = _REASONING_TAG.sub("", text)
    text = _EXCESS_BLANK_LINES.sub("\n\n", text)
    return text.strip()


def estimate_tokens(text: str) -> int:
    """Rough token count, about four characters per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _is_markup_balanced(text: str) -> bool:
    """True when no inline code span or bold run is left open."""
    return text.count("`") % 2 == 0 and text.count("**") % 2 == 0


def enforce_budget(
    text: str,
    max_tokens: int,
    safety_ratio: float = 0.9,
) -> tuple[str, bool]:
    """Truncate text that exceeds a token budget.

    The cut lands on a paragraph, section marker or sentence end between
    70% and ``safety_ratio`` of the character budget, falling back to the
    last word boundary. A notice is appended when text is cut.

    Returns:
        The possibly shortened text and whether it was truncated.
    """
    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text, False

    limit = int(max_chars * safety_ratio)
    floor = int(max_chars * 0.7)
    window = text[:limit]

    cut = -1
    for pattern in _TRUNCATION_BOUNDARIES:
        positions = [m.start() for m in pattern.finditer(window) if m.start() >= floor]
        if positions:
            cut = positions[-1]
            break

    if cut < 0:
        space = window.rfind(" ")
        cut = space if space > 0 else limit

    return window[:cut].rstrip() + TRUNCATION_NOTICE, True


def _find_split(text: str, limit: int, floor: int) -> int:
    """Index to cut ``text`` at so that the head fits in ``limit`` chars."""
    window = text[: limit + 1]
    # Preferred margin first, then anywhere, then ignore open markup.
    passes = ((True, floor), (True, 1), (False, 1))
    for require_balanced, min_head in passes:
        for pattern in _SPLIT_BOUNDARIES:
            for match in reversed(list(pattern.finditer(window))):
                head_end = match.start()
                if head_end < min_head:
                    break
                if head_end > limit:
                    continue
                if require_balanced and not _is_markup_balanced(text[:head_end]):
                    continue
                return match.end()
    return limit


def split_message(text: str, max_length: int, margin_ratio: float = 0.9) -> list[str]:
    """Split text into pieces of at most ``max_length`` characters.

    Cuts prefer, in order, a paragraph break, a line break, a sentence end
    and a word boundary within the last part of each window. A word is cut
    only when it alone is longer than ``max_length``.
    """
    if max_length < 1:
        raise ValueError("max_length must be positive")

    pieces: list[str] = []
    remaining = text.strip()
    floor = max(1, int(max_length * margin_ratio))

    while len(remaining) > max_length:
        cut = _find_split(remaining, max_length, floor)
        head = remaining[:cut].rstrip()
        if head:
            pieces.append(head)
        remaining = remaining[cut:].lstrip()

    if remaining:
        pieces.append(remaining)
    return pieces


class ResponseAssembler:
    """Turns raw backend text into ordered transport chunks."""

    def __init__(self, config: ResponseConfig | None = None) -> None:
        self.config = config or ResponseConfig()

    def assemble(self, raw_text: str, classification: QueryClassification) -> list[Chunk]:
        """Clean, budget and chunk a backend response.

        Args:
            raw_text: Text returned by the dispatcher.
            classification: Routing decision, for the token budget.

        Returns:
            Chunks in delivery order; none longer than ``max_unit_length``.
        """
        text = clean_response(raw_text)
        if self.config.apply_budget:
            budget = int(classification.max_response_tokens * self.config.budget_multiplier)
            text, _ = enforce_budget(text, budget, self.config.safety_ratio)
        return self.chunk(text)

    def chunk(self, text: str) -> list[Chunk]:
        """Split text into numbered chunks that fit the transport limit."""
        max_length = self.config.max_unit_length
        if len(text) <= max_length:
            return [Chunk(text=text, index=1, total=1)] if text.strip() else []

        use_markers = max_length > MARKER_RESERVE * 2
        if not use_markers:
            pieces = split_message(text, max_length, self.config.safety_ratio)
        else:
            pieces = self._split_with_markers(text, max_length)

        total = len(pieces)
        return [
            Chunk(
                text=piece + _marker(i, total) if use_markers else piece,
                index=i,
                total=total,
            )
            for i, piece in enumerate(pieces, start=1)
        ]

    def _split_with_markers(self, text: str, max_length: int) -> list[str]:
        """Split so each piece plus its widest marker fits in ``max_length``.

        The reserve grows until it covers the marker for the final piece
        count, e.g. "(1000/1539)" once there are a thousand pieces.
        """
        reserve = MARKER_RESERVE
        while True:
            pieces = split_message(text, max_length - reserve, self.config.safety_ratio)
            needed = len(_marker(len(pieces), len(pieces)))
            if needed <= reserve:
                return pieces
            reserve = needed
