"""Tests for response cleanup, budgeting and chunking."""

import math

import pytest

from duet.classifier import Complexity, PreferredBackend, QueryClassification, QueryType
from duet.config import ResponseConfig
from duet.response import ResponseAssembler, clean_response, enforce_budget, split_message
from duet.response.assembler import TRUNCATION_NOTICE, estimate_tokens

SENTENCE = "The market moved sideways again today. "


def make_classification(max_tokens: int = 1200) -> QueryClassification:
    return QueryClassification(
        query_type=QueryType.GENERAL,
        complexity=Complexity.MEDIUM,
        preferred_backend=PreferredBackend.FAST,
        confidence=0.5,
        max_response_tokens=max_tokens,
    )


def body(chunk_text: str) -> str:
    """Chunk text without its (i/n) marker."""
    return chunk_text.rsplit("\n\n(", 1)[0]


class TestCleanResponse:
    """Tests for artifact removal."""

    def test_removes_thinking_block(self):
        assert clean_response("<thinking>hmm</thinking>Answer") == "Answer"

    def test_single_line_fence_becomes_inline(self):
        assert clean_response("Run ```bash\nls -la\n``` now") == "Run `ls -la` now"

    def test_multi_line_fence_keeps_code(self):
        text = clean_response("Code:\n```python\nx = 1\ny = 2\n```")
        assert text == "Code:\nx = 1\ny = 2"

    def test_excess_emphasis(self):
        assert clean_response("***important***") == "**important**"

    def test_deep_headers_become_bullets(self):
        assert clean_response("#### Details\ntext") == "• Details\ntext"

    def test_shallow_headers_kept(self):
        assert clean_response("## Summary") == "## Summary"

    def test_confidence_markers_removed(self):
        assert clean_response("Rates will rise (confidence: 80%).") == "Rates will rise."

    def test_blank_lines_collapsed(self):
        assert clean_response("a\n\n\n\n\nb") == "a\n\nb"


class TestEnforceBudget:
    """Tests for token budget truncation."""

    def test_within_budget_untouched(self):
        assert enforce_budget("short answer", max_tokens=100) == ("short answer", False)

    def test_cuts_at_paragraph(self):
        text = "a" * 300 + "\n\n" + "b" * 300
        result, truncated = enforce_budget(text, max_tokens=100)

        assert truncated
        assert result == "a" * 300 + TRUNCATION_NOTICE

    def test_falls_back_to_word_boundary(self):
        result, truncated = enforce_budget("word " * 200, max_tokens=100)

        assert truncated
        assert result.endswith(TRUNCATION_NOTICE)
        assert set(result[: -len(TRUNCATION_NOTICE)].split()) == {"word"}

    def test_estimate_tokens(self):
        assert estimate_tokens("abcdefgh") == 2
        assert estimate_tokens("abc") == 1


class TestSplitMessage:
    """Tests for boundary-aware splitting."""

    def test_prefers_paragraph(self):
        assert split_message("aaaa\n\nbbbb", 8) == ["aaaa", "bbbb"]

    def test_long_word_hard_cut(self):
        assert split_message("x" * 25, 10) == ["x" * 10, "x" * 10, "x" * 5]

    def test_keeps_code_span_together(self):
        assert split_message("alpha `beta gamma` delta epsilon", 15) == [
            "alpha",
            "`beta gamma`",
            "delta epsilon",
        ]

    def test_invalid_length(self):
        with pytest.raises(ValueError):
            split_message("text", 0)


class TestResponseAssembler:
    """Tests for the full assemble/chunk path."""

    def test_long_response_chunk_count(self):
        """A 50,000 char answer over a 4096 char transport needs 13 chunks."""
        text = (SENTENCE * 1300)[:50000]
        assembler = ResponseAssembler(ResponseConfig(max_unit_length=4096, apply_budget=False))

        chunks = assembler.chunk(text)

        assert len(chunks) == math.ceil(50000 / 4096)
        assert all(len(c.text) <= 4096 for c in chunks)
        assert all(body(c.text).endswith(".") for c in chunks[:-1])
        assert [c.index for c in chunks] == list(range(1, 14))
        assert chunks[0].text.endswith("(1/13)")

    def test_chunks_preserve_content(self):
        text = " ".join(f"Sentence number {i} is here." for i in range(40))
        assembler = ResponseAssembler(ResponseConfig(max_unit_length=200, apply_budget=False))

        chunks = assembler.chunk(text)

        rejoined = " ".join(body(c.text) for c in chunks)
        assert rejoined.split() == text.split()

    def test_short_text_single_chunk(self):
        chunks = ResponseAssembler().chunk("Hello!")
        assert len(chunks) == 1
        assert chunks[0].text == "Hello!"
        assert chunks[0].total == 1

    def test_empty_text_no_chunks(self):
        assert ResponseAssembler().chunk("   ") == []

    def test_tiny_limit_skips_markers(self):
        assembler = ResponseAssembler(ResponseConfig(max_unit_length=20, apply_budget=False))
        chunks = assembler.chunk("one two three four five six seven eight")
        assert all(len(c.text) <= 20 for c in chunks)
        assert "(1/" not in chunks[0].text

    def test_four_digit_markers_fit_limit(self):
        assembler = ResponseAssembler(ResponseConfig(max_unit_length=25, apply_budget=False))

        chunks = assembler.chunk("x" * 20000)

        assert len(chunks) > 1000
        assert all(len(c.text) <= 25 for c in chunks)
        assert chunks[999].text.endswith(f"(1000/{len(chunks)})")
        assert chunks[-1].text.endswith(f"({len(chunks)}/{len(chunks)})")
        assert "".join(body(c.text) for c in chunks) == "x" * 20000

    def test_assemble_applies_budget(self):
        assembler = ResponseAssembler(ResponseConfig(budget_multiplier=1.0))
        raw = SENTENCE * 60

        chunks = assembler.assemble(raw, make_classification(max_tokens=100))

        assert len(chunks) == 1
        assert chunks[0].text.endswith(TRUNCATION_NOTICE)
        assert len(chunks[0].text) <= 400 + len(TRUNCATION_NOTICE)

    def test_assemble_cleans_first(self):
        chunks = ResponseAssembler().assemble("<thinking>x</thinking>Done.", make_classification())
        assert chunks[0].text == "Done."
