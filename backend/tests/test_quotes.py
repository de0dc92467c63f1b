"""Tests for the quote generator."""

import pytest
from conftest import FakeCompletion
from vigil.services.quotes import (
    FALLBACK_QUOTE,
    MAX_QUOTE_LENGTH,
    QuoteGenerator,
    build_quote_prompt,
    truncate_quote,
)


class TestTruncateQuote:
    """Test notification length capping."""

    def test_short_text_unchanged(self):
        assert truncate_quote("Be still.") == "Be still."

    def test_exact_limit_unchanged(self):
        text = "a" * MAX_QUOTE_LENGTH
        assert truncate_quote(text) == text

    def test_long_text_truncated(self):
        """Over-long text keeps 147 characters and an ellipsis."""
        result = truncate_quote("b" * 200)
        assert len(result) == MAX_QUOTE_LENGTH
        assert result == "b" * 147 + "..."


class TestBuildQuotePrompt:
    """Test prompt construction."""

    def test_personalized_prompt_includes_messages(self):
        prompt = build_quote_prompt(["I feel lost", "How do I pray?"])
        assert '"I feel lost" "How do I pray?"' in prompt
        assert "previous messages" in prompt

    def test_generic_prompt(self):
        prompt = build_quote_prompt([])
        assert "biblical" in prompt
        assert "previous messages" not in prompt


class TestQuoteGenerator:
    """Test quote generation."""

    @pytest.mark.asyncio
    async def test_returns_stripped_quote(self):
        generator = QuoteGenerator(FakeCompletion(reply="  Walk in the light.\n"))
        assert await generator.generate_quote() == "Walk in the light."

    @pytest.mark.asyncio
    async def test_long_quote_truncated(self):
        generator = QuoteGenerator(FakeCompletion(reply="c" * 400))
        quote = await generator.generate_quote(["hello"])
        assert len(quote) <= MAX_QUOTE_LENGTH
        assert quote.endswith("...")

    @pytest.mark.asyncio
    async def test_failure_returns_fallback(self):
        """Any completion failure yields the fallback quote."""
        generator = QuoteGenerator(FakeCompletion(error=TimeoutError("slow")))
        assert await generator.generate_quote(["hello"]) == FALLBACK_QUOTE

    @pytest.mark.asyncio
    async def test_blank_reply_returns_fallback(self):
        generator = QuoteGenerator(FakeCompletion(reply=""))
        assert await generator.generate_quote() == FALLBACK_QUOTE
