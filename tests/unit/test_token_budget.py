"""Tests for token estimation and per-model code budgets."""

from unittest.mock import patch

import pytest

from sloppy_scan.config import Settings
from sloppy_scan.optimization.token_budget import (
    DEFAULT_INPUT_LIMIT,
    calculate_code_budget,
    code_budget_for_model,
    estimate_tokens,
    get_model_input_limit,
    tokens_to_chars,
)


class TestEstimateTokens:
    def test_exact_ratio(self):
        """320 characters at 3.2 chars/token is exactly 100 tokens."""
        assert estimate_tokens("a" * 320) == 100

    def test_empty_and_tiny(self):
        """Empty text costs nothing; any text costs at least one token."""
        assert estimate_tokens("") == 0
        assert estimate_tokens("abc") == 1

    @pytest.mark.parametrize("length", [1, 7, 33, 321, 5000])
    def test_monotone_in_length(self, length):
        """Appending text never lowers the estimate."""
        assert estimate_tokens("x" * length) <= estimate_tokens("x" * (length + 1))

    def test_tokens_to_chars(self):
        assert tokens_to_chars(100) == 320


class TestCodeBudget:
    def test_default_model_budget(self):
        """8000 input tokens minus 500 overhead leaves 24000 chars of code."""
        assert calculate_code_budget(8000) == 24000

    def test_floor_for_tiny_limits(self):
        """Limits below overhead still get the minimum code budget."""
        assert calculate_code_budget(100) == 3200
        assert calculate_code_budget(1500) == 3200

    def test_explicit_overrides_win(self):
        assert get_model_input_limit("openai/gpt-4o", {"openai/gpt-4o": 4000}) == 4000

    def test_unknown_model_uses_default(self):
        assert get_model_input_limit("acme/unknown", {}) == DEFAULT_INPUT_LIMIT

    def test_settings_overrides_and_default(self):
        """Configured limits and default ceiling come from settings."""
        settings = Settings(
            models={"input_limits": {"acme/big": 16000}, "default_input_limit": 4000}
        )
        with patch("sloppy_scan.optimization.token_budget.get_settings", return_value=settings):
            assert get_model_input_limit("acme/big") == 16000
            assert get_model_input_limit("acme/other") == 4000
            assert get_model_input_limit("openai/gpt-4o-mini") == 8000
            assert code_budget_for_model("acme/big") == calculate_code_budget(16000)
