"""
Unit tests for pricing calculations.

Tests cost accuracy, rounding behavior, and error handling.
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace

from stray_match.core.pricing import calculate_cost, PRICING_TABLE
from stray_match.core.token_counter import NO_USAGE, TokenUsage


class TestTokenUsage:
    """Test TokenUsage dataclass."""

    def test_total_tokens_calculation(self):
        """Verify total_tokens is computed correctly."""
        usage = TokenUsage(prompt_tokens=100, completion_tokens=50)
        assert usage.total_tokens == 150

    def test_zero_tokens(self):
        assert NO_USAGE.total_tokens == 0

    def test_from_response(self):
        usage = TokenUsage.from_response(SimpleNamespace(prompt_tokens=12, completion_tokens=3))
        assert usage == TokenUsage(prompt_tokens=12, completion_tokens=3)

    def test_from_response_missing_counts(self):
        assert TokenUsage.from_response(SimpleNamespace(prompt_tokens=None)) == NO_USAGE


class TestPricingTable:
    """Test pricing table functionality."""

    def test_get_supported_model(self):
        pricing = PRICING_TABLE.get_pricing("gpt-4o")
        assert pricing.prompt_cost_per_1k == Decimal("0.0025")
        assert pricing.completion_cost_per_1k == Decimal("0.01")

    def test_unsupported_model_raises_error(self):
        with pytest.raises(ValueError, match="Unsupported model: unknown-model"):
            PRICING_TABLE.get_pricing("unknown-model")


class TestCostCalculation:
    """Test cost calculation accuracy and rounding."""

    def test_exact_cost_gpt4o(self):
        usage = TokenUsage(prompt_tokens=2000, completion_tokens=500)
        # Prompt: 2000/1000 * $0.0025 = $0.005
        # Completion: 500/1000 * $0.01 = $0.005
        assert calculate_cost("gpt-4o", usage) == 0.01

    def test_exact_cost_gpt4o_mini(self):
        usage = TokenUsage(prompt_tokens=10000, completion_tokens=1000)
        # 10 * 0.00015 + 1 * 0.0006
        assert calculate_cost("gpt-4o-mini", usage) == 0.0021

    def test_rounds_up_to_six_places(self):
        """A single prompt token still costs something."""
        usage = TokenUsage(prompt_tokens=1, completion_tokens=0)
        # 0.0000025 rounds up, never down to zero
        assert calculate_cost("gpt-4o", usage) == 0.000003

    def test_zero_usage_costs_nothing(self):
        assert calculate_cost("gpt-4o", NO_USAGE) == 0.0

    def test_unsupported_model(self):
        with pytest.raises(ValueError):
            calculate_cost("claude", TokenUsage(1, 1))
