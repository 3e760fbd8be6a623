"""
Pricing Engine Tests
====================
Tests for the token cost calculation engine.
"""

from decimal import Decimal
from pathlib import Path

import pytest

from gateway.core.pricing import PricingEngine
from tests.conftest import TEST_PRICING

SHIPPED_CONFIG = Path(__file__).resolve().parents[1] / "config" / "pricing.yaml"


class TestPricingEngine:
    """Tests for the pricing engine."""

    @pytest.fixture
    def engine(self) -> PricingEngine:
        """Create a pricing engine with the shipped config."""
        return PricingEngine(config_path=str(SHIPPED_CONFIG))

    def test_openai_cost_calculation(self, pricing: PricingEngine):
        cost = pricing.calculate_cost("openai", "gpt-4o", prompt_tokens=1000, completion_tokens=500)

        assert isinstance(cost, Decimal)
        assert cost == Decimal("7.5")

    def test_gemini_cost_calculation(self, pricing: PricingEngine):
        cost = pricing.calculate_cost("gemini", "gemini-1.5-flash", prompt_tokens=100, completion_tokens=200)
        assert cost == Decimal("0.5")

    def test_zero_tokens(self, pricing: PricingEngine):
        assert pricing.calculate_cost("openai", "gpt-4o", 0, 0) == Decimal("0")

    def test_versioned_model_uses_longest_prefix(self, pricing: PricingEngine):
        mini = pricing.get_model_pricing("openai", "gpt-4o-mini-2024-07-18")
        assert mini == (Decimal("1.0"), Decimal("2.0"))

        full = pricing.get_model_pricing("openai", "gpt-4o-2024-08-06")
        assert full == (Decimal("2.5"), Decimal("10.0"))

    def test_unknown_model_uses_provider_default(self, pricing: PricingEngine):
        assert pricing.get_model_pricing("gemini", "gemini-ultra") == (Decimal("1.0"), Decimal("2.0"))

    def test_unknown_provider_uses_global_default(self):
        engine = PricingEngine(pricing_data={})
        input_price, output_price = engine.get_model_pricing("mistral", "large")

        assert input_price >= 0
        assert output_price >= 0

    @pytest.mark.parametrize("alias", ["google", "google_gemini", "Gemini"])
    def test_provider_aliases(self, pricing: PricingEngine, alias: str):
        assert pricing.get_model_pricing(alias, "gemini-1.5-flash") == pricing.get_model_pricing(
            "gemini", "gemini-1.5-flash"
        )

    def test_get_provider_models_sorted(self, pricing: PricingEngine):
        models = pricing.get_provider_models("openai")

        assert [m["model"] for m in models] == ["gpt-4o", "gpt-4o-mini"]
        assert models[0]["input_price_per_1k"] == Decimal("2.5")

    def test_shipped_config_prices_both_providers(self, engine: PricingEngine):
        assert engine.get_provider_models("openai")
        assert engine.get_provider_models("gemini")
        assert engine.calculate_cost("openai", "gpt-4o-mini", 1000, 1000) == Decimal("0.00075")

    def test_missing_file_uses_builtin_defaults(self, tmp_path):
        engine = PricingEngine(config_path=str(tmp_path / "missing.yaml"))
        assert engine.get_provider_models("gemini")

    def test_reload_picks_up_changes(self, tmp_path):
        path = tmp_path / "pricing.yaml"
        path.write_text("openai:\n  gpt-4o:\n    input_per_1k: 1\n    output_per_1k: 1\n")
        engine = PricingEngine(config_path=str(path))
        assert engine.calculate_cost("openai", "gpt-4o", 1000, 0) == Decimal("1")

        path.write_text("openai:\n  gpt-4o:\n    input_per_1k: 3\n    output_per_1k: 1\n")
        engine.reload()
        assert engine.calculate_cost("openai", "gpt-4o", 1000, 0) == Decimal("3")

    def test_invalid_yaml_uses_builtin_defaults(self, tmp_path):
        path = tmp_path / "pricing.yaml"
        path.write_text("openai: [unclosed\n")
        engine = PricingEngine(config_path=str(path))

        assert [m["model"] for m in engine.get_provider_models("openai")] == ["gpt-4o", "gpt-4o-mini"]

    def test_pricing_data_is_used_verbatim(self):
        engine = PricingEngine(pricing_data=TEST_PRICING)
        assert engine.get_provider_models("gemini")[0]["model"] == "gemini-1.5-flash"
