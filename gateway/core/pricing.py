"""
Token Cost Engine
=================
Per-model pricing for OpenAI and Google Gemini completions.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from gateway.config import settings

logger = structlog.get_logger()


class PricingEngine:
    """
    Token pricing engine supporting multiple LLM providers.

    Loads pricing from YAML configuration. Unknown models fall back to the
    provider default, then to the configured global default rate.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        pricing_data: Optional[dict[str, Any]] = None,
    ):
        self.config_path = config_path or settings.pricing_config_path
        self._pricing_data: dict[str, Any] = {}
        if pricing_data is not None:
            self._pricing_data = pricing_data
        else:
            self._load_pricing()

    def _load_pricing(self) -> None:
        """Load pricing configuration from YAML file."""
        config_file = Path(self.config_path)

        if not config_file.exists():
            logger.warning("Pricing config not found, using defaults", path=self.config_path)
            self._pricing_data = self._get_default_pricing()
            return

        try:
            with open(config_file) as f:
                self._pricing_data = yaml.safe_load(f) or {}
            logger.info("Loaded pricing configuration", path=self.config_path)
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load pricing config", error=str(e))
            self._pricing_data = self._get_default_pricing()

    def _get_default_pricing(self) -> dict[str, Any]:
        """Return default pricing if config file is missing."""
        return {
            "defaults": {
                "openai": {"input_per_1k": 0.00015, "output_per_1k": 0.0006},
                "gemini": {"input_per_1k": 0.000075, "output_per_1k": 0.0003},
            },
            "openai": {
                "gpt-4o-mini": {"input_per_1k": 0.00015, "output_per_1k": 0.0006},
                "gpt-4o": {"input_per_1k": 0.0025, "output_per_1k": 0.01},
            },
            "gemini": {
                "gemini-1.5-flash": {"input_per_1k": 0.000075, "output_per_1k": 0.0003},
                "gemini-1.5-pro": {"input_per_1k": 0.00125, "output_per_1k": 0.005},
            },
        }

    def reload(self) -> None:
        """Reload pricing configuration from file."""
        self._load_pricing()

    def get_model_pricing(
        self,
        provider: str,
        model: str,
    ) -> tuple[Decimal, Decimal]:
        """
        Get input and output pricing per 1K tokens for a model.

        Returns:
            Tuple of (input_price_per_1k, output_price_per_1k)
        """
        provider_key = self._normalize_provider(provider)
        provider_pricing = self._pricing_data.get(provider_key, {}) or {}

        if model in provider_pricing:
            pricing = provider_pricing[model]
            return (
                Decimal(str(pricing.get("input_per_1k", 0))),
                Decimal(str(pricing.get("output_per_1k", 0))),
            )

        # Versioned model names, e.g. gpt-4o-mini-2024-07-18; longest key wins
        for model_key in sorted(provider_pricing, key=len, reverse=True):
            if model.startswith(model_key):
                pricing = provider_pricing[model_key]
                return (
                    Decimal(str(pricing.get("input_per_1k", 0))),
                    Decimal(str(pricing.get("output_per_1k", 0))),
                )

        defaults = self._pricing_data.get("defaults", {}).get(provider_key, {})
        return (
            Decimal(str(defaults.get("input_per_1k", settings.default_input_per_1k))),
            Decimal(str(defaults.get("output_per_1k", settings.default_output_per_1k))),
        )

    def _normalize_provider(self, provider: str) -> str:
        """Normalize provider name to config key."""
        mapping = {
            "openai": "openai",
            "azure_openai": "openai",
            "gemini": "gemini",
            "google": "gemini",
            "google_gemini": "gemini",
        }
        return mapping.get(provider.lower(), provider.lower())

    def calculate_cost(
        self,
        provider: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
    ) -> Decimal:
        """
        Calculate total cost for a completion.

        Args:
            provider: LLM provider (openai, gemini)
            model: Model identifier
            prompt_tokens: Number of input tokens
            completion_tokens: Number of output tokens

        Returns:
            Calculated cost in USD
        """
        input_price, output_price = self.get_model_pricing(provider, model)

        input_cost = (Decimal(prompt_tokens) / Decimal("1000")) * input_price
        output_cost = (Decimal(completion_tokens) / Decimal("1000")) * output_price

        return (input_cost + output_cost).quantize(Decimal("0.0000000001"))

    def get_provider_models(self, provider: str) -> list[dict[str, Any]]:
        """Get all priced models for a provider."""
        provider_key = self._normalize_provider(provider)
        provider_pricing = self._pricing_data.get(provider_key, {}) or {}

        models = []
        for model, pricing in provider_pricing.items():
            if isinstance(pricing, dict) and "input_per_1k" in pricing:
                models.append({
                    "model": model,
                    "input_price_per_1k": Decimal(str(pricing["input_per_1k"])),
                    "output_price_per_1k": Decimal(str(pricing["output_per_1k"])),
                })

        return sorted(models, key=lambda x: x["model"])


@lru_cache
def get_pricing_engine() -> PricingEngine:
    """Get cached pricing engine instance."""
    return PricingEngine()
