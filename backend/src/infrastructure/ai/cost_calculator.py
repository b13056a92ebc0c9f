"""
Cost Calculator - LLM spend in micro-USD for the per-job cost ceiling.

Every AI call is logged with its cost before the next call is made, so the
budget gate can only be as accurate as these numbers. Models missing from the
rate table are charged at the most expensive known rate of their provider;
an unpriced model must never count as free.
"""

import logging
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# USD per 1M tokens: (input, output)
RATES: Dict[str, Dict[str, Tuple[float, float]]] = {
    "openai": {
        "gpt-4o-mini": (0.150, 0.600),
        "gpt-4o": (2.50, 10.00),
        "gpt-4.1-mini": (0.40, 1.60),
        "gpt-4.1": (2.00, 8.00),
    },
}


class CostCalculator:
    """Convert token usage into integer micro-USD."""

    @staticmethod
    def rates_for(provider: str, model: str) -> Tuple[float, float]:
        """Rate pair for a model, falling back to the provider's priciest model.

        Raises:
            ValueError: Provider has no rate table at all
        """
        table = RATES.get(provider.lower())
        if not table:
            raise ValueError(f"Unknown provider: {provider}")

        rates = table.get(model.lower())
        if rates is None:
            rates = max(table.values(), key=lambda pair: pair[0] + pair[1])
            logger.warning(
                f"No rate for {provider}/{model}; charging the highest {provider} rate",
                extra={"provider": provider, "model": model},
            )
        return rates

    @staticmethod
    def calculate_cost_micros(
        provider: str,
        model: str,
        prompt_tokens: Optional[int],
        completion_tokens: Optional[int],
    ) -> int:
        """
        Calculate cost in micro-USD (1/1,000,000 USD).

        Example:
            >>> CostCalculator.calculate_cost_micros("openai", "gpt-4o-mini", 1000, 500)
            450
        """
        input_rate, output_rate = CostCalculator.rates_for(provider, model)
        # tokens * USD-per-million == micro-USD
        micros = (prompt_tokens or 0) * input_rate + (completion_tokens or 0) * output_rate
        return int(round(micros))

    @staticmethod
    def format_cost_usd(cost_micros: int) -> str:
        """
        Format micro-USD as a USD string.

        Example:
            >>> CostCalculator.format_cost_usd(450)
            '$0.000450'
        """
        return f"${cost_micros / 1_000_000:.6f}"
