"""Calorie estimation providers."""

import logging
import os

from smsrouter.nutrition.provider import (
    EstimateResult,
    EstimationError,
    FoodItem,
    NutritionProvider,
)
from smsrouter.nutrition.stub_provider import StubNutritionProvider

logger = logging.getLogger(__name__)

__all__ = [
    "EstimateResult",
    "EstimationError",
    "FoodItem",
    "NutritionProvider",
    "StubNutritionProvider",
    "get_nutrition_provider",
]


def get_nutrition_provider() -> NutritionProvider:
    """Get the configured nutrition provider.

    Environment variables:
        SMSROUTER_NUTRITION_PROVIDER: "stub" (default) or "openai"
        OPENAI_API_KEY: Required for the openai provider
    """
    provider_type = os.environ.get("SMSROUTER_NUTRITION_PROVIDER", "stub").lower()

    if provider_type == "stub":
        return StubNutritionProvider()
    elif provider_type == "openai":
        from smsrouter.nutrition.openai_provider import OpenAINutritionProvider

        try:
            return OpenAINutritionProvider()
        except ValueError as e:
            logger.error("Failed to initialize OpenAI nutrition provider: %s", e)
            logger.warning("Falling back to stub nutrition provider")
            return StubNutritionProvider()
    else:
        logger.warning("Unknown nutrition provider '%s', falling back to stub", provider_type)
        return StubNutritionProvider()
