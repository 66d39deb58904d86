"""Stub nutrition provider for fixture-first development and testing."""

import re

from smsrouter.nutrition.provider import EstimateResult, FoodItem, NutritionProvider

# Rough per-unit calories for a handful of common foods
_CALORIE_TABLE = {
    "egg": 70,
    "toast": 80,
    "banana": 105,
    "apple": 95,
    "coffee": 5,
    "bagel": 280,
    "pizza": 285,
    "rice": 205,
    "salad": 150,
}

_QUANTITY_PATTERN = re.compile(r"(\d+)\s+([a-z]+)")


class StubNutritionProvider(NutritionProvider):
    """Deterministic estimates from a small lookup table."""

    def estimate_from_text(self, description: str) -> EstimateResult:
        """Estimate by matching known food words in the description."""
        lower = description.lower()
        quantities = {
            word.rstrip("s"): int(count) for count, word in _QUANTITY_PATTERN.findall(lower)
        }

        items = []
        for food, calories in _CALORIE_TABLE.items():
            if food in lower:
                count = quantities.get(food, 1)
                portion = f"{count}" if count > 1 else "1 serving"
                items.append(FoodItem(name=food, calories=calories * count, portion=portion))

        if not items:
            return EstimateResult(
                success=True,
                items=[FoodItem(name=description, calories=250, portion="1 serving")],
                total_calories=250,
                confidence="low",
                notes="Unrecognized food, estimate is a rough guess.",
                original_input=description,
            )

        return EstimateResult(
            success=True,
            items=items,
            total_calories=sum(item.calories for item in items),
            confidence="medium",
            original_input=description,
        )

    def estimate_from_image(
        self,
        image: bytes,
        mime_type: str,
        context: str | None = None,
    ) -> EstimateResult:
        """Estimate from the accompanying text, or a fixed plate when there is none."""
        if context:
            return self.estimate_from_text(context)

        return EstimateResult(
            success=True,
            items=[FoodItem(name="mixed plate", calories=500, portion="1 plate")],
            total_calories=500,
            confidence="low",
            original_input="food image",
        )

    def suggest(self, calorie_target: int, descriptors: str | None = None) -> str:
        """Return a fixed suggestion list scaled to the target."""
        return "\n".join(
            [
                f"• Greek yogurt with berries (~{calorie_target} cal)",
                f"• Turkey sandwich (~{calorie_target} cal)",
                f"• Rice bowl with vegetables (~{calorie_target} cal)",
            ]
        )
