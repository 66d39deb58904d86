"""Calorie estimation provider interface."""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


class EstimationError(RuntimeError):
    """Raised when the estimation backend cannot be reached."""


@dataclass
class FoodItem:
    """One itemized food in an estimate."""

    name: str
    calories: int
    portion: str | None = None


@dataclass
class EstimateResult:
    """Result of a calorie estimate.

    When ``success`` is False only ``raw_response`` and ``original_input``
    are meaningful.
    """

    success: bool
    items: list[FoodItem] = field(default_factory=list)
    total_calories: int | None = None
    confidence: str = "medium"
    notes: str | None = None
    raw_response: str | None = None
    original_input: str = ""


ESTIMATE_JSON_SHAPE = (
    '{"items":[{"name":"item name","calories":123,"portion":"portion size"}],'
    '"totalCalories":456,"confidence":"high","notes":null}'
)

_FENCE_PATTERN = re.compile(r"```(?:json)?\n?|\n?```")


def parse_estimate(response_text: str, original_input: str) -> EstimateResult:
    """Parse a model's JSON answer into an EstimateResult.

    Markdown code fences around the JSON are tolerated. Anything that does not
    parse becomes an unsuccessful result carrying the raw text.
    """
    cleaned = _FENCE_PATTERN.sub("", response_text or "").strip()
    try:
        parsed: dict[str, Any] = json.loads(cleaned)
        items = [
            FoodItem(
                name=str(item.get("name", "item")),
                calories=int(round(float(item.get("calories", 0)))),
                portion=item.get("portion"),
            )
            for item in parsed.get("items") or []
        ]
        total = parsed.get("totalCalories")
        if total is None and items:
            total = sum(item.calories for item in items)
        return EstimateResult(
            success=True,
            items=items,
            total_calories=int(round(float(total))) if total is not None else None,
            confidence=parsed.get("confidence") or "medium",
            notes=parsed.get("notes") or None,
            original_input=original_input,
        )
    except (json.JSONDecodeError, AttributeError, TypeError, ValueError):
        logger.error("Failed to parse calorie estimate: %.200s", response_text)
        return EstimateResult(
            success=False,
            raw_response=response_text,
            original_input=original_input,
        )


class NutritionProvider(ABC):
    """Abstract base class for AI calorie estimation providers."""

    @abstractmethod
    def estimate_from_text(self, description: str) -> EstimateResult:
        """Estimate calories for a free-text food description.

        Raises:
            EstimationError: If the backend call fails
        """
        pass

    @abstractmethod
    def estimate_from_image(
        self,
        image: bytes,
        mime_type: str,
        context: str | None = None,
    ) -> EstimateResult:
        """Estimate calories from a food photo.

        Args:
            image: Raw image bytes
            mime_type: Image MIME type (e.g., "image/jpeg")
            context: Optional text sent with the photo

        Raises:
            EstimationError: If the backend call fails
        """
        pass

    @abstractmethod
    def suggest(self, calorie_target: int, descriptors: str | None = None) -> str:
        """Suggest foods of roughly ``calorie_target`` calories each.

        Raises:
            EstimationError: If the backend call fails
        """
        pass
