"""OpenAI calorie estimation provider.

Uses the chat completions API with a JSON-only prompt. Photos are sent inline
as base64 data URLs.
"""

import base64
import logging
import os
import time

import openai

from smsrouter.nutrition.provider import (
    ESTIMATE_JSON_SHAPE,
    EstimateResult,
    EstimationError,
    NutritionProvider,
    parse_estimate,
)

logger = logging.getLogger(__name__)

_RULES = """Rules:
- Be concise, SMS has character limits
- Round calories to nearest 5
- confidence must be "high", "medium", or "low\""""


def build_text_prompt(description: str) -> str:
    """Build the estimation prompt for a text description."""
    return f"""You are a nutrition expert. Estimate the calories for this food:

"{description}"

Respond in this EXACT JSON format (no markdown, no code blocks):
{ESTIMATE_JSON_SHAPE}

{_RULES}
- Use reasonable portion sizes if not specified
- If food is unclear, set confidence to "low" and ask for clarification in notes"""


def build_image_prompt(context: str | None) -> str:
    """Build the estimation prompt for a photo."""
    context_line = f'\n\nThe user also provided this description: "{context}"' if context else ""
    intro = "You are a nutrition expert. Look at this food image and estimate the calories."
    return f"""{intro}{context_line}

Respond in this EXACT JSON format (no markdown, no code blocks):
{ESTIMATE_JSON_SHAPE}

{_RULES}
- Identify all visible food items in the image
- Estimate reasonable portion sizes based on visual cues
- If image is unclear or not food, set confidence to "low" and explain in notes"""


def build_suggestion_prompt(calories: int, descriptors: str | None) -> str:
    """Build the prompt asking for food ideas near a calorie amount."""
    descriptor_text = f" that are {descriptors}" if descriptors else ""
    request = f"Suggest 3-4 food options{descriptor_text}"
    return f"""{request} that are approximately {calories} calories each.

Keep it brief for SMS. Format as a simple list like:
• Food item 1 (~XXX cal)
• Food item 2 (~XXX cal)

No introductions or explanations, just the list."""


class OpenAINutritionProvider(NutritionProvider):
    """Calorie estimates from an OpenAI chat model."""

    def __init__(self, api_key: str | None = None, timeout: float = 30.0) -> None:
        """Initialize the provider.

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            timeout: Request timeout in seconds

        Raises:
            ValueError: If OpenAI API key is not configured
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OPENAI_API_KEY environment variable is required for OpenAI nutrition provider"
            )

        self.model = os.environ.get("OPENAI_NUTRITION_MODEL", "gpt-4o-mini")
        self.timeout = float(os.environ.get("OPENAI_NUTRITION_TIMEOUT", str(timeout)))
        self.client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout)

        logger.info("Initialized OpenAI nutrition provider: model=%s", self.model)

    def _complete(self, content: str | list[dict], label: str) -> str:
        start = time.monotonic()
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": content}],
            )
        except openai.OpenAIError as e:
            raise EstimationError(f"OpenAI request failed: {e}") from e
        finally:
            logger.info("openai %s took %.0fms", label, (time.monotonic() - start) * 1000)

        return (response.choices[0].message.content or "").strip()

    def estimate_from_text(self, description: str) -> EstimateResult:
        """Estimate calories for a text description."""
        text = self._complete(build_text_prompt(description), "estimate-text")
        return parse_estimate(text, description)

    def estimate_from_image(
        self,
        image: bytes,
        mime_type: str,
        context: str | None = None,
    ) -> EstimateResult:
        """Estimate calories for a food photo."""
        encoded = base64.b64encode(image).decode("ascii")
        content = [
            {"type": "text", "text": build_image_prompt(context)},
            {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
        ]
        text = self._complete(content, "estimate-image")
        return parse_estimate(text, context or "food image")

    def suggest(self, calorie_target: int, descriptors: str | None = None) -> str:
        """Ask the model for food ideas."""
        return self._complete(
            build_suggestion_prompt(calorie_target, descriptors), "suggestions"
        )
