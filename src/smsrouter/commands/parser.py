"""Command parser for converting inbound SMS text to typed commands."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CommandType(str, Enum):
    """Discriminant for every command the router understands."""

    HELP = "help"
    RESET_CALORIES = "reset_calories"
    TOTAL = "total"
    SUBTRACT = "subtract"
    SET_TARGET = "set_target"
    SUGGESTIONS = "suggestions"
    IMAGE_CALORIE = "image_calorie"
    REFRESH = "refresh"
    STOP_QUERY = "stop_query"
    SERVICE_CHANGES = "service_changes"
    UBER_QUOTE = "uber_quote"
    UBER_CONFIRM = "uber_confirm"
    UBER_STATUS = "uber_status"
    UBER_CANCEL = "uber_cancel"
    UBER_AUTH = "uber_auth"
    FOOD_QUERY = "food_query"
    ERROR = "error"


HELP_HINT = 'Send "how" for available commands.'
MEDIA_HINT = "Please send a photo of food for calorie estimation, or text a food description."
UBER_HINT = (
    "Uber commands: 'uber <pickup> to <destination>', 'uber confirm', "
    "'uber status', 'uber cancel', 'uber auth <code>'."
)
NUMBER_TOO_LARGE = "That number is too large. " + HELP_HINT

# Amounts longer than this are rejected rather than converted
MAX_NUMBER_DIGITS = 7

HELP_TEXT = """Bus Times:
• Send 6-digit stop code (e.g., 308209)
• Add route to filter (e.g., 308209 B63)
• "R" - refresh your last stop
• "C B63" - service changes for a route

Calorie Tracking:
• Send food description (e.g., "2 eggs and toast")
• Send photo of food for estimation
• "total" - see today's calories
• "sub 50" - subtract 50 calories
• "target 2000" - set your daily target
• "suggest 400 savory" - food ideas
• "reset calories" - start fresh

Uber:
• "uber <pickup> to <destination>" - get prices
• "uber confirm" - book the quoted ride
• "uber status" / "uber cancel"

Other:
• "how" - show this message"""


@dataclass
class Command:
    """Structured representation of a parsed SMS command."""

    type: CommandType
    entities: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and API responses."""
        return {"type": self.type.value, "entities": self.entities}


_SUB_PATTERN = re.compile(r"^sub\s+(\d+)$", re.IGNORECASE)
_TARGET_PATTERN = re.compile(r"^(?:set\s+)?target\s+(\d+)$", re.IGNORECASE)
_SUGGEST_PATTERN = re.compile(
    r"^(?:suggest|suggestions|ideas)(?:\s+(\d+))?(?:\s+(.+))?$", re.IGNORECASE
)
# Loosely anchored so "when is 308209" works; a 6-digit run anywhere matches.
_STOP_PATTERN = re.compile(
    r"(?:stop|bus|check|query|when|times?)?\s*(\d{6})(?:\s+([A-Z0-9\-]+))?",
    re.IGNORECASE,
)
_UBER_CONFIRM_PATTERN = re.compile(r"^uber\s+confirm(?:\s+(\d+))?$", re.IGNORECASE)
_UBER_AUTH_PATTERN = re.compile(r"^uber\s+auth\s+(\S+)$", re.IGNORECASE)
_UBER_QUOTE_PATTERN = re.compile(r"^uber\s+(.+?)\s+to\s+(.+)$", re.IGNORECASE)


def _to_number(digits: str | None) -> int | None:
    """Convert a captured digit run, or return None when it is too long."""
    if digits is None or len(digits) > MAX_NUMBER_DIGITS:
        return None
    return int(digits)


class CommandParser:
    """Parse SMS text into commands using an ordered rule list.

    The first matching rule wins. Anchored, calorie-specific rules come before
    the loose stop-code rule, which in turn comes before the Uber grammar and
    the free-text food fallback.
    """

    def parse(
        self,
        text: str | None,
        has_media: bool = False,
        media_type: str | None = None,
    ) -> Command:
        """Parse an inbound message.

        Args:
            text: Message body (may be empty or None for media-only messages)
            has_media: Whether the message carried an attachment
            media_type: MIME type of the first attachment, if any

        Returns:
            Exactly one Command; unmatched input becomes an error command
        """
        trimmed = (text or "").strip()
        lower = trimmed.lower()

        if lower in ("how", "?"):
            return Command(CommandType.HELP)

        if lower == "reset calories":
            return Command(CommandType.RESET_CALORIES)

        if lower == "total":
            return Command(CommandType.TOTAL)

        match = _SUB_PATTERN.match(trimmed)
        if match:
            amount = _to_number(match.group(1))
            if amount is None:
                return Command(CommandType.ERROR, {"message": NUMBER_TOO_LARGE})
            return Command(CommandType.SUBTRACT, {"amount": amount})

        match = _TARGET_PATTERN.match(trimmed)
        if match:
            target = _to_number(match.group(1))
            if target is None:
                return Command(CommandType.ERROR, {"message": NUMBER_TOO_LARGE})
            return Command(CommandType.SET_TARGET, {"target": target})

        match = _SUGGEST_PATTERN.match(trimmed)
        if match:
            calories = _to_number(match.group(1))
            if match.group(1) and calories is None:
                return Command(CommandType.ERROR, {"message": NUMBER_TOO_LARGE})
            descriptors = match.group(2).strip() if match.group(2) else None
            return Command(
                CommandType.SUGGESTIONS,
                {"calories": calories, "descriptors": descriptors},
            )

        if has_media and (media_type or "").lower().startswith("image/"):
            return Command(CommandType.IMAGE_CALORIE, {"text_context": trimmed})

        if lower in ("r", "refresh"):
            return Command(CommandType.REFRESH)

        if lower.startswith("c "):
            return Command(CommandType.SERVICE_CHANGES, {"route": trimmed[2:].strip().upper()})

        match = _STOP_PATTERN.search(trimmed)
        if match:
            route = match.group(2).upper() if match.group(2) else None
            return Command(CommandType.STOP_QUERY, {"stop_code": match.group(1), "route": route})

        if lower.startswith("uber "):
            return self._parse_uber(trimmed)

        if len(trimmed) >= 2:
            return Command(CommandType.FOOD_QUERY, {"description": trimmed})

        message = MEDIA_HINT if has_media else HELP_HINT
        return Command(CommandType.ERROR, {"message": message})

    def _parse_uber(self, text: str) -> Command:
        """Parse the Uber sub-grammar (text already known to start with 'uber ')."""
        rest = text[5:].strip().lower()

        if rest == "status":
            return Command(CommandType.UBER_STATUS)
        if rest == "cancel":
            return Command(CommandType.UBER_CANCEL)

        match = _UBER_CONFIRM_PATTERN.match(text)
        if match:
            if match.group(1) is None:
                return Command(CommandType.UBER_CONFIRM, {"product_index": 1})
            index = _to_number(match.group(1))
            if index is None:
                return Command(CommandType.ERROR, {"message": NUMBER_TOO_LARGE})
            return Command(CommandType.UBER_CONFIRM, {"product_index": index})

        match = _UBER_AUTH_PATTERN.match(text)
        if match:
            return Command(CommandType.UBER_AUTH, {"code": match.group(1)})

        match = _UBER_QUOTE_PATTERN.match(text)
        if match:
            return Command(
                CommandType.UBER_QUOTE,
                {"pickup": match.group(1).strip(), "destination": match.group(2).strip()},
            )

        return Command(CommandType.ERROR, {"message": UBER_HINT})

    @staticmethod
    def help_text() -> str:
        """Return the command list sent for the help command."""
        return HELP_TEXT
