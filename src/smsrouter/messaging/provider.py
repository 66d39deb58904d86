"""Outbound SMS provider abstraction.

Defines the interface used for out-of-band replies and a development
provider that logs messages instead of sending them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from smsrouter.logging_utils import mask_phone

logger = logging.getLogger(__name__)


class MessagingProvider(ABC):
    """Abstract base class for outbound SMS providers."""

    @abstractmethod
    def send(self, to: str, from_: str, body: str) -> dict[str, Any]:
        """Send an SMS.

        Args:
            to: Recipient phone number (E.164)
            from_: Sender phone number (E.164)
            body: Message text

        Returns:
            Dictionary with delivery result:
            - ok: bool - Whether the send was successful
            - message: str - Status message
            - delivery_id: str - Provider message ID, when available
        """
        pass


class DevLoggerProvider(MessagingProvider):
    """Logs outbound messages instead of sending them.

    Sent messages are kept in ``sent`` so tests can inspect them.
    """

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []

    def send(self, to: str, from_: str, body: str) -> dict[str, Any]:
        logger.info(
            "DevLoggerProvider: Would send SMS to %s from %s: %s",
            mask_phone(to),
            mask_phone(from_),
            body,
        )
        self.sent.append({"to": to, "from_": from_, "body": body})

        return {
            "ok": True,
            "message": "Message logged (dev mode)",
            "delivery_id": f"dev-{len(self.sent)}",
        }
