"""Twilio SMS provider."""

import logging
import os
from typing import Any

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from smsrouter.logging_utils import mask_phone
from smsrouter.messaging.provider import MessagingProvider

logger = logging.getLogger(__name__)


class TwilioProvider(MessagingProvider):
    """Sends SMS through the Twilio REST API."""

    def __init__(self, account_sid: str | None = None, auth_token: str | None = None) -> None:
        """Initialize the Twilio client.

        Args:
            account_sid: Twilio account SID (defaults to TWILIO_ACCOUNT_SID env var)
            auth_token: Twilio auth token (defaults to TWILIO_AUTH_TOKEN env var)

        Raises:
            ValueError: If credentials are not configured
        """
        account_sid = account_sid or os.environ.get("TWILIO_ACCOUNT_SID")
        auth_token = auth_token or os.environ.get("TWILIO_AUTH_TOKEN")
        if not account_sid or not auth_token:
            raise ValueError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN are required for Twilio")
        self.client = Client(account_sid, auth_token)

    def send(self, to: str, from_: str, body: str) -> dict[str, Any]:
        try:
            message = self.client.messages.create(body=body, from_=from_, to=to)
        except TwilioRestException as e:
            logger.error("Twilio send to %s failed: %s", mask_phone(to), e.msg)
            return {"ok": False, "message": f"Twilio error {e.code}: {e.msg}"}

        logger.info("Sent SMS to %s: sid=%s", mask_phone(to), message.sid)
        return {"ok": True, "message": "Message sent", "delivery_id": message.sid}
