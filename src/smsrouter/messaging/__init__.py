"""Outbound SMS providers."""

import logging
import os

from smsrouter.messaging.provider import DevLoggerProvider, MessagingProvider

logger = logging.getLogger(__name__)

__all__ = ["DevLoggerProvider", "MessagingProvider", "get_messaging_provider"]


def get_messaging_provider() -> MessagingProvider:
    """Get the configured messaging provider.

    Environment variables:
        SMSROUTER_MESSAGING_PROVIDER: "dev" (default) or "twilio"
        TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN: Required for twilio
    """
    provider_type = os.environ.get("SMSROUTER_MESSAGING_PROVIDER", "dev").lower()

    if provider_type == "dev":
        return DevLoggerProvider()
    elif provider_type == "twilio":
        from smsrouter.messaging.twilio_provider import TwilioProvider

        try:
            return TwilioProvider()
        except ValueError as e:
            logger.error("Failed to initialize Twilio provider: %s", e)
            logger.warning("Falling back to dev logger messaging provider")
            return DevLoggerProvider()
    else:
        logger.warning("Unknown messaging provider '%s', falling back to dev", provider_type)
        return DevLoggerProvider()
