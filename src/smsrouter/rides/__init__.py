"""Ride agent providers."""

import logging
import os

from smsrouter.rides.provider import (
    PRICE_TOLERANCE,
    TERMINAL_STATUSES,
    AuthChallenge,
    PriceExceededError,
    RideAgentError,
    RideBooking,
    RideProduct,
    RideProvider,
    RideQuote,
    RideStatus,
    check_price,
    parse_price,
)
from smsrouter.rides.stub_provider import StubRideProvider

logger = logging.getLogger(__name__)

__all__ = [
    "PRICE_TOLERANCE",
    "TERMINAL_STATUSES",
    "AuthChallenge",
    "PriceExceededError",
    "RideAgentError",
    "RideBooking",
    "RideProduct",
    "RideProvider",
    "RideQuote",
    "RideStatus",
    "StubRideProvider",
    "check_price",
    "get_ride_provider",
    "parse_price",
]


def get_ride_provider() -> RideProvider:
    """Get the configured ride agent.

    Environment variables:
        SMSROUTER_RIDE_PROVIDER: "stub" (default) or "remote"
        RIDE_AGENT_URL: Required for the remote provider
    """
    provider_type = os.environ.get("SMSROUTER_RIDE_PROVIDER", "stub").lower()

    if provider_type == "stub":
        return StubRideProvider()
    elif provider_type == "remote":
        from smsrouter.rides.remote_provider import RemoteRideProvider

        try:
            return RemoteRideProvider()
        except ValueError as e:
            logger.error("Failed to initialize remote ride provider: %s", e)
            logger.warning("Falling back to stub ride provider")
            return StubRideProvider()
    else:
        logger.warning("Unknown ride provider '%s', falling back to stub", provider_type)
        return StubRideProvider()
