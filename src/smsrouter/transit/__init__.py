"""Transit lookup providers."""

import logging
import os

from smsrouter.transit.fixture_provider import FixtureTransitProvider
from smsrouter.transit.provider import Arrival, StopArrivals, TransitError, TransitProvider

logger = logging.getLogger(__name__)

__all__ = [
    "Arrival",
    "FixtureTransitProvider",
    "StopArrivals",
    "TransitError",
    "TransitProvider",
    "get_transit_provider",
]


def get_transit_provider() -> TransitProvider:
    """Get the configured transit provider.

    Environment variables:
        SMSROUTER_TRANSIT_PROVIDER: "fixture" (default) or "mta"
        MTA_API_KEY: Required for the mta provider
    """
    provider_type = os.environ.get("SMSROUTER_TRANSIT_PROVIDER", "fixture").lower()

    if provider_type == "fixture":
        return FixtureTransitProvider()
    elif provider_type == "mta":
        from smsrouter.transit.mta_provider import MTATransitProvider

        try:
            return MTATransitProvider()
        except ValueError as e:
            logger.error("Failed to initialize MTA provider: %s", e)
            logger.warning("Falling back to fixture transit provider")
            return FixtureTransitProvider()
    else:
        logger.warning("Unknown transit provider '%s', falling back to fixture", provider_type)
        return FixtureTransitProvider()
