"""Stub ride agent for development and tests."""

import logging
import uuid
from typing import Any

from smsrouter.rides.provider import (
    AuthChallenge,
    RideAgentError,
    RideBooking,
    RideProduct,
    RideProvider,
    RideQuote,
    RideStatus,
    check_price,
    parse_price,
)

logger = logging.getLogger(__name__)

STUB_PRODUCTS = [
    RideProduct(name="UberX", price="$18-$22", eta="4 min"),
    RideProduct(name="Comfort", price="$24-$29", eta="6 min"),
    RideProduct(name="UberXL", price="$30-$36", eta="8 min"),
]

STUB_AUTH_CODE = "4821"


class StubRideProvider(RideProvider):
    """In-process ride agent with predictable results.

    Attributes:
        live_price_multiplier: Scales the quoted price at confirm time
        require_auth: When True, quotes and confirms return an AuthChallenge
            until ``STUB_AUTH_CODE`` is submitted
    """

    def __init__(self, live_price_multiplier: float = 1.0, require_auth: bool = False) -> None:
        self.live_price_multiplier = live_price_multiplier
        self.require_auth = require_auth
        self.rides: dict[str, RideStatus] = {}
        self.calls: list[str] = []

    def get_quote(self, pickup: str, destination: str) -> RideQuote | AuthChallenge:
        self.calls.append("get_quote")
        if self.require_auth:
            return AuthChallenge()
        return RideQuote(pickup=pickup, destination=destination, products=list(STUB_PRODUCTS))

    def confirm(
        self, pending_ride: dict[str, Any], product_index: int
    ) -> RideBooking | AuthChallenge:
        self.calls.append("confirm")
        if self.require_auth:
            return AuthChallenge()

        try:
            product = pending_ride["products"][product_index - 1]
        except (KeyError, IndexError, TypeError) as e:
            raise RideAgentError(f"No product {product_index} in pending ride") from e

        quoted = parse_price(product["price"])
        if quoted is None:
            raise RideAgentError(f"Unpriced product: {product['name']}")
        live = quoted * self.live_price_multiplier
        check_price(quoted, live)

        request_id = f"stub-{uuid.uuid4().hex[:12]}"
        self.rides[request_id] = RideStatus(status="accepted", driver_name="Alex", eta="4 min")
        logger.info("StubRideProvider: booked %s as %s", product["name"], request_id)
        return RideBooking(
            request_id=request_id,
            product=product["name"],
            price=f"${live:.2f}",
            driver_name="Alex",
            vehicle="Gray Toyota Camry",
            eta="4 min",
        )

    def status(self, request_id: str) -> RideStatus:
        self.calls.append("status")
        ride = self.rides.get(request_id)
        if ride is None:
            raise RideAgentError(f"Unknown ride: {request_id}")
        return ride

    def cancel(self, request_id: str) -> None:
        self.calls.append("cancel")
        if request_id not in self.rides:
            raise RideAgentError(f"Unknown ride: {request_id}")
        self.rides[request_id] = RideStatus(status="rider_canceled")

    def resume_with_auth_code(
        self, code: str, pending_auth: dict[str, Any]
    ) -> RideQuote | AuthChallenge | bool:
        self.calls.append("resume_with_auth_code")
        if code != STUB_AUTH_CODE:
            return AuthChallenge(message="That code was not accepted.")

        self.require_auth = False
        if pending_auth.get("original_action") == "uber_quote":
            params = pending_auth.get("original_parameters") or {}
            return self.get_quote(params.get("pickup", ""), params.get("destination", ""))
        return True
