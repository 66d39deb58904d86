"""Ride agent provider interface.

The ride agent drives a ride-hailing web app through browser automation, so
every call can take tens of seconds. Callers run these methods off the
request path.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any

# Live price may exceed the quoted price by at most this fraction
PRICE_TOLERANCE = 0.10

TERMINAL_STATUSES = frozenset({"completed", "rider_canceled", "driver_canceled"})

_PRICE_PATTERN = re.compile(r"\$?\s*(\d+(?:\.\d+)?)")


class RideAgentError(RuntimeError):
    """Raised when the ride agent fails or returns something unusable."""


class PriceExceededError(RideAgentError):
    """Raised when the live price is materially above the quoted price."""

    def __init__(self, quoted: float, live: float) -> None:
        self.quoted = quoted
        self.live = live
        super().__init__(f"Live price ${live:.2f} exceeds quoted price ${quoted:.2f}")


@dataclass
class RideProduct:
    """One bookable product in a quote (e.g., UberX)."""

    name: str
    price: str
    eta: str | None = None


@dataclass
class RideQuote:
    """Price quote for a trip."""

    pickup: str
    destination: str
    products: list[RideProduct] = field(default_factory=list)

    def to_pending(self) -> dict[str, Any]:
        """Session representation used for the pending ride slot."""
        return asdict(self)


@dataclass
class AuthChallenge:
    """The agent needs a login code before it can continue."""

    message: str = "Uber sent a login code to your phone."


@dataclass
class RideBooking:
    """A confirmed ride request."""

    request_id: str
    product: str
    price: str | None = None
    driver_name: str | None = None
    vehicle: str | None = None
    eta: str | None = None


@dataclass
class RideStatus:
    """Current state of an active ride."""

    status: str
    driver_name: str | None = None
    eta: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def parse_price(value: str | float | int | None) -> float | None:
    """Parse a display price into dollars.

    Ranges such as "$18-$22" resolve to their upper bound. Returns None when
    no amount can be found.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)

    amounts = _PRICE_PATTERN.findall(value)
    if not amounts:
        return None
    return max(float(amount) for amount in amounts)


def check_price(
    quoted: str | float,
    live: str | float,
    tolerance: float = PRICE_TOLERANCE,
) -> float:
    """Verify the live price is within tolerance of the quoted price.

    Returns:
        The parsed live price.

    Raises:
        PriceExceededError: If live exceeds quoted by more than ``tolerance``
        RideAgentError: If either price cannot be parsed
    """
    quoted_amount = parse_price(quoted)
    live_amount = parse_price(live)
    if quoted_amount is None or live_amount is None:
        raise RideAgentError(f"Cannot compare prices: quoted={quoted!r} live={live!r}")

    if live_amount > quoted_amount * (1 + tolerance):
        raise PriceExceededError(quoted_amount, live_amount)
    return live_amount


def parse_quote(data: dict[str, Any], pickup: str, destination: str) -> RideQuote:
    """Build a RideQuote from the agent's JSON shape."""
    try:
        products = [
            RideProduct(
                name=str(product["name"]),
                price=str(product.get("price") or "Price unavailable"),
                eta=product.get("eta"),
            )
            for product in data.get("products") or []
        ]
    except (KeyError, TypeError, AttributeError) as e:
        raise RideAgentError(f"Malformed quote from ride agent: {e}") from e

    if not products:
        raise RideAgentError("Ride agent returned no products")

    return RideQuote(
        pickup=data.get("pickup") or pickup,
        destination=data.get("destination") or destination,
        products=products,
    )


class RideProvider(ABC):
    """Abstract base class for ride agents."""

    @abstractmethod
    def get_quote(self, pickup: str, destination: str) -> RideQuote | AuthChallenge:
        """Get prices for a trip.

        Raises:
            RideAgentError: If the agent fails
        """
        pass

    @abstractmethod
    def confirm(
        self, pending_ride: dict[str, Any], product_index: int
    ) -> RideBooking | AuthChallenge:
        """Book product ``product_index`` (1-based) from a pending quote.

        Implementations must call ``check_price`` against the live price
        before booking.

        Raises:
            PriceExceededError: If the live price moved beyond tolerance
            RideAgentError: If the agent fails
        """
        pass

    @abstractmethod
    def status(self, request_id: str) -> RideStatus:
        """Get the status of a booked ride."""
        pass

    @abstractmethod
    def cancel(self, request_id: str) -> None:
        """Cancel a booked ride."""
        pass

    @abstractmethod
    def resume_with_auth_code(
        self, code: str, pending_auth: dict[str, Any]
    ) -> RideQuote | AuthChallenge | bool:
        """Submit a login code and resume the interrupted action.

        Returns a quote when the interrupted action was a quote, True when
        the login simply succeeded, or a fresh AuthChallenge when the code
        was rejected.
        """
        pass
