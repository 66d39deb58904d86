"""Transit arrivals provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class TransitError(RuntimeError):
    """Raised when arrivals or alerts cannot be fetched."""


@dataclass
class Arrival:
    """A single upcoming bus at a stop."""

    route: str
    destination: str
    stops_away: int = 0
    has_realtime_data: bool = True


@dataclass
class StopArrivals:
    """Arrivals lookup result for one stop."""

    found: bool
    stop_name: str | None = None
    arrivals: list[Arrival] = field(default_factory=list)


class TransitProvider(ABC):
    """Abstract base class for transit lookup providers."""

    @abstractmethod
    def get_arrivals(self, stop_code: str, route: str | None = None) -> StopArrivals:
        """Get upcoming arrivals for a stop.

        Args:
            stop_code: Six-digit stop code
            route: Optional route filter (e.g., "B63")

        Returns:
            StopArrivals; ``found`` is False when the stop has no visits

        Raises:
            TransitError: If the upstream lookup fails
        """
        pass

    @abstractmethod
    def get_service_alerts(self, route: str) -> list[str]:
        """Get current service change summaries for a route.

        Raises:
            TransitError: If the upstream lookup fails
        """
        pass
