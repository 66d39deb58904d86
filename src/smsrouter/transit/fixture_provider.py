"""Fixture transit provider for development and testing."""

from smsrouter.transit.provider import Arrival, StopArrivals, TransitProvider

_FIXTURE_STOPS: dict[str, StopArrivals] = {
    "308209": StopArrivals(
        found=True,
        stop_name="4 AV/9 ST",
        arrivals=[
            Arrival("B63", "BAY RIDGE 95 ST", 0, True),
            Arrival("B63", "BAY RIDGE 95 ST", 4, True),
            Arrival("B37", "BAY RIDGE 3 AV", 6, False),
            Arrival("B63", "BAY RIDGE 95 ST", 11, True),
        ],
    ),
}

_FIXTURE_ALERTS: dict[str, list[str]] = {
    "B63": ["Buses are detoured at 5 Av and Union St due to construction."],
}


class FixtureTransitProvider(TransitProvider):
    """Returns canned arrivals so the service runs without an MTA key."""

    def get_arrivals(self, stop_code: str, route: str | None = None) -> StopArrivals:
        """Return fixture arrivals, filtered by route when given."""
        stop = _FIXTURE_STOPS.get(stop_code)
        if stop is None:
            return StopArrivals(found=False)

        arrivals = [a for a in stop.arrivals if route is None or a.route == route.upper()]
        if not arrivals:
            return StopArrivals(found=False)

        return StopArrivals(found=True, stop_name=stop.stop_name, arrivals=arrivals)

    def get_service_alerts(self, route: str) -> list[str]:
        """Return fixture alerts for a route."""
        return list(_FIXTURE_ALERTS.get(route.upper(), []))
