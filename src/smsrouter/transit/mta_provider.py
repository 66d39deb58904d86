"""MTA Bus Time provider (SIRI JSON API)."""

import logging
import os
import time
from typing import Any

import httpx

from smsrouter.transit.provider import Arrival, StopArrivals, TransitError, TransitProvider

logger = logging.getLogger(__name__)

STOP_MONITORING_URL = "https://bustime.mta.info/api/siri/stop-monitoring.json"
VEHICLE_MONITORING_URL = "https://bustime.mta.info/api/siri/vehicle-monitoring.json"


class MTATransitProvider(TransitProvider):
    """Bus arrivals and service alerts from MTA Bus Time."""

    MAX_STOP_VISITS = 5

    def __init__(self, api_key: str | None = None, timeout: float = 10.0) -> None:
        """Initialize the provider.

        Args:
            api_key: MTA Bus Time key (defaults to MTA_API_KEY env var)
            timeout: Request timeout in seconds

        Raises:
            ValueError: If no API key is configured
        """
        self.api_key = api_key or os.environ.get("MTA_API_KEY")
        if not self.api_key:
            raise ValueError("MTA_API_KEY environment variable is required for MTA provider")
        self.timeout = float(os.environ.get("MTA_TIMEOUT_SECONDS", str(timeout)))

    def _get_json(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        start = time.monotonic()
        try:
            response = httpx.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise TransitError(f"MTA API returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise TransitError(f"Network error calling MTA API: {e}") from e
        except ValueError as e:
            raise TransitError("MTA API returned invalid JSON") from e
        finally:
            logger.debug("MTA request to %s took %.0fms", url, (time.monotonic() - start) * 1000)

    def get_arrivals(self, stop_code: str, route: str | None = None) -> StopArrivals:
        """Fetch upcoming arrivals for a stop."""
        params: dict[str, Any] = {
            "key": self.api_key,
            "OperatorRef": "MTA",
            "MonitoringRef": stop_code,
            "MaximumStopVisits": self.MAX_STOP_VISITS,
        }
        if route:
            params["LineRef"] = f"MTA NYCT_{route.upper()}"

        data = self._get_json(STOP_MONITORING_URL, params)
        return parse_stop_monitoring(data)

    def get_service_alerts(self, route: str) -> list[str]:
        """Fetch situation summaries attached to a route."""
        params = {
            "key": self.api_key,
            "OperatorRef": "MTA",
            "LineRef": f"MTA NYCT_{route.upper()}",
            "VehicleMonitoringDetailLevel": "minimum",
        }
        data = self._get_json(VEHICLE_MONITORING_URL, params)
        return parse_situations(data)


def parse_stop_monitoring(data: dict[str, Any]) -> StopArrivals:
    """Parse a SIRI stop-monitoring response into StopArrivals."""
    try:
        delivery = data["Siri"]["ServiceDelivery"]["StopMonitoringDelivery"][0]
        visits = delivery.get("MonitoredStopVisit") or []
    except (KeyError, IndexError, TypeError):
        visits = []

    if not visits:
        return StopArrivals(found=False)

    arrivals = []
    stop_name = None
    for visit in visits:
        journey = visit.get("MonitoredVehicleJourney", {})
        call = journey.get("MonitoredCall", {})
        distances = (call.get("Extensions") or {}).get("Distances") or {}
        stop_name = stop_name or call.get("StopPointName")
        arrivals.append(
            Arrival(
                route=journey.get("PublishedLineName", "?"),
                destination=journey.get("DestinationName", "?"),
                stops_away=int(distances.get("StopsFromCall") or 0),
                has_realtime_data=bool(journey.get("Monitored", False)),
            )
        )

    return StopArrivals(found=True, stop_name=stop_name or "Unknown Stop", arrivals=arrivals)


def parse_situations(data: dict[str, Any]) -> list[str]:
    """Extract situation summaries from a SIRI response."""
    try:
        exchange = data["Siri"]["ServiceDelivery"].get("SituationExchangeDelivery") or []
    except (KeyError, TypeError):
        return []

    summaries: list[str] = []
    for delivery in exchange:
        elements = (delivery.get("Situations") or {}).get("PtSituationElement") or []
        for element in elements:
            summary = element.get("Summary") or element.get("Description")
            if isinstance(summary, list):
                summary = summary[0] if summary else None
            if isinstance(summary, str) and summary.strip() not in summaries:
                summaries.append(summary.strip())
    return summaries
