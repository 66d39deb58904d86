"""Remote ride agent client.

Talks JSON over HTTP to the browser-automation service at RIDE_AGENT_URL.

Endpoints:
    POST   /quote          {pickup, destination}
    POST   /rides/preview  {pickup, destination, product}  -> {price}
    POST   /rides          {pickup, destination, product}  -> booking
    GET    /rides/{id}                                     -> status
    DELETE /rides/{id}
    POST   /auth           {code, original_action, original_parameters}

Any endpoint may answer ``{"auth_required": true, "message": ...}``.
"""

import logging
import os
import time
from typing import Any

import httpx

from smsrouter.rides.provider import (
    AuthChallenge,
    RideAgentError,
    RideBooking,
    RideProvider,
    RideQuote,
    RideStatus,
    check_price,
    parse_quote,
)

logger = logging.getLogger(__name__)

# Browser automation is slow; allow well beyond webhook timeouts
DEFAULT_TIMEOUT_SECONDS = 120.0


def _auth_challenge(data: dict[str, Any]) -> AuthChallenge | None:
    if data.get("auth_required"):
        return AuthChallenge(message=data.get("message") or AuthChallenge.message)
    return None


class RemoteRideProvider(RideProvider):
    """Ride agent reached over HTTP."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Agent base URL (defaults to RIDE_AGENT_URL env var)
            token: Bearer token (defaults to RIDE_AGENT_TOKEN env var)
            timeout: Request timeout in seconds

        Raises:
            ValueError: If no agent URL is configured
        """
        self.base_url = (base_url or os.environ.get("RIDE_AGENT_URL") or "").rstrip("/")
        if not self.base_url:
            raise ValueError("RIDE_AGENT_URL environment variable is required for remote rides")
        self.token = token or os.environ.get("RIDE_AGENT_TOKEN")
        self.timeout = float(os.environ.get("RIDE_AGENT_TIMEOUT_SECONDS", str(timeout)))

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        start = time.monotonic()
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout) as client:
                response = client.request(method, path, json=payload, headers=headers)
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            raise RideAgentError(
                f"Ride agent returned HTTP {e.response.status_code} for {method} {path}"
            ) from e
        except httpx.RequestError as e:
            raise RideAgentError(f"Network error calling ride agent: {e}") from e
        except ValueError as e:
            raise RideAgentError("Ride agent returned invalid JSON") from e
        finally:
            logger.info(
                "ride agent %s %s took %.0fms", method, path, (time.monotonic() - start) * 1000
            )

    def get_quote(self, pickup: str, destination: str) -> RideQuote | AuthChallenge:
        data = self._request("POST", "/quote", {"pickup": pickup, "destination": destination})
        return _auth_challenge(data) or parse_quote(data, pickup, destination)

    def confirm(
        self, pending_ride: dict[str, Any], product_index: int
    ) -> RideBooking | AuthChallenge:
        try:
            product = pending_ride["products"][product_index - 1]
        except (KeyError, IndexError, TypeError) as e:
            raise RideAgentError(f"No product {product_index} in pending ride") from e

        payload = {
            "pickup": pending_ride.get("pickup"),
            "destination": pending_ride.get("destination"),
            "product": product["name"],
        }

        preview = self._request("POST", "/rides/preview", payload)
        challenge = _auth_challenge(preview)
        if challenge:
            return challenge
        check_price(product["price"], preview.get("price"))

        data = self._request("POST", "/rides", payload)
        challenge = _auth_challenge(data)
        if challenge:
            return challenge
        if not data.get("request_id"):
            raise RideAgentError("Ride agent booking response missing request_id")

        return RideBooking(
            request_id=str(data["request_id"]),
            product=data.get("product") or product["name"],
            price=data.get("price") or preview.get("price"),
            driver_name=data.get("driver_name"),
            vehicle=data.get("vehicle"),
            eta=data.get("eta"),
        )

    def status(self, request_id: str) -> RideStatus:
        data = self._request("GET", f"/rides/{request_id}")
        if not data.get("status"):
            raise RideAgentError("Ride agent status response missing status")
        return RideStatus(
            status=str(data["status"]),
            driver_name=data.get("driver_name"),
            eta=data.get("eta"),
        )

    def cancel(self, request_id: str) -> None:
        self._request("DELETE", f"/rides/{request_id}")

    def resume_with_auth_code(
        self, code: str, pending_auth: dict[str, Any]
    ) -> RideQuote | AuthChallenge | bool:
        data = self._request(
            "POST",
            "/auth",
            {
                "code": code,
                "original_action": pending_auth.get("original_action"),
                "original_parameters": pending_auth.get("original_parameters") or {},
            },
        )
        challenge = _auth_challenge(data)
        if challenge:
            return challenge
        if data.get("products"):
            params = pending_auth.get("original_parameters") or {}
            return parse_quote(data, params.get("pickup", ""), params.get("destination", ""))
        return bool(data.get("ok", True))
