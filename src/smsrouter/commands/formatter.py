"""SMS reply formatting for collaborator results.

Every function here is pure and returns ``NOT_UNDERSTOOD`` instead of raising
when handed data it cannot read.
"""

import logging
from typing import Any

from smsrouter.nutrition.provider import EstimateResult
from smsrouter.rides.provider import RideBooking, RideQuote, RideStatus
from smsrouter.transit.provider import StopArrivals

logger = logging.getLogger(__name__)

# Twilio concatenates segments up to this many characters
SMS_MAX_LENGTH = 1600

NOT_UNDERSTOOD = "Sorry, I couldn't understand the response. Please try again later."

NO_ARRIVALS = (
    "No buses found arriving at this stop right now. Please check your stop code "
    "and try again, or visit bustime.mta.info for more info."
)

_MALFORMED = (AttributeError, KeyError, TypeError, IndexError, ValueError)


def truncate_sms(text: str, limit: int = SMS_MAX_LENGTH) -> str:
    """Trim text to the SMS length limit, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def format_arrivals(result: StopArrivals, max_results: int = 3) -> str:
    """Format upcoming arrivals for a stop.

    Example:
        Bus arrivals at 4 AV/9 ST:

        Route B63 to BAY RIDGE - arriving now

        Route B37 to BAY RIDGE - 6 stops away (scheduled time)
    """
    try:
        if not result.found or not result.arrivals:
            return NO_ARRIVALS

        lines = []
        for arrival in result.arrivals[:max_results]:
            stops = arrival.stops_away
            if stops == 0:
                stops_text = "arriving now"
            else:
                stops_text = f"{stops} stop{'s' if stops > 1 else ''} away"
            line = f"Route {arrival.route} to {arrival.destination} - {stops_text}"
            if not arrival.has_realtime_data:
                line += " (scheduled time)"
            lines.append(line)

        message = f"Bus arrivals at {result.stop_name}:\n\n" + "\n\n".join(lines)

        total = len(result.arrivals)
        if total > max_results:
            message += f"\n\n(Showing {max_results} of {total} buses)"
        return message
    except _MALFORMED:
        logger.warning("Malformed arrivals result: %r", result)
        return NOT_UNDERSTOOD


def format_estimate(result: EstimateResult) -> str:
    """Format a calorie estimate."""
    if not result.success:
        return (
            f'Sorry, I couldn\'t estimate calories for "{result.original_input}". '
            'Try being more specific (e.g., "2 scrambled eggs" instead of "eggs").'
        )

    try:
        if not result.items:
            return NOT_UNDERSTOOD

        if len(result.items) == 1:
            item = result.items[0]
            portion = f" ({item.portion})" if item.portion else ""
            message = f"{item.name}{portion}: ~{item.calories} cal"
        else:
            lines = [f"{item.name}: ~{item.calories} cal" for item in result.items]
            message = "\n".join(lines) + f"\n\nTotal: ~{result.total_calories} cal"

        if result.confidence == "low":
            message += "\n\n(Estimate uncertain - try being more specific)"

        if result.notes and len(result.notes) < 80:
            message += f"\n\n{result.notes}"

        return message
    except _MALFORMED:
        logger.warning("Malformed estimate result: %r", result)
        return NOT_UNDERSTOOD


def _quote_fields(quote: RideQuote | dict[str, Any]) -> tuple[str, str, list[dict[str, Any]]]:
    if isinstance(quote, RideQuote):
        quote = quote.to_pending()
    products = [
        {"name": p["name"], "price": p["price"], "eta": p.get("eta")} for p in quote["products"]
    ]
    return quote["pickup"], quote["destination"], products


def format_quote(quote: RideQuote | dict[str, Any], validity_minutes: int = 10) -> str:
    """Format ride options with confirm instructions.

    Accepts either a RideQuote or its pending-ride session representation.
    """
    try:
        pickup, destination, products = _quote_fields(quote)
        if not products:
            return NOT_UNDERSTOOD

        lines = []
        for index, product in enumerate(products, start=1):
            eta = f" ({product['eta']})" if product["eta"] else ""
            lines.append(f"{index}. {product['name']}: {product['price']}{eta}")

        message = f"Uber from {pickup} to {destination}:\n\n" + "\n".join(lines)
        if len(products) > 1:
            message += (
                "\n\nReply 'uber confirm' to book option 1, or 'uber confirm <n>' for another."
            )
        else:
            message += "\n\nReply 'uber confirm' to book."
        return message + f" Quote valid for {validity_minutes} minutes."
    except _MALFORMED:
        logger.warning("Malformed ride quote: %r", quote)
        return NOT_UNDERSTOOD


def format_booking(booking: RideBooking) -> str:
    """Format a confirmed booking."""
    try:
        price = f" for {booking.price}" if booking.price else ""
        lines = [f"Ride booked! {booking.product}{price}."]
        if booking.driver_name:
            vehicle = f" ({booking.vehicle})" if booking.vehicle else ""
            lines.append(f"Driver: {booking.driver_name}{vehicle}")
        if booking.eta:
            lines.append(f"ETA: {booking.eta}")
        return "\n".join(lines) + "\n\nText 'uber status' for updates or 'uber cancel' to cancel."
    except _MALFORMED:
        logger.warning("Malformed booking: %r", booking)
        return NOT_UNDERSTOOD


_TERMINAL_MESSAGES = {
    "completed": "Your ride is complete.",
    "rider_canceled": "Your ride was canceled.",
    "driver_canceled": (
        "Your driver canceled the ride. Text 'uber <pickup> to <destination>' for a new quote."
    ),
}


def format_ride_status(status: RideStatus) -> str:
    """Format the status of an active ride."""
    try:
        if status.status in _TERMINAL_MESSAGES:
            return _TERMINAL_MESSAGES[status.status]

        message = f"Ride status: {status.status.replace('_', ' ')}"
        if status.driver_name:
            message += f"\nDriver: {status.driver_name}"
        if status.eta:
            message += f"\nETA: {status.eta}"
        return message
    except _MALFORMED:
        logger.warning("Malformed ride status: %r", status)
        return NOT_UNDERSTOOD


def format_service_alerts(route: str, alerts: list[str], max_results: int = 3) -> str:
    """Format service alerts for a route."""
    try:
        if not alerts:
            return f"No service changes reported for {route}."

        shown = [f"• {alert}" for alert in alerts[:max_results]]
        message = f"Service changes for {route}:\n\n" + "\n\n".join(shown)
        if len(alerts) > max_results:
            message += f"\n\n(Showing {max_results} of {len(alerts)} alerts)"
        return message
    except _MALFORMED:
        logger.warning("Malformed service alerts for %s: %r", route, alerts)
        return NOT_UNDERSTOOD
