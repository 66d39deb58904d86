"""Command dispatcher: runs parsed commands against collaborators and session state."""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import duckdb

from smsrouter.commands.formatter import (
    format_arrivals,
    format_booking,
    format_estimate,
    format_quote,
    format_ride_status,
    format_service_alerts,
    truncate_sms,
)
from smsrouter.commands.parser import HELP_TEXT, Command, CommandType
from smsrouter.commands.session_store import Slot
from smsrouter.db import calories
from smsrouter.deferred import GENERIC_APOLOGY, DeferredJob
from smsrouter.logging_utils import log_error, log_info, mask_phone
from smsrouter.media_fetch import fetch_media
from smsrouter.metrics import get_metrics_collector, is_metrics_enabled
from smsrouter.nutrition.provider import EstimateResult, NutritionProvider
from smsrouter.rides.provider import (
    AuthChallenge,
    PriceExceededError,
    RideProvider,
    RideQuote,
)
from smsrouter.transit.provider import TransitProvider

logger = logging.getLogger(__name__)

BUS_APOLOGY = "Sorry, there was an error getting bus times. Please try again later."
CALORIE_APOLOGY = "Sorry, there was an error estimating calories. Please try again later."
RIDE_APOLOGY = "Sorry, there was an error reaching Uber. Please try again later."

NO_RECENT_QUERY = "No recent query to refresh. Text a stop code to get started."
REFRESH_FOOTER = "\n\nText R to refresh."
NO_MEDIA = "Please attach a photo of your food, or text a food description."

NO_PENDING_RIDE = "No pending ride. Text 'uber <pickup> to <destination>' for a quote first."
NO_ACTIVE_RIDE = "No active Uber ride. Text 'uber <pickup> to <destination>' for a quote."
NOTHING_TO_CANCEL = "No Uber ride to cancel."
PENDING_DISCARDED = "Pending Uber quote discarded."
NO_PENDING_AUTH = "No login in progress. Text 'uber <pickup> to <destination>' to start."
AUTH_RESUMED = "Logged in to Uber. Send your last uber command again."
AUTH_PROMPT = "Reply 'uber auth <code>' with the code to continue."

MIN_SUGGESTION_CALORIES = 100

# Failures a collaborator or the database may raise; anything else is a bug
COLLABORATOR_ERRORS = (RuntimeError, ValueError, duckdb.Error)

_BUS_COMMANDS = {CommandType.STOP_QUERY, CommandType.REFRESH, CommandType.SERVICE_CHANGES}
_CALORIE_COMMANDS = {
    CommandType.FOOD_QUERY,
    CommandType.IMAGE_CALORIE,
    CommandType.SUGGESTIONS,
    CommandType.TOTAL,
    CommandType.SUBTRACT,
    CommandType.RESET_CALORIES,
    CommandType.SET_TARGET,
}


def apology_for(command_type: CommandType) -> str:
    """Fixed user-facing apology for a failed command."""
    if command_type in _BUS_COMMANDS:
        return BUS_APOLOGY
    if command_type in _CALORIE_COMMANDS:
        return CALORIE_APOLOGY
    if command_type.value.startswith("uber_"):
        return RIDE_APOLOGY
    return GENERIC_APOLOGY


@dataclass
class DispatchResult:
    """Outcome of dispatching one command.

    Attributes:
        reply: Text for the inline reply, or None for no inline reply
        deferred: Job whose result must be sent out of band, if any
        status: "ok", "deferred", "precondition" or "error"
    """

    reply: str | None
    deferred: DeferredJob | None = None
    status: str = "ok"


class CommandDispatcher:
    """Route commands to handlers and compose replies."""

    def __init__(
        self,
        sessions: Any,
        db_conn: duckdb.DuckDBPyConnection,
        transit: TransitProvider,
        nutrition: NutritionProvider,
        rides: RideProvider,
        media_fetcher: Callable[[str], tuple[bytes, str]] = fetch_media,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            sessions: SessionStore or RedisSessionStore
            db_conn: DuckDB connection holding the calorie counter
            transit: Bus arrivals collaborator
            nutrition: Calorie estimation collaborator
            rides: Ride agent collaborator
            media_fetcher: Downloads MMS attachments
        """
        self.sessions = sessions
        self.db_conn = db_conn
        self.transit = transit
        self.nutrition = nutrition
        self.rides = rides
        self.media_fetcher = media_fetcher
        # DuckDB connections must not be used from several threads at once
        self._db_lock = threading.Lock()

        self._handlers: dict[CommandType, Callable[..., DispatchResult]] = {
            CommandType.HELP: self._handle_help,
            CommandType.ERROR: self._handle_error,
            CommandType.RESET_CALORIES: self._handle_reset,
            CommandType.TOTAL: self._handle_total,
            CommandType.SUBTRACT: self._handle_subtract,
            CommandType.SET_TARGET: self._handle_set_target,
            CommandType.SUGGESTIONS: self._handle_suggestions,
            CommandType.IMAGE_CALORIE: self._handle_image,
            CommandType.FOOD_QUERY: self._handle_food,
            CommandType.STOP_QUERY: self._handle_stop_query,
            CommandType.REFRESH: self._handle_refresh,
            CommandType.SERVICE_CHANGES: self._handle_service_changes,
            CommandType.UBER_QUOTE: self._handle_uber_quote,
            CommandType.UBER_CONFIRM: self._handle_uber_confirm,
            CommandType.UBER_STATUS: self._handle_uber_status,
            CommandType.UBER_CANCEL: self._handle_uber_cancel,
            CommandType.UBER_AUTH: self._handle_uber_auth,
        }

    def dispatch(
        self,
        command: Command,
        phone: str,
        to_number: str,
        media_url: str | None = None,
    ) -> DispatchResult:
        """Execute a command.

        Collaborator failures become a fixed apology; session-state violations
        become instructive replies. Slow commands return an acknowledgement
        plus a DeferredJob for the caller to run.

        Args:
            command: Parsed command
            phone: Sender phone number (session key and reply address)
            to_number: Number the sender texted
            media_url: URL of the first MMS attachment, if any
        """
        start = time.monotonic()
        handler = self._handlers[command.type]
        try:
            result = handler(command, phone, to_number, media_url)
        except COLLABORATOR_ERRORS as e:
            log_error(
                logger,
                "Command failed",
                command=command.type.value,
                phone=mask_phone(phone),
                elapsed_ms=round((time.monotonic() - start) * 1000),
                error=e,
            )
            result = DispatchResult(reply=apology_for(command.type), status="error")

        elapsed_ms = (time.monotonic() - start) * 1000
        log_info(
            logger,
            "Command dispatched",
            command=command.type.value,
            status=result.status,
            phone=mask_phone(phone),
            elapsed_ms=round(elapsed_ms),
        )
        if is_metrics_enabled():
            get_metrics_collector().record_command(command.type.value, result.status, elapsed_ms)
        return result

    def check_database(self) -> None:
        """Run a trivial query on the shared connection; raises if it is unusable."""
        with self._db_lock:
            self.db_conn.execute("SELECT 1").fetchone()

    # Calorie counter helpers

    def _add_calories(self, amount: int) -> int:
        with self._db_lock:
            return calories.add_calories(self.db_conn, amount)

    def _estimate_reply(self, result: EstimateResult) -> str:
        text = format_estimate(result)
        if result.success and result.total_calories:
            total = self._add_calories(result.total_calories)
            text += f"\n\nDaily total: {total} cal"
        return text

    # Fast commands

    def _handle_help(self, command, phone, to_number, media_url) -> DispatchResult:
        return DispatchResult(reply=HELP_TEXT)

    def _handle_error(self, command, phone, to_number, media_url) -> DispatchResult:
        return DispatchResult(reply=command.entities["message"])

    def _handle_reset(self, command, phone, to_number, media_url) -> DispatchResult:
        with self._db_lock:
            previous = calories.reset_today(self.db_conn)
        return DispatchResult(reply=f"Daily calories reset. Previous total was {previous} cal.")

    def _handle_total(self, command, phone, to_number, media_url) -> DispatchResult:
        with self._db_lock:
            total = calories.get_today_total(self.db_conn)
            target = calories.get_target(self.db_conn)

        remaining = target - total
        if remaining >= 0:
            progress = f"Target: {target} cal ({remaining} remaining)"
        else:
            progress = f"Target: {target} cal ({-remaining} over)"
        return DispatchResult(reply=f"Today's total: {total} cal\n\n{progress}")

    def _handle_subtract(self, command, phone, to_number, media_url) -> DispatchResult:
        amount = command.entities["amount"]
        with self._db_lock:
            total = calories.subtract_calories(self.db_conn, amount)
        return DispatchResult(reply=f"Subtracted {amount} cal.\n\nDaily total: {total} cal")

    def _handle_set_target(self, command, phone, to_number, media_url) -> DispatchResult:
        target = command.entities["target"]
        if target <= 0:
            return DispatchResult(
                reply="Target must be greater than 0 cal.", status="precondition"
            )
        with self._db_lock:
            calories.set_target(self.db_conn, target)
        return DispatchResult(reply=f"Daily target set to {target} cal.")

    def _handle_suggestions(self, command, phone, to_number, media_url) -> DispatchResult:
        amount = command.entities.get("calories")
        if amount is None:
            with self._db_lock:
                remaining = calories.get_target(self.db_conn) - calories.get_today_total(
                    self.db_conn
                )
            amount = max(MIN_SUGGESTION_CALORIES, remaining)

        text = self.nutrition.suggest(amount, command.entities.get("descriptors"))
        return DispatchResult(reply=text)

    def _handle_image(self, command, phone, to_number, media_url) -> DispatchResult:
        if not media_url:
            return DispatchResult(reply=NO_MEDIA, status="precondition")

        image, content_type = self.media_fetcher(media_url)
        context = command.entities.get("text_context") or None
        result = self.nutrition.estimate_from_image(image, content_type, context)
        return DispatchResult(reply=self._estimate_reply(result))

    def _handle_food(self, command, phone, to_number, media_url) -> DispatchResult:
        result = self.nutrition.estimate_from_text(command.entities["description"])
        return DispatchResult(reply=self._estimate_reply(result))

    def _handle_stop_query(self, command, phone, to_number, media_url) -> DispatchResult:
        stop_code = command.entities["stop_code"]
        route = command.entities.get("route")

        arrivals = self.transit.get_arrivals(stop_code, route)
        self.sessions.put(phone, Slot.LAST_BUS_QUERY, {"stop_code": stop_code, "route": route})
        return DispatchResult(reply=format_arrivals(arrivals) + REFRESH_FOOTER)

    def _handle_refresh(self, command, phone, to_number, media_url) -> DispatchResult:
        last_query = self.sessions.get(phone, Slot.LAST_BUS_QUERY)
        if last_query is None:
            return DispatchResult(reply=NO_RECENT_QUERY, status="precondition")

        arrivals = self.transit.get_arrivals(last_query["stop_code"], last_query.get("route"))
        return DispatchResult(reply=format_arrivals(arrivals))

    def _handle_service_changes(self, command, phone, to_number, media_url) -> DispatchResult:
        route = command.entities["route"]
        alerts = self.transit.get_service_alerts(route)
        return DispatchResult(reply=format_service_alerts(route, alerts))

    # Slow commands: preconditions are checked here, the ride agent runs deferred

    def _defer(
        self, command: Command, phone: str, to_number: str, ack: str, work: Callable[[], str]
    ) -> DispatchResult:
        job = DeferredJob(
            command=command.type.value,
            phone=phone,
            to_number=to_number,
            work=lambda: truncate_sms(work()),
            apology=RIDE_APOLOGY,
        )
        return DispatchResult(reply=ack, deferred=job, status="deferred")

    def _store_quote(self, phone: str, quote: RideQuote) -> str:
        self.sessions.put(phone, Slot.PENDING_RIDE, quote.to_pending())
        return format_quote(quote)

    def _store_auth(
        self, phone: str, challenge: AuthChallenge, action: CommandType, params: dict[str, Any]
    ) -> str:
        self.sessions.put(
            phone,
            Slot.PENDING_AUTH,
            {"original_action": action.value, "original_parameters": params},
        )
        return f"{challenge.message}\n\n{AUTH_PROMPT}"

    def _clear_pending_ride(self, phone: str, pending: dict[str, Any]) -> None:
        """Clear the pending ride unless a newer quote replaced it meanwhile."""
        current = self.sessions.get(phone, Slot.PENDING_RIDE)
        if current is not None and current.get("captured_at") == pending.get("captured_at"):
            self.sessions.clear(phone, Slot.PENDING_RIDE)

    def _handle_uber_quote(self, command, phone, to_number, media_url) -> DispatchResult:
        pickup = command.entities["pickup"]
        destination = command.entities["destination"]

        def work() -> str:
            result = self.rides.get_quote(pickup, destination)
            if isinstance(result, AuthChallenge):
                return self._store_auth(
                    phone,
                    result,
                    CommandType.UBER_QUOTE,
                    {"pickup": pickup, "destination": destination},
                )
            return self._store_quote(phone, result)

        ack = f"Getting Uber prices for {pickup} to {destination}..."
        return self._defer(command, phone, to_number, ack, work)

    def _handle_uber_confirm(self, command, phone, to_number, media_url) -> DispatchResult:
        pending = self.sessions.get(phone, Slot.PENDING_RIDE)
        if pending is None:
            return DispatchResult(reply=NO_PENDING_RIDE, status="precondition")

        products = pending.get("products") or []
        index = command.entities.get("product_index", 1)
        if not 1 <= index <= len(products):
            return DispatchResult(
                reply=f"Choose an option from 1 to {len(products)}, e.g. 'uber confirm 1'.",
                status="precondition",
            )

        def work() -> str:
            try:
                result = self.rides.confirm(pending, index)
            except PriceExceededError as e:
                self._clear_pending_ride(phone, pending)
                return (
                    f"Price went up from ${e.quoted:.2f} to ${e.live:.2f}, so the ride was "
                    f"not booked. Text 'uber {pending['pickup']} to {pending['destination']}' "
                    "for a new quote."
                )

            if isinstance(result, AuthChallenge):
                return self._store_auth(
                    phone, result, CommandType.UBER_CONFIRM, {"product_index": index}
                )

            self.sessions.put(
                phone,
                Slot.ACTIVE_RIDE,
                {
                    "request_id": result.request_id,
                    "product": result.product,
                    "pickup": pending["pickup"],
                    "destination": pending["destination"],
                },
            )
            self._clear_pending_ride(phone, pending)
            return format_booking(result)

        ack = f"Booking {products[index - 1]['name']} to {pending['destination']}..."
        return self._defer(command, phone, to_number, ack, work)

    def _handle_uber_status(self, command, phone, to_number, media_url) -> DispatchResult:
        active = self.sessions.get(phone, Slot.ACTIVE_RIDE)
        if active is None:
            pending = self.sessions.get(phone, Slot.PENDING_RIDE)
            if pending is None:
                return DispatchResult(reply=NO_ACTIVE_RIDE, status="precondition")
            return DispatchResult(reply="No active ride yet. " + format_quote(pending))

        request_id = active["request_id"]

        def work() -> str:
            status = self.rides.status(request_id)
            if status.is_terminal:
                self.sessions.clear(phone, Slot.ACTIVE_RIDE)
            return format_ride_status(status)

        return self._defer(command, phone, to_number, "Checking your ride...", work)

    def _handle_uber_cancel(self, command, phone, to_number, media_url) -> DispatchResult:
        active = self.sessions.get(phone, Slot.ACTIVE_RIDE)
        if active is None:
            if self.sessions.get(phone, Slot.PENDING_RIDE) is None:
                return DispatchResult(reply=NOTHING_TO_CANCEL, status="precondition")
            self.sessions.clear(phone, Slot.PENDING_RIDE)
            return DispatchResult(reply=PENDING_DISCARDED)

        request_id = active["request_id"]

        def work() -> str:
            self.rides.cancel(request_id)
            self.sessions.clear(phone, Slot.ACTIVE_RIDE)
            return "Your Uber ride has been canceled."

        return self._defer(command, phone, to_number, "Canceling your ride...", work)

    def _handle_uber_auth(self, command, phone, to_number, media_url) -> DispatchResult:
        pending_auth = self.sessions.get(phone, Slot.PENDING_AUTH)
        if pending_auth is None:
            return DispatchResult(reply=NO_PENDING_AUTH, status="precondition")

        code = command.entities["code"]

        def work() -> str:
            result = self.rides.resume_with_auth_code(code, pending_auth)
            if isinstance(result, AuthChallenge):
                return f"{result.message}\n\nReply 'uber auth <code>' to try again."
            if result is False:
                return "Uber login failed. Reply 'uber auth <code>' to try again."

            self.sessions.clear(phone, Slot.PENDING_AUTH)
            if isinstance(result, RideQuote):
                return self._store_quote(phone, result)
            return AUTH_RESUMED

        return self._defer(command, phone, to_number, "Submitting your login code...", work)
