"""Tests for the command dispatcher."""

import threading

import duckdb
import pytest

from smsrouter.commands.dispatcher import (
    AUTH_RESUMED,
    BUS_APOLOGY,
    CALORIE_APOLOGY,
    NO_ACTIVE_RIDE,
    NO_MEDIA,
    NO_PENDING_AUTH,
    NO_PENDING_RIDE,
    NO_RECENT_QUERY,
    NOTHING_TO_CANCEL,
    PENDING_DISCARDED,
    REFRESH_FOOTER,
    RIDE_APOLOGY,
    CommandDispatcher,
    apology_for,
)
from smsrouter.commands.formatter import NO_ARRIVALS
from smsrouter.commands.parser import (
    HELP_TEXT,
    NUMBER_TOO_LARGE,
    Command,
    CommandParser,
    CommandType,
)
from smsrouter.commands.session_store import SessionStore, Slot
from smsrouter.deferred import GENERIC_APOLOGY, InlineRunner
from smsrouter.messaging.provider import DevLoggerProvider
from smsrouter.nutrition.stub_provider import StubNutritionProvider
from smsrouter.rides.stub_provider import STUB_AUTH_CODE, StubRideProvider
from smsrouter.transit.fixture_provider import FixtureTransitProvider
from smsrouter.transit.provider import TransitError


class FailingTransitProvider(FixtureTransitProvider):
    def get_arrivals(self, stop_code, route=None):
        raise TransitError("MTA timed out")


class Harness:
    """Dispatcher wired to stub collaborators, with deferred jobs run inline."""

    def __init__(self, dispatcher: CommandDispatcher, phone: str, service_number: str) -> None:
        self.dispatcher = dispatcher
        self.phone = phone
        self.service_number = service_number
        self.messaging = DevLoggerProvider()
        self.runner = InlineRunner(self.messaging)
        self.parser = CommandParser()

    def send(self, text: str, media_url: str | None = None, media_type: str | None = None):
        command = self.parser.parse(text, has_media=media_url is not None, media_type=media_type)
        return self.dispatch(command, media_url)

    def dispatch(self, command: Command, media_url: str | None = None):
        result = self.dispatcher.dispatch(
            command, self.phone, self.service_number, media_url=media_url
        )
        if result.deferred is not None:
            self.runner.submit(result.deferred)
        return result

    @property
    def last_sent(self) -> str:
        return self.messaging.sent[-1]["body"]


@pytest.fixture
def sessions(clock) -> SessionStore:
    return SessionStore(clock=clock)


@pytest.fixture
def rides() -> StubRideProvider:
    return StubRideProvider()


@pytest.fixture
def fetched_urls() -> list[str]:
    return []


@pytest.fixture
def dispatcher(sessions, db_conn, rides, fetched_urls) -> CommandDispatcher:
    def fake_fetch(url: str) -> tuple[bytes, str]:
        fetched_urls.append(url)
        return b"\xff\xd8fake-jpeg", "image/jpeg"

    return CommandDispatcher(
        sessions=sessions,
        db_conn=db_conn,
        transit=FixtureTransitProvider(),
        nutrition=StubNutritionProvider(),
        rides=rides,
        media_fetcher=fake_fetch,
    )


@pytest.fixture
def harness(dispatcher, phone, service_number) -> Harness:
    return Harness(dispatcher, phone, service_number)


class TestGeneralCommands:
    def test_help(self, harness) -> None:
        assert harness.send("how").reply == HELP_TEXT

    def test_error_command_replies_with_hint(self, harness) -> None:
        result = harness.send("a")
        assert result.reply == 'Send "how" for available commands.'
        assert result.deferred is None

    def test_apology_for(self) -> None:
        assert apology_for(CommandType.REFRESH) == BUS_APOLOGY
        assert apology_for(CommandType.SUBTRACT) == CALORIE_APOLOGY
        assert apology_for(CommandType.UBER_CANCEL) == RIDE_APOLOGY
        assert apology_for(CommandType.HELP) == GENERIC_APOLOGY

    def test_oversized_number_replies_with_error(self, harness) -> None:
        result = harness.send("sub " + "9" * 5000)
        assert result.reply == NUMBER_TOO_LARGE
        assert result.status == "ok"


class TestDatabaseCheck:
    def test_check_database(self, dispatcher) -> None:
        dispatcher.check_database()

    def test_check_waits_for_database_lock(self, dispatcher) -> None:
        finished = threading.Event()

        def check():
            dispatcher.check_database()
            finished.set()

        with dispatcher._db_lock:
            thread = threading.Thread(target=check)
            thread.start()
            assert not finished.wait(timeout=0.2)

        thread.join(timeout=5)
        assert finished.is_set()

    def test_closed_connection_raises(self, dispatcher, db_conn) -> None:
        db_conn.close()
        with pytest.raises(duckdb.Error):
            dispatcher.check_database()


class TestCalorieCommands:
    def test_food_query_adds_to_total(self, harness) -> None:
        result = harness.send("2 eggs and toast")

        assert result.status == "ok"
        assert "egg: ~140 cal" in result.reply
        assert "Total: ~220 cal" in result.reply
        assert result.reply.endswith("Daily total: 220 cal")

        assert harness.send("banana").reply.endswith("Daily total: 325 cal")

    def test_total_with_remaining(self, harness) -> None:
        harness.send("banana")
        assert harness.send("total").reply == (
            "Today's total: 105 cal\n\nTarget: 1800 cal (1695 remaining)"
        )

    def test_total_over_target(self, harness) -> None:
        harness.send("target 100")
        harness.send("bagel")
        assert harness.send("total").reply.endswith("Target: 100 cal (180 over)")

    def test_subtract_floors_at_zero(self, harness) -> None:
        harness.send("apple")
        assert harness.send("sub 500").reply == "Subtracted 500 cal.\n\nDaily total: 0 cal"

    def test_reset_reports_previous_total(self, harness) -> None:
        harness.send("pizza")
        assert harness.send("reset calories").reply == (
            "Daily calories reset. Previous total was 285 cal."
        )
        assert harness.send("total").reply.startswith("Today's total: 0 cal")

    def test_set_target(self, harness) -> None:
        assert harness.send("set target 2000").reply == "Daily target set to 2000 cal."
        assert "Target: 2000 cal" in harness.send("total").reply

    def test_zero_target_is_rejected(self, harness) -> None:
        result = harness.send("target 0")
        assert result.status == "precondition"
        assert result.reply == "Target must be greater than 0 cal."
        assert "Target: 1800 cal" in harness.send("total").reply

    def test_suggestions_default_to_remaining(self, harness) -> None:
        harness.send("bagel")
        assert "~1520 cal" in harness.send("suggest").reply

    def test_suggestions_floor(self, harness) -> None:
        harness.send("target 100")
        harness.send("bagel")
        assert "~100 cal" in harness.send("ideas").reply

    def test_suggestions_explicit_amount(self, harness) -> None:
        assert "~400 cal" in harness.send("suggest 400 savory").reply

    def test_image_estimate(self, harness, fetched_urls) -> None:
        url = "https://api.twilio.com/2010-04-01/Media/ME1"
        result = harness.send("", media_url=url, media_type="image/jpeg")

        assert fetched_urls == [url]
        assert result.reply.startswith("mixed plate (1 plate): ~500 cal")
        assert result.reply.endswith("Daily total: 500 cal")

    def test_image_uses_text_context(self, harness) -> None:
        url = "https://api.twilio.com/2010-04-01/Media/ME1"
        result = harness.send("banana", media_url=url, media_type="image/jpeg")
        assert result.reply.startswith("banana (1 serving): ~105 cal")

    def test_image_without_url(self, harness, fetched_urls) -> None:
        result = harness.dispatch(Command(CommandType.IMAGE_CALORIE, {"text_context": ""}))
        assert result.reply == NO_MEDIA
        assert result.status == "precondition"
        assert fetched_urls == []

    def test_media_fetch_failure_apologizes(self, harness, dispatcher, db_conn) -> None:
        def broken_fetch(url):
            raise RuntimeError("Media download failed")

        dispatcher.media_fetcher = broken_fetch
        result = harness.send("", media_url="https://api.twilio.com/m", media_type="image/png")

        assert result.reply == CALORIE_APOLOGY
        assert result.status == "error"
        assert harness.send("total").reply.startswith("Today's total: 0 cal")


class TestBusCommands:
    def test_stop_query_stores_last_query(self, harness, sessions, phone) -> None:
        result = harness.send("308209")

        assert result.reply.startswith("Bus arrivals at 4 AV/9 ST:")
        assert result.reply.endswith(REFRESH_FOOTER)
        assert sessions.get(phone, Slot.LAST_BUS_QUERY)["stop_code"] == "308209"

    def test_refresh_repeats_last_query(self, harness) -> None:
        first = harness.send("308209 B63")
        refreshed = harness.send("R")

        assert refreshed.reply == first.reply[: -len(REFRESH_FOOTER)]
        assert "B37" not in refreshed.reply

    def test_refresh_without_query(self, harness) -> None:
        result = harness.send("refresh")
        assert result.reply == NO_RECENT_QUERY
        assert result.status == "precondition"

    def test_refresh_after_expiry(self, harness, clock) -> None:
        harness.send("308209")
        clock.advance(minutes=21)
        assert harness.send("R").reply == NO_RECENT_QUERY

    def test_unknown_stop(self, harness) -> None:
        assert harness.send("999999").reply == NO_ARRIVALS + REFRESH_FOOTER

    def test_service_changes(self, harness) -> None:
        assert "detoured" in harness.send("c b63").reply
        assert harness.send("c b37").reply == "No service changes reported for B37."

    def test_transit_failure_apologizes_without_storing(
        self, harness, dispatcher, sessions, phone
    ) -> None:
        dispatcher.transit = FailingTransitProvider()
        result = harness.send("308209")

        assert result.reply == BUS_APOLOGY
        assert result.status == "error"
        assert sessions.get(phone, Slot.LAST_BUS_QUERY) is None


class TestUberQuote:
    def test_quote_is_acknowledged_then_sent(self, harness, sessions, phone, service_number):
        result = harness.send("uber times square to jfk")

        assert result.status == "deferred"
        assert result.reply == "Getting Uber prices for times square to jfk..."
        sent = harness.messaging.sent[-1]
        assert sent["to"] == phone
        assert sent["from_"] == service_number
        assert sent["body"].startswith("Uber from times square to jfk:")
        assert "1. UberX: $18-$22 (4 min)" in sent["body"]

        pending = sessions.get(phone, Slot.PENDING_RIDE)
        assert pending["destination"] == "jfk"
        assert len(pending["products"]) == 3

    def test_agent_failure_sends_apology(self, harness, rides, sessions, phone) -> None:
        def boom(pickup, destination):
            raise RuntimeError("browser crashed")

        rides.get_quote = boom
        harness.send("uber home to work")

        assert harness.last_sent == RIDE_APOLOGY
        assert sessions.get(phone, Slot.PENDING_RIDE) is None


class TestUberConfirm:
    def test_confirm_without_quote_never_calls_agent(self, harness, rides) -> None:
        result = harness.send("uber confirm")

        assert result.reply == NO_PENDING_RIDE
        assert result.deferred is None
        assert rides.calls == []

    def test_confirm_after_expiry(self, harness, rides, clock) -> None:
        harness.send("uber home to work")
        clock.advance(minutes=11)

        assert harness.send("uber confirm").reply == NO_PENDING_RIDE
        assert "confirm" not in rides.calls

    def test_confirm_books_and_tracks_ride(self, harness, sessions, phone) -> None:
        harness.send("uber home to work")
        result = harness.send("uber confirm 2")

        assert result.reply == "Booking Comfort to work..."
        assert harness.last_sent.startswith("Ride booked! Comfort for $29.00.")
        active = sessions.get(phone, Slot.ACTIVE_RIDE)
        assert active["product"] == "Comfort"
        assert active["pickup"] == "home"
        assert sessions.get(phone, Slot.PENDING_RIDE) is None

    def test_out_of_range_option(self, harness, rides) -> None:
        harness.send("uber home to work")
        result = harness.send("uber confirm 7")

        assert result.status == "precondition"
        assert result.reply == "Choose an option from 1 to 3, e.g. 'uber confirm 1'."
        assert "confirm" not in rides.calls

    def test_price_jump_aborts_booking(self, harness, rides, sessions, phone) -> None:
        harness.send("uber home to work")
        rides.live_price_multiplier = 1.5
        harness.send("uber confirm")

        assert harness.last_sent.startswith("Price went up from $22.00 to $33.00")
        assert "'uber home to work'" in harness.last_sent
        assert sessions.get(phone, Slot.ACTIVE_RIDE) is None
        assert sessions.get(phone, Slot.PENDING_RIDE) is None
        assert rides.rides == {}

    def test_newer_quote_survives_booking(
        self, harness, dispatcher, sessions, phone, clock
    ) -> None:
        harness.send("uber home to work")
        confirm = dispatcher.dispatch(
            harness.parser.parse("uber confirm"), phone, harness.service_number
        )

        clock.advance(seconds=30)
        harness.send("uber office to the gym")
        harness.runner.submit(confirm.deferred)

        assert harness.last_sent.startswith("Ride booked! UberX")
        assert sessions.get(phone, Slot.ACTIVE_RIDE)["pickup"] == "home"
        assert sessions.get(phone, Slot.PENDING_RIDE)["pickup"] == "office"

    def test_newer_quote_survives_price_jump(
        self, harness, dispatcher, rides, sessions, phone, clock
    ) -> None:
        harness.send("uber home to work")
        confirm = dispatcher.dispatch(
            harness.parser.parse("uber confirm"), phone, harness.service_number
        )

        clock.advance(seconds=30)
        harness.send("uber office to the gym")
        rides.live_price_multiplier = 1.5
        harness.runner.submit(confirm.deferred)

        assert harness.last_sent.startswith("Price went up")
        assert sessions.get(phone, Slot.PENDING_RIDE)["pickup"] == "office"

    def test_small_price_change_is_tolerated(self, harness, rides, sessions, phone) -> None:
        harness.send("uber home to work")
        rides.live_price_multiplier = 1.05
        harness.send("uber confirm")

        assert harness.last_sent.startswith("Ride booked! UberX")
        assert sessions.get(phone, Slot.ACTIVE_RIDE) is not None


class TestUberStatusAndCancel:
    def test_status_without_ride(self, harness) -> None:
        result = harness.send("uber status")
        assert result.reply == NO_ACTIVE_RIDE
        assert result.status == "precondition"

    def test_status_with_only_pending_quote(self, harness) -> None:
        harness.send("uber home to work")
        result = harness.send("uber status")

        assert result.deferred is None
        assert result.reply.startswith("No active ride yet. Uber from home to work:")

    def test_status_of_active_ride(self, harness) -> None:
        harness.send("uber home to work")
        harness.send("uber confirm")
        result = harness.send("uber status")

        assert result.reply == "Checking your ride..."
        assert harness.last_sent == "Ride status: accepted\nDriver: Alex\nETA: 4 min"

    def test_terminal_status_clears_active_ride(self, harness, rides, sessions, phone) -> None:
        harness.send("uber home to work")
        harness.send("uber confirm")
        request_id = sessions.get(phone, Slot.ACTIVE_RIDE)["request_id"]
        rides.rides[request_id].status = "completed"

        harness.send("uber status")

        assert harness.last_sent == "Your ride is complete."
        assert sessions.get(phone, Slot.ACTIVE_RIDE) is None

    def test_cancel_active_ride(self, harness, rides, sessions, phone) -> None:
        harness.send("uber home to work")
        harness.send("uber confirm")
        request_id = sessions.get(phone, Slot.ACTIVE_RIDE)["request_id"]

        assert harness.send("uber cancel").reply == "Canceling your ride..."
        assert harness.last_sent == "Your Uber ride has been canceled."
        assert rides.rides[request_id].status == "rider_canceled"
        assert sessions.get(phone, Slot.ACTIVE_RIDE) is None

    def test_cancel_pending_quote(self, harness, rides, sessions, phone) -> None:
        harness.send("uber home to work")
        result = harness.send("uber cancel")

        assert result.reply == PENDING_DISCARDED
        assert sessions.get(phone, Slot.PENDING_RIDE) is None
        assert "cancel" not in rides.calls

    def test_cancel_nothing(self, harness) -> None:
        assert harness.send("uber cancel").reply == NOTHING_TO_CANCEL

    def test_failed_cancel_keeps_active_ride(self, harness, rides, sessions, phone) -> None:
        harness.send("uber home to work")
        harness.send("uber confirm")

        def boom(request_id):
            raise RuntimeError("agent offline")

        rides.cancel = boom
        harness.send("uber cancel")

        assert harness.last_sent == RIDE_APOLOGY
        assert sessions.get(phone, Slot.ACTIVE_RIDE) is not None


class TestUberAuth:
    def test_auth_without_challenge(self, harness, rides) -> None:
        result = harness.send(f"uber auth {STUB_AUTH_CODE}")
        assert result.reply == NO_PENDING_AUTH
        assert rides.calls == []

    def test_quote_resumes_after_login(self, harness, rides, sessions, phone) -> None:
        rides.require_auth = True
        harness.send("uber home to work")

        assert harness.last_sent.startswith("Uber sent a login code to your phone.")
        pending_auth = sessions.get(phone, Slot.PENDING_AUTH)
        assert pending_auth["original_action"] == "uber_quote"
        assert pending_auth["original_parameters"] == {"pickup": "home", "destination": "work"}

        result = harness.send(f"uber auth {STUB_AUTH_CODE}")

        assert result.reply == "Submitting your login code..."
        assert harness.last_sent.startswith("Uber from home to work:")
        assert sessions.get(phone, Slot.PENDING_AUTH) is None
        assert sessions.get(phone, Slot.PENDING_RIDE) is not None

    def test_wrong_code_keeps_challenge(self, harness, rides, sessions, phone) -> None:
        rides.require_auth = True
        harness.send("uber home to work")
        harness.send("uber auth 0000")

        assert harness.last_sent == (
            "That code was not accepted.\n\nReply 'uber auth <code>' to try again."
        )
        assert sessions.get(phone, Slot.PENDING_AUTH) is not None

    def test_confirm_login_resumes(self, harness, rides, sessions, phone) -> None:
        harness.send("uber home to work")
        rides.require_auth = True
        harness.send("uber confirm")

        assert sessions.get(phone, Slot.PENDING_AUTH)["original_action"] == "uber_confirm"

        harness.send(f"uber auth {STUB_AUTH_CODE}")
        assert harness.last_sent == AUTH_RESUMED
        assert sessions.get(phone, Slot.PENDING_RIDE) is not None
