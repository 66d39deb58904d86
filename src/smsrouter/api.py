"""FastAPI app exposing the Twilio SMS webhook."""

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from twilio.request_validator import RequestValidator
from twilio.twiml.messaging_response import MessagingResponse

from smsrouter.commands.dispatcher import CommandDispatcher
from smsrouter.commands.formatter import truncate_sms
from smsrouter.commands.parser import CommandParser
from smsrouter.commands.session_store import RedisSessionStore
from smsrouter.db import init_db
from smsrouter.deferred import GENERIC_APOLOGY, DeferredRunner
from smsrouter.logging_utils import (
    clear_request_id,
    log_error,
    log_info,
    log_warning,
    mask_phone,
    set_request_id,
)
from smsrouter.messaging import get_messaging_provider
from smsrouter.metrics import get_metrics_collector, is_metrics_enabled
from smsrouter.models import DependencyStatus, InboundMessage, StatusResponse
from smsrouter.nutrition import get_nutrition_provider
from smsrouter.redis_client import get_redis_client
from smsrouter.rides import get_ride_provider
from smsrouter.transit import get_transit_provider

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _deferred_runner is not None:
        _deferred_runner.shutdown(wait=False)


app = FastAPI(
    title="SMS Command Router",
    version="1.0.0",
    description="Routes inbound SMS to bus times, calorie tracking and ride booking",
    lifespan=lifespan,
)

# Initialized lazily so tests can configure the environment first
_db_conn = None
_session_store: RedisSessionStore | None = None
_dispatcher: CommandDispatcher | None = None
_deferred_runner = None

_parser = CommandParser()


def get_db():
    """Get or initialize the database connection.

    Uses SMSROUTER_DB_PATH; tests set it to :memory: in conftest.py.
    """
    global _db_conn
    if _db_conn is None:
        _db_conn = init_db()
    return _db_conn


def get_session_store() -> RedisSessionStore:
    """Get the session store (Redis when available, in-memory otherwise)."""
    global _session_store
    if _session_store is None:
        _session_store = RedisSessionStore(get_redis_client())
    return _session_store


def get_dispatcher() -> CommandDispatcher:
    """Get or build the dispatcher with the configured collaborators."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = CommandDispatcher(
            sessions=get_session_store(),
            db_conn=get_db(),
            transit=get_transit_provider(),
            nutrition=get_nutrition_provider(),
            rides=get_ride_provider(),
        )
    return _dispatcher


def get_deferred_runner():
    """Get the runner for out-of-band replies."""
    global _deferred_runner
    if _deferred_runner is None:
        _deferred_runner = DeferredRunner(get_messaging_provider())
    return _deferred_runner


def _signature_validation_enabled() -> bool:
    flag = os.getenv("SMSROUTER_VALIDATE_TWILIO_SIGNATURE", "false")
    return flag.lower() in ("true", "1", "yes")


def _verify_twilio_signature(request: Request, params: dict[str, str]) -> bool:
    """Check X-Twilio-Signature against the request URL and form params.

    SMSROUTER_PUBLIC_URL overrides the URL when running behind a proxy.
    """
    auth_token = os.getenv("TWILIO_AUTH_TOKEN")
    signature = request.headers.get("X-Twilio-Signature")
    if not auth_token or not signature:
        return False

    url = os.getenv("SMSROUTER_PUBLIC_URL") or str(request.url)
    return RequestValidator(auth_token).validate(url, params, signature)


def handle_message(message: InboundMessage) -> str | None:
    """Parse and dispatch one inbound message.

    Returns:
        Inline reply text, or None when there is nothing to say inline
    """
    start = time.monotonic()
    command = None
    try:
        command = _parser.parse(
            message.body, has_media=message.has_media, media_type=message.media_type
        )
        log_info(
            logger,
            "Inbound SMS",
            phone=mask_phone(message.from_number),
            command=command.type.value,
            num_media=message.num_media,
        )
        result = get_dispatcher().dispatch(
            command, message.from_number, message.to_number, media_url=message.media_url
        )
    except Exception as e:
        log_error(
            logger,
            "Unhandled error handling message",
            command=command.type.value if command else None,
            phone=mask_phone(message.from_number),
            elapsed_ms=round((time.monotonic() - start) * 1000),
            error=repr(e),
        )
        return GENERIC_APOLOGY

    if result.deferred is not None:
        get_deferred_runner().submit(result.deferred)

    return truncate_sms(result.reply) if result.reply else None


@app.post("/sms")
async def inbound_sms(request: Request) -> Response:
    """Twilio inbound message webhook. Replies with TwiML."""
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}

    if _signature_validation_enabled() and not _verify_twilio_signature(request, params):
        log_warning(logger, "Rejected webhook with invalid Twilio signature")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "Invalid Twilio signature"},
        )

    set_request_id(params.get("MessageSid"))
    try:
        message = InboundMessage.from_form(params)
        reply = await run_in_threadpool(handle_message, message)
    finally:
        clear_request_id()

    twiml = MessagingResponse()
    if reply:
        twiml.message(reply)
    return Response(content=str(twiml), media_type="application/xml")


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/v1/status", response_model=StatusResponse)
def get_status():
    """Service status with dependency readiness. Never exposes configuration values."""
    dependencies = []

    try:
        get_dispatcher().check_database()
        dependencies.append(
            DependencyStatus(name="duckdb", status="ok", message="Database connection healthy")
        )
    except Exception as e:
        log_warning(logger, "DuckDB health check failed", error=e)
        dependencies.append(
            DependencyStatus(
                name="duckdb", status="unavailable", message="Database connection failed"
            )
        )

    store = get_session_store()
    if store.redis is None:
        dependencies.append(
            DependencyStatus(
                name="redis", status="ok", message="Redis disabled, using in-memory sessions"
            )
        )
    else:
        try:
            store.redis.ping()
            dependencies.append(
                DependencyStatus(name="redis", status="ok", message="Redis connection healthy")
            )
        except Exception as e:
            log_warning(logger, "Redis health check failed", error=e)
            dependencies.append(
                DependencyStatus(name="redis", status="degraded", message="Redis unreachable")
            )

    overall_status = "ok"
    if any(dep.status in ("unavailable", "degraded") for dep in dependencies):
        overall_status = "degraded"

    return StatusResponse(
        status=overall_status,
        version=app.version,
        timestamp=datetime.now(UTC),
        dependencies=dependencies,
    )


@app.get("/v1/metrics")
def get_metrics():
    """Metrics snapshot, available when SMSROUTER_ENABLE_METRICS=true."""
    if not is_metrics_enabled():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": "Metrics are disabled"},
        )
    return get_metrics_collector().get_snapshot()


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return dict details as-is, wrap string details in an error object."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "http_error", "message": str(exc.detail)},
    )
