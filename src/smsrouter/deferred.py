"""Out-of-band execution of slow commands.

A deferred job runs after the webhook has answered. Its result is delivered
to the original sender with the messaging provider, using the number the
sender texted as the outbound sender identity.
"""

import logging
import os
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from smsrouter.logging_utils import log_error, log_info, mask_phone
from smsrouter.messaging.provider import MessagingProvider
from smsrouter.metrics import get_metrics_collector, is_metrics_enabled

logger = logging.getLogger(__name__)

GENERIC_APOLOGY = "Sorry, there was an error processing your request. Please try again later."


@dataclass
class DeferredJob:
    """A slow command waiting to run.

    Attributes:
        command: Command type, for logging
        phone: Sender to reply to
        to_number: Number the sender texted (used as the reply's sender)
        work: Zero-argument callable returning the reply text
        apology: Text sent if ``work`` raises
    """

    command: str
    phone: str
    to_number: str
    work: Callable[[], str]
    apology: str = GENERIC_APOLOGY


def _record(outcome: str) -> None:
    if is_metrics_enabled():
        get_metrics_collector().record_deferred(outcome)


def run_job(job: DeferredJob, messaging: MessagingProvider) -> None:
    """Run a job to completion and send its result.

    Never raises: a failing job produces a best-effort apology, and a failing
    send is logged.
    """
    start = time.monotonic()
    try:
        body = job.work()
        outcome = "sent"
    except Exception as e:
        log_error(
            logger,
            "Deferred job failed",
            command=job.command,
            phone=mask_phone(job.phone),
            elapsed_ms=round((time.monotonic() - start) * 1000),
            error=e,
        )
        body = job.apology
        outcome = "error"

    try:
        result = messaging.send(to=job.phone, from_=job.to_number, body=body)
    except Exception as e:
        result = {"ok": False, "message": str(e)}

    if not result.get("ok"):
        log_error(
            logger,
            "Deferred reply not delivered",
            command=job.command,
            phone=mask_phone(job.phone),
            error=result.get("message"),
        )
        outcome = "send_failed"
    else:
        log_info(
            logger,
            "Deferred reply sent",
            command=job.command,
            phone=mask_phone(job.phone),
            elapsed_ms=round((time.monotonic() - start) * 1000),
        )
    _record(outcome)


class DeferredRunner:
    """Runs deferred jobs on a thread pool, independent of the request."""

    def __init__(self, messaging: MessagingProvider, max_workers: int | None = None) -> None:
        self.messaging = messaging
        workers = max_workers or int(os.getenv("SMSROUTER_DEFERRED_WORKERS", "4"))
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="deferred")

    def submit(self, job: DeferredJob) -> Future:
        """Schedule a job; returns immediately."""
        return self._executor.submit(run_job, job, self.messaging)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class InlineRunner:
    """Runs deferred jobs synchronously in the caller's thread."""

    def __init__(self, messaging: MessagingProvider) -> None:
        self.messaging = messaging

    def submit(self, job: DeferredJob) -> None:
        run_job(job, self.messaging)

    def shutdown(self, wait: bool = True) -> None:
        pass
