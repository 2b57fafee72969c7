# backend/position_tracker/services/market_data/backfill.py
"""
Backfill coordinator: bounded, cancellable price-history fetches.

One fetch task runs per instrument. At most ``max_workers`` tasks run at
the same time, each in a worker thread with its own database session
taken from the session factory and closed when the task ends.

Outcome of a run:
    - all tasks finished → BackfillResult
    - a task raised MarketDataError → recorded as a failure, run continues
    - a task raised anything else → pending tasks are cancelled, the error
      propagates
    - caller set the cancel event → BackfillCancelledError
    - deadline passed → BackfillTimeoutError

In-flight provider calls cannot be interrupted; once the run is aborted
their threads finish in the background, but they discard what they fetched
instead of storing it. Tasks that have not started yet see the abort flag
and return without touching the provider.

Usage:
    coordinator = BackfillCoordinator(price_service, SessionLocal)
    result = coordinator.run(
        [BackfillRequest(quote_id=1, start_date=..., end_date=...)],
        cancel_event=event,
    )
"""

import contextvars
import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import Session

from position_tracker.config import settings
from position_tracker.services.exceptions import (
    BackfillCancelledError,
    BackfillTimeoutError,
    MarketDataError,
)
from position_tracker.services.market_data.price_service import QuotePriceService

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class BackfillRequest:
    """Price range needed for one instrument."""

    quote_id: int
    start_date: date
    end_date: date


@dataclass
class BackfillResult:
    """
    Merged outcome of all fetch tasks.

    Attributes:
        completed: Quote ids whose history is up to date
        failed: Quote id → error message for recoverable provider failures
        prices_available: Stored prices in the requested ranges after the run
    """

    completed: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)
    prices_available: int = 0

    @property
    def all_successful(self) -> bool:
        return not self.failed

    @property
    def warnings(self) -> list[str]:
        return [
            f"Price history for quote {quote_id} could not be refreshed: {error}"
            for quote_id, error in self.failed.items()
        ]


# =============================================================================
# COORDINATOR
# =============================================================================

class BackfillCoordinator:
    """
    Runs QuotePriceService.ensure_history for many quotes with bounded concurrency.

    Attributes:
        _price_service: Service that fetches and stores one quote's history
        _session_factory: Callable returning a new Session per task
        _max_workers: Maximum number of concurrent fetches
        _timeout: Deadline in seconds for one run
    """

    # How often the waiting thread checks the cancel event
    POLL_INTERVAL: float = 0.05

    def __init__(
            self,
            price_service: QuotePriceService,
            session_factory: Callable[[], Session],
            max_workers: int | None = None,
            timeout: float | None = None,
    ) -> None:
        self._price_service = price_service
        self._session_factory = session_factory
        self._max_workers = max_workers or settings.backfill_max_workers
        self._timeout = timeout or settings.backfill_timeout_seconds
        logger.info(
            f"BackfillCoordinator initialized "
            f"(max_workers={self._max_workers}, timeout={self._timeout}s)"
        )

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def run(
            self,
            requests: Sequence[BackfillRequest],
            cancel_event: threading.Event | None = None,
    ) -> BackfillResult:
        """
        Fetch the history of every requested quote.

        Args:
            requests: One request per instrument
            cancel_event: Set by the caller to abandon the run

        Returns:
            BackfillResult once every task has finished

        Raises:
            BackfillCancelledError: If cancel_event is set before completion
            BackfillTimeoutError: If the run exceeds its deadline
            Exception: The first unrecoverable task error
        """
        result = BackfillResult()
        if not requests:
            return result

        cancel_event = cancel_event or threading.Event()
        abort = threading.Event()
        deadline = time.monotonic() + self._timeout

        logger.info(
            f"Backfilling {len(requests)} quotes "
            f"(max_workers={self._max_workers}, timeout={self._timeout}s)"
        )

        executor = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix="price-backfill",
        )
        futures: dict[Future, BackfillRequest] = {}

        try:
            for request in requests:
                # Each task gets its own context copy so log records keep the correlation id
                ctx = contextvars.copy_context()
                future = executor.submit(ctx.run, self._fetch_one, request, abort, cancel_event)
                futures[future] = request

            pending = set(futures)
            while pending:
                if cancel_event.is_set():
                    logger.warning(f"Backfill cancelled with {len(pending)} fetches outstanding")
                    raise BackfillCancelledError(pending=len(pending))

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.error(
                        f"Backfill timed out after {self._timeout}s "
                        f"with {len(pending)} fetches outstanding"
                    )
                    raise BackfillTimeoutError(self._timeout, len(pending))

                done, pending = wait(
                    pending,
                    timeout=min(remaining, self.POLL_INTERVAL),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    self._merge(result, futures[future], future)

        finally:
            if len(result.completed) + len(result.failed) < len(futures):
                abort.set()
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            f"Backfill finished: {len(result.completed)} completed, "
            f"{len(result.failed)} failed, {result.prices_available} prices available"
        )
        return result

    def _fetch_one(
            self,
            request: BackfillRequest,
            abort: threading.Event,
            cancel_event: threading.Event,
    ) -> int:
        """Run one fetch in its own session. Returns the number of stored prices."""
        def aborted() -> bool:
            return abort.is_set() or cancel_event.is_set()

        if aborted():
            logger.debug(f"Skipping backfill of quote {request.quote_id}: run aborted")
            return 0

        db = self._session_factory()
        try:
            points = self._price_service.ensure_history(
                db,
                request.quote_id,
                request.start_date,
                request.end_date,
                should_abort=aborted,
            )
            return len(points)
        finally:
            db.close()

    @staticmethod
    def _merge(result: BackfillResult, request: BackfillRequest, future: Future) -> None:
        """Fold a finished task into the result; unrecoverable errors propagate."""
        try:
            count = future.result()
        except MarketDataError as e:
            logger.warning(f"Backfill of quote {request.quote_id} failed: {e}")
            result.failed[request.quote_id] = str(e)
            return

        result.completed.append(request.quote_id)
        result.prices_available += count
