"""
Background retention job.

Deletes reports older than RETENTION_DAYS and resets the in-memory
aggregate. Runs once immediately, waits for the next local midnight, then
repeats every 24 hours until cancelled.

State machine
-------------
    idle -> running_initial_purge -> waiting_for_midnight
         -> (periodic_purge <-> waiting_for_next_tick) -> cancelled

Cancellation is cooperative: the stop event is only observed while waiting,
so a purge that has started always runs to completion.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from ..errors import StorageError
from .summa import AggregateStore

logger = logging.getLogger(__name__)

RETENTION_DAYS = 3
TICK_INTERVAL = timedelta(hours=24)


class RetentionState(str, Enum):
    IDLE = "idle"
    RUNNING_INITIAL_PURGE = "running_initial_purge"
    WAITING_FOR_MIDNIGHT = "waiting_for_midnight"
    PERIODIC_PURGE = "periodic_purge"
    WAITING_FOR_NEXT_TICK = "waiting_for_next_tick"
    CANCELLED = "cancelled"


def local_now() -> datetime:
    return datetime.now().astimezone()


def seconds_until_next_midnight(now: datetime) -> float:
    """Seconds from `now` to the next calendar midnight in now's timezone."""
    tomorrow = (now + timedelta(days=1)).date()
    midnight = datetime.combine(tomorrow, datetime.min.time(), tzinfo=now.tzinfo)
    return max(0.0, (midnight - now).total_seconds())


class RetentionScheduler:
    """
    Drives the purge loop on a daemon thread.

    `delete_older_than(cutoff)` must delete every report dated before
    `cutoff` and return the number of rows removed, raising StorageError on
    failure.
    """

    def __init__(
        self,
        delete_older_than: Callable[[date], int],
        summa: AggregateStore,
        *,
        clock: Callable[[], datetime] = local_now,
        stop_event: Optional[threading.Event] = None,
        retention_days: int = RETENTION_DAYS,
        interval: timedelta = TICK_INTERVAL,
    ) -> None:
        self._delete_older_than = delete_older_than
        self._summa = summa
        self._clock = clock
        self._stop = stop_event or threading.Event()
        self._retention = timedelta(days=retention_days)
        self._interval = interval
        self._thread: Optional[threading.Thread] = None

        self.state = RetentionState.IDLE
        self.transitions: List[RetentionState] = [RetentionState.IDLE]

    def _enter(self, state: RetentionState) -> None:
        self.state = state
        self.transitions.append(state)
        logger.debug("retention state -> %s", state.value)

    def purge_once(self) -> bool:
        """
        One purge cycle. Returns True when rows were deleted and the aggregate
        was reset; False when the deleter failed (both left untouched).
        """
        cutoff = (self._clock() - self._retention).date()
        try:
            deleted = self._delete_older_than(cutoff)
        except StorageError as exc:
            logger.warning("retention: error deleting old data: %s", exc)
            return False
        except Exception:
            # Anything else must not kill the loop; the next tick retries.
            logger.exception("retention: unexpected error deleting old data")
            return False

        self._summa.clear_all()
        logger.info(
            "retention: deleted %s reports older than %s, aggregate reset",
            deleted,
            cutoff.isoformat(),
        )
        return True

    def _wait(self, seconds: float) -> bool:
        """Block for `seconds`; True means cancellation fired first."""
        return self._stop.wait(seconds)

    def run(self) -> None:
        """Blocking state machine; returns once cancelled."""
        self._enter(RetentionState.RUNNING_INITIAL_PURGE)
        self.purge_once()

        self._enter(RetentionState.WAITING_FOR_MIDNIGHT)
        delay = seconds_until_next_midnight(self._clock())
        logger.info("retention: waiting %.0fs until next midnight", delay)
        if self._wait(delay):
            logger.info("retention: cancelled before first scheduled run")
            self._enter(RetentionState.CANCELLED)
            return

        while True:
            self._enter(RetentionState.PERIODIC_PURGE)
            self.purge_once()

            self._enter(RetentionState.WAITING_FOR_NEXT_TICK)
            if self._wait(self._interval.total_seconds()):
                logger.info("retention: cancelled")
                self._enter(RetentionState.CANCELLED)
                return

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._thread = threading.Thread(target=self.run, name="statcounter-retention", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
