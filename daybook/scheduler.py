from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Protocol

import pytz
from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from daybook.models.reminder_models import Reminder
from daybook.providers.base import Notifier, ReminderSource
from daybook.utils.dates import utc_now


logger = logging.getLogger(__name__)

FALLBACK_SECONDS = 60.0
MIN_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 60.0


class SchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


class WakeTimer(Protocol):
    def start(self) -> None:
        ...

    def cancel(self) -> None:
        ...


TimerFactory = Callable[[float, Callable[..., None], Any], WakeTimer]


class JobWake:
    """One-shot wake-up armed as a DateTrigger job on a BackgroundScheduler."""

    def __init__(self, background: BackgroundScheduler, delay: float, fn: Callable[..., None], arg: Any):
        self.background = background
        self.delay = delay
        self.fn = fn
        self.arg = arg
        self._job: Optional[Job] = None

    def start(self) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=self.delay)
        self._job = self.background.add_job(
            self.fn,
            trigger=DateTrigger(run_date=run_date),
            args=[self.arg],
            misfire_grace_time=None,
            coalesce=True,
        )

    def cancel(self) -> None:
        if self._job is None:
            return
        try:
            self._job.remove()
        except JobLookupError:
            # already ran
            pass
        self._job = None


@dataclass
class TickOutcome:
    delay: float
    permission_granted: bool = True
    fired: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    error: Optional[str] = None


def next_wake_delay(
    reminders: Iterable[Reminder],
    now: datetime,
    *,
    fallback: float = FALLBACK_SECONDS,
    min_delay: float = MIN_DELAY_SECONDS,
    max_delay: float = MAX_DELAY_SECONDS,
) -> float:
    """Seconds until the soonest future remind_at still waiting to fire, clamped; fallback if none."""
    upcoming = [
        r.remind_at
        for r in reminders
        if r.is_pending_notification() and r.remind_at > now
    ]
    if not upcoming:
        return fallback
    seconds = (min(upcoming) - now).total_seconds()
    return min(max_delay, max(min_delay, seconds))


class NotificationScheduler:
    """
    Background poller that fires each due reminder at most once.

    Two states: IDLE (no wake pending) and ARMED (one wake pending). Every wake
    runs one tick and then arms its successor, so ticks never overlap. A restart
    while a tick is still running waits for that tick before arming the next one.
    A tick marks a reminder fired only after delivery succeeded and the store
    accepted notification_fired_at, so a restart never delivers the same
    remind_at twice.

    Wakes are one-shot APScheduler jobs unless `timer_factory` is given.
    """

    def __init__(
        self,
        reminders: ReminderSource,
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = utc_now,
        timer_factory: Optional[TimerFactory] = None,
        fallback_seconds: float = FALLBACK_SECONDS,
        min_delay: float = MIN_DELAY_SECONDS,
        max_delay: float = MAX_DELAY_SECONDS,
    ):
        self.reminders = reminders
        self.notifier = notifier
        self.clock = clock
        self.timer_factory = timer_factory or self._job_wake
        self.fallback_seconds = fallback_seconds
        self.min_delay = min_delay
        self.max_delay = max_delay

        self._lock = threading.Lock()
        self._state = SchedulerState.IDLE
        self._timer: Optional[WakeTimer] = None
        self._background: Optional[BackgroundScheduler] = None
        # bumped by start/stop so a tick that outlived its run cannot re-arm
        self._generation = 0
        self._in_flight = False
        self._deferred_start = False

    @property
    def state(self) -> SchedulerState:
        return self._state

    def _job_wake(self, delay: float, fn: Callable[..., None], arg: Any) -> WakeTimer:
        if self._background is None:
            self._background = BackgroundScheduler(daemon=True, timezone=pytz.utc)
            self._background.start()
        return JobWake(self._background, delay, fn, arg)

    def start(self) -> "NotificationScheduler":
        with self._lock:
            if self._state is SchedulerState.ARMED:
                logger.debug("Scheduler already running")
                return self
            self._state = SchedulerState.ARMED
            self._generation += 1
            generation = self._generation
            deferred = self._in_flight
            if deferred:
                self._deferred_start = True
        logger.info("Reminder scheduler started")
        if not deferred:
            self._arm(0.0, generation)
        return self

    def stop(self) -> None:
        with self._lock:
            self._generation += 1
            self._deferred_start = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            was_armed = self._state is SchedulerState.ARMED
            self._state = SchedulerState.IDLE
            background, self._background = self._background, None
        if background is not None:
            background.shutdown(wait=False)
        if was_armed:
            logger.info("Reminder scheduler stopped")

    def _arm(self, delay: float, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state is not SchedulerState.ARMED:
                return
            timer = self.timer_factory(delay, self._wake, generation)
            self._timer = timer
        timer.start()
        logger.debug("Next reminder check in %.1fs", delay)

    def _wake(self, generation: int) -> None:
        with self._lock:
            self._in_flight = True
        try:
            outcome = self.tick()
        finally:
            with self._lock:
                self._in_flight = False
                deferred, self._deferred_start = self._deferred_start, False
                current = self._generation
        if deferred:
            self._arm(0.0, current)
        self._arm(outcome.delay, generation)

    def tick(self) -> TickOutcome:
        try:
            return self._run_tick()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Reminder tick failed: %s", exc)
            return TickOutcome(delay=self.fallback_seconds, error=str(exc))

    def _deliver(self, reminder: Reminder) -> bool:
        try:
            return self.notifier.deliver(reminder.title, reminder.notes)
        except Exception as exc:  # noqa: BLE001
            logger.error("Notifier raised for reminder %s: %s", reminder.id, exc)
            return False

    def _run_tick(self) -> TickOutcome:
        if not self.notifier.request_permission():
            logger.info("Notification permission denied; retrying in %.0fs", self.fallback_seconds)
            return TickOutcome(delay=self.fallback_seconds, permission_granted=False)

        reminders = self.reminders.fetch_all_reminders()
        now = self.clock()
        outcome = TickOutcome(delay=self.fallback_seconds)

        for r in reminders:
            if not r.is_due(now):
                continue
            if not self._deliver(r):
                logger.warning("Delivery failed for reminder %s; will retry", r.id)
                outcome.failed.append(r.id)
                continue
            self.reminders.update_reminder(r.id, {"notification_fired_at": now})
            r.notification_fired_at = now
            outcome.fired.append(r.id)

        outcome.delay = next_wake_delay(
            reminders,
            now,
            fallback=self.fallback_seconds,
            min_delay=self.min_delay,
            max_delay=self.max_delay,
        )
        if outcome.fired:
            logger.info("Fired %d reminder notification(s)", len(outcome.fired))
        return outcome


def scheduler_start(reminders: ReminderSource, notifier: Notifier, **kwargs: Any) -> NotificationScheduler:
    """Create a scheduler and start it; the returned object is the handle to stop()."""
    return NotificationScheduler(reminders, notifier, **kwargs).start()
