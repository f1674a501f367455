import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.date import DateTrigger

from daybook.models.reminder_models import Reminder
from daybook.scheduler import JobWake, NotificationScheduler, SchedulerState, next_wake_delay, scheduler_start

UTC = timezone.utc
NOW = datetime(2025, 6, 10, 12, 0, tzinfo=UTC)


def _reminder(rid, remind_at, **extra):
    return Reminder(id=rid, title=f"title {rid}", remind_at=remind_at, created_at=NOW, updated_at=NOW, **extra)


class FakeSource:
    """In-memory reminder store that hands out fresh copies like a real repository would."""

    def __init__(self, reminders):
        self.records = {r.id: r for r in reminders}
        self.updates = []
        self.fail_fetch = False

    def fetch_all_reminders(self):
        if self.fail_fetch:
            raise OSError("disk unavailable")
        return [r.model_copy(deep=True) for r in self.records.values()]

    def update_reminder(self, reminder_id, patch):
        self.updates.append((reminder_id, patch))
        current = self.records[reminder_id]
        self.records[reminder_id] = current.model_copy(update=patch)
        return self.records[reminder_id]


class FakeNotifier:
    def __init__(self, permitted=True, failing=()):
        self.permitted = permitted
        self.failing = set(failing)
        self.delivered = []

    def request_permission(self):
        return self.permitted

    def deliver(self, title, body=None):
        if title in self.failing:
            return False
        self.delivered.append(title)
        return True


class FakeTimer:
    def __init__(self, delay, fn, arg):
        self.delay = delay
        self.fn = fn
        self.arg = arg
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fn(self.arg)


class TimerRecorder:
    def __init__(self):
        self.timers = []

    def __call__(self, delay, fn, arg):
        timer = FakeTimer(delay, fn, arg)
        self.timers.append(timer)
        return timer


class TestNextWakeDelay(unittest.TestCase):
    def test_no_pending_uses_fallback(self) -> None:
        self.assertEqual(next_wake_delay([], NOW, fallback=42), 42)
        fired = _reminder("a", NOW + timedelta(seconds=10), notification_fired_at=NOW)
        done = _reminder("b", NOW + timedelta(seconds=10), completed_at=NOW)
        self.assertEqual(next_wake_delay([fired, done], NOW, fallback=42), 42)

    def test_delay_is_clamped(self) -> None:
        soon = _reminder("a", NOW + timedelta(milliseconds=200))
        self.assertEqual(next_wake_delay([soon], NOW), 1.0)
        later = _reminder("b", NOW + timedelta(hours=3))
        self.assertEqual(next_wake_delay([later], NOW), 60.0)
        mid = _reminder("c", NOW + timedelta(seconds=25))
        self.assertEqual(next_wake_delay([later, mid], NOW), 25.0)

    def test_past_reminders_do_not_count(self) -> None:
        past = _reminder("a", NOW - timedelta(minutes=5))
        self.assertEqual(next_wake_delay([past], NOW, fallback=30), 30)


class TestTick(unittest.TestCase):
    def _scheduler(self, source, notifier, **kwargs):
        return NotificationScheduler(source, notifier, clock=lambda: NOW, timer_factory=TimerRecorder(), **kwargs)

    def test_due_reminder_fires_at_most_once(self) -> None:
        source = FakeSource([_reminder("a", NOW - timedelta(seconds=1))])
        notifier = FakeNotifier()
        sched = self._scheduler(source, notifier)

        first = sched.tick()
        second = sched.tick()

        self.assertEqual(first.fired, ["a"])
        self.assertEqual(second.fired, [])
        self.assertEqual(notifier.delivered, ["title a"])
        self.assertEqual(source.updates, [("a", {"notification_fired_at": NOW})])
        self.assertEqual(source.records["a"].notification_fired_at, NOW)

    def test_future_completed_and_unscheduled_are_skipped(self) -> None:
        source = FakeSource([
            _reminder("future", NOW + timedelta(seconds=30)),
            _reminder("done", NOW - timedelta(seconds=30), completed_at=NOW),
            _reminder("none", None),
        ])
        notifier = FakeNotifier()
        outcome = self._scheduler(source, notifier).tick()
        self.assertEqual(notifier.delivered, [])
        self.assertEqual(outcome.delay, 30.0)

    def test_reminder_exactly_at_now_fires(self) -> None:
        source = FakeSource([_reminder("a", NOW)])
        outcome = self._scheduler(source, FakeNotifier()).tick()
        self.assertEqual(outcome.fired, ["a"])

    def test_permission_denied_fetches_nothing(self) -> None:
        source = FakeSource([_reminder("a", NOW - timedelta(seconds=1))])
        source.fail_fetch = True
        outcome = self._scheduler(source, FakeNotifier(permitted=False), fallback_seconds=45).tick()
        self.assertFalse(outcome.permission_granted)
        self.assertEqual(outcome.delay, 45)
        self.assertIsNone(outcome.error)

    def test_failed_delivery_is_retried_later(self) -> None:
        source = FakeSource([_reminder("a", NOW - timedelta(seconds=1))])
        notifier = FakeNotifier(failing={"title a"})
        sched = self._scheduler(source, notifier)

        outcome = sched.tick()
        self.assertEqual(outcome.failed, ["a"])
        self.assertEqual(source.updates, [])

        notifier.failing.clear()
        self.assertEqual(sched.tick().fired, ["a"])

    def test_store_error_yields_fallback_delay(self) -> None:
        source = FakeSource([])
        source.fail_fetch = True
        outcome = self._scheduler(source, FakeNotifier(), fallback_seconds=15).tick()
        self.assertEqual(outcome.delay, 15)
        self.assertIn("disk unavailable", outcome.error)


class TestLifecycle(unittest.TestCase):
    def test_start_arms_immediately_and_is_idempotent(self) -> None:
        timers = TimerRecorder()
        sched = NotificationScheduler(FakeSource([]), FakeNotifier(), clock=lambda: NOW, timer_factory=timers)
        sched.start()
        sched.start()
        self.assertIs(sched.state, SchedulerState.ARMED)
        self.assertEqual(len(timers.timers), 1)
        self.assertEqual(timers.timers[0].delay, 0.0)
        self.assertTrue(timers.timers[0].started)

    def test_wake_runs_tick_and_rearms(self) -> None:
        timers = TimerRecorder()
        source = FakeSource([_reminder("a", NOW - timedelta(seconds=1)), _reminder("b", NOW + timedelta(seconds=20))])
        notifier = FakeNotifier()
        sched = scheduler_start(source, notifier, clock=lambda: NOW, timer_factory=timers)

        timers.timers[-1].fire()
        self.assertEqual(notifier.delivered, ["title a"])
        self.assertEqual(len(timers.timers), 2)
        self.assertEqual(timers.timers[-1].delay, 20.0)
        sched.stop()

    def test_stop_cancels_and_blocks_rearm(self) -> None:
        timers = TimerRecorder()
        sched = NotificationScheduler(FakeSource([]), FakeNotifier(), clock=lambda: NOW, timer_factory=timers)
        sched.start()
        pending = timers.timers[-1]
        sched.stop()

        self.assertTrue(pending.cancelled)
        self.assertIs(sched.state, SchedulerState.IDLE)

        # a wake already in flight when stop() ran must not arm another timer
        pending.fire()
        self.assertEqual(len(timers.timers), 1)

    def test_stop_when_idle_is_harmless(self) -> None:
        sched = NotificationScheduler(FakeSource([]), FakeNotifier(), timer_factory=TimerRecorder())
        sched.stop()
        self.assertIs(sched.state, SchedulerState.IDLE)

    def test_restart_after_stop(self) -> None:
        timers = TimerRecorder()
        sched = NotificationScheduler(FakeSource([]), FakeNotifier(), clock=lambda: NOW, timer_factory=timers)
        sched.start()
        stale = timers.timers[-1]
        sched.stop()
        sched.start()
        self.assertEqual(len(timers.timers), 2)
        stale.fire()
        self.assertEqual(len(timers.timers), 2)
        timers.timers[-1].fire()
        self.assertEqual(len(timers.timers), 3)


class RaisingNotifier(FakeNotifier):
    def __init__(self, raising=()):
        super().__init__()
        self.raising = set(raising)

    def deliver(self, title, body=None):
        if title in self.raising:
            raise ConnectionError("socket reset")
        return super().deliver(title, body)


class TestDeliveryErrors(unittest.TestCase):
    def test_raising_delivery_does_not_block_other_reminders(self) -> None:
        source = FakeSource([_reminder("a", NOW - timedelta(seconds=2)), _reminder("b", NOW - timedelta(seconds=1))])
        notifier = RaisingNotifier(raising={"title a"})
        sched = NotificationScheduler(source, notifier, clock=lambda: NOW, timer_factory=TimerRecorder())

        outcomes = [sched.tick() for _ in range(3)]

        self.assertEqual(notifier.delivered, ["title b"])
        self.assertEqual(outcomes[0].fired, ["b"])
        self.assertEqual([o.failed for o in outcomes], [["a"], ["a"], ["a"]])
        self.assertTrue(all(o.error is None for o in outcomes))
        self.assertIsNone(source.records["a"].notification_fired_at)


class TestRestartDuringTick(unittest.TestCase):
    def test_restart_waits_for_running_tick(self) -> None:
        timers = TimerRecorder()
        source = FakeSource([_reminder("a", NOW - timedelta(seconds=1))])
        notifier = FakeNotifier()
        sched = NotificationScheduler(source, notifier, clock=lambda: NOW, timer_factory=timers)

        def restart_mid_tick():
            sched.stop()
            sched.start()
            # no second wake may be armed while this tick is running
            self.assertEqual(len(timers.timers), 1)
            return True

        notifier.request_permission = restart_mid_tick
        sched.start()
        timers.timers[-1].fire()

        self.assertIs(sched.state, SchedulerState.ARMED)
        self.assertEqual(len(timers.timers), 2)
        self.assertEqual(timers.timers[-1].delay, 0.0)
        self.assertEqual(notifier.delivered, ["title a"])

    def test_stop_after_deferred_restart_cancels_it(self) -> None:
        timers = TimerRecorder()
        sched = NotificationScheduler(FakeSource([]), FakeNotifier(), clock=lambda: NOW, timer_factory=timers)

        def restart_then_stop():
            sched.stop()
            sched.start()
            sched.stop()
            return False

        sched.notifier.request_permission = restart_then_stop
        sched.start()
        timers.timers[-1].fire()
        self.assertEqual(len(timers.timers), 1)
        self.assertIs(sched.state, SchedulerState.IDLE)


class TestJobWake(unittest.TestCase):
    def test_arms_a_one_shot_date_job_and_removes_it(self) -> None:
        background = mock.Mock()
        fn = mock.Mock()
        wake = JobWake(background, 5.0, fn, 7)

        before = datetime.now(UTC)
        wake.start()
        args, kwargs = background.add_job.call_args
        self.assertIs(args[0], fn)
        self.assertIsInstance(kwargs["trigger"], DateTrigger)
        self.assertGreaterEqual(kwargs["trigger"].run_date, before + timedelta(seconds=5))
        self.assertEqual(kwargs["args"], [7])

        job = background.add_job.return_value
        wake.cancel()
        job.remove.assert_called_once_with()
        wake.cancel()
        job.remove.assert_called_once_with()

    def test_cancel_after_job_ran_is_harmless(self) -> None:
        background = mock.Mock()
        background.add_job.return_value.remove.side_effect = JobLookupError("gone")
        wake = JobWake(background, 0.0, mock.Mock(), None)
        wake.start()
        wake.cancel()

    def test_default_wakes_run_on_an_owned_background_scheduler(self) -> None:
        with mock.patch("daybook.scheduler.BackgroundScheduler") as factory:
            background = factory.return_value
            sched = NotificationScheduler(FakeSource([]), FakeNotifier(), clock=lambda: NOW)
            sched.start()
            background.start.assert_called_once_with()
            background.add_job.assert_called_once()
            self.assertEqual(background.add_job.call_args.kwargs["args"], [1])

            sched.stop()
            background.add_job.return_value.remove.assert_called_once_with()
            background.shutdown.assert_called_once_with(wait=False)


if __name__ == "__main__":
    unittest.main()
