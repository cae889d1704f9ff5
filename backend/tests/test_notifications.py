"""
Tests for notifications.py - reminder/due timers, cancellation, delivery fallback.
"""
import asyncio

import pytest

from errors import NotificationUnavailableError
from models import NoticeKind, Task
from notifications import (
    AsyncioClock,
    NotificationInbox,
    NotificationScheduler,
    REMINDER_LEAD_MS,
    due_key,
    reminder_key,
)

from .fakes import FakeClock, RecordingNotifier

MINUTE = 60 * 1000
HOUR = 60 * MINUTE


def make_task(clock, due_in_ms=2 * HOUR, **kwargs):
    fields = {
        "id": "t1",
        "text": "Dentist",
        "created_at": clock.now,
        "due_at": clock.now + due_in_ms if due_in_ms is not None else None,
        "extracted_time_description": "In 2 hours",
    }
    fields.update(kwargs)
    return Task(**fields)


class TestScheduleFor:
    """Tests for NotificationScheduler.schedule_for."""

    def test_arms_reminder_and_due(self, scheduler, clock):
        scheduler.schedule_for(make_task(clock))
        assert scheduler.scheduled_keys() == ["due:t1", "reminder:t1"]

    def test_fires_reminder_then_due(self, scheduler, clock, notifier):
        scheduler.schedule_for(make_task(clock))

        clock.advance(2 * HOUR - REMINDER_LEAD_MS)
        assert notifier.delivered == [
            ("Reminder: Dentist", "Due in 15 minutes. (In 2 hours)", "reminder:t1"),
        ]

        clock.advance(REMINDER_LEAD_MS)
        assert notifier.delivered[1] == ("Task Due: Dentist", "It's time for your task! (In 2 hours)", "due:t1")
        assert scheduler.scheduled_keys() == []

    def test_each_timer_fires_once(self, scheduler, clock, notifier):
        scheduler.schedule_for(make_task(clock))
        clock.advance(10 * HOUR)
        clock.advance(10 * HOUR)
        assert notifier.tags() == ["reminder:t1", "due:t1"]

    def test_rescheduling_replaces_timers(self, scheduler, clock, notifier):
        task = make_task(clock)
        scheduler.schedule_for(task)
        scheduler.schedule_for(task)
        scheduler.schedule_for(task.model_copy(update={"due_at": clock.now + 3 * HOUR}))

        assert clock.armed() == 2
        clock.advance(2 * HOUR)
        assert notifier.delivered == []

    def test_reminder_in_past_only_due_armed(self, scheduler, clock):
        scheduler.schedule_for(make_task(clock, due_in_ms=10 * MINUTE))
        assert scheduler.scheduled_keys() == ["due:t1"]

    def test_past_due_arms_nothing(self, scheduler, clock, notifier):
        scheduler.schedule_for(make_task(clock, due_in_ms=-MINUTE))
        clock.advance(HOUR)
        assert scheduler.scheduled_keys() == []
        assert notifier.delivered == []

    def test_completed_task_cancels(self, scheduler, clock):
        task = make_task(clock)
        scheduler.schedule_for(task)
        scheduler.schedule_for(task.model_copy(update={"completed": True}))
        assert scheduler.scheduled_keys() == []

    def test_undated_task_cancels(self, scheduler, clock):
        task = make_task(clock)
        scheduler.schedule_for(task)
        scheduler.schedule_for(task.model_copy(update={"due_at": None}))
        assert scheduler.scheduled_keys() == []

    def test_custom_lead_time(self, clock, notifier):
        scheduler = NotificationScheduler(clock, notifier, reminder_lead_ms=30 * MINUTE)
        scheduler.schedule_for(make_task(clock))

        clock.advance(90 * MINUTE)

        assert notifier.delivered[0][1] == "Due in 30 minutes. (In 2 hours)"


class TestCancel:
    """Tests for cancel_for and shutdown."""

    def test_cancel_stops_firing(self, scheduler, clock, notifier):
        scheduler.schedule_for(make_task(clock))
        scheduler.cancel_for("t1")
        clock.advance(10 * HOUR)
        assert notifier.delivered == []

    def test_cancel_is_idempotent(self, scheduler, clock):
        scheduler.cancel_for("never-scheduled")
        scheduler.schedule_for(make_task(clock))
        scheduler.cancel_for("t1")
        scheduler.cancel_for("t1")
        assert scheduler.scheduled_keys() == []

    def test_shutdown_cancels_everything(self, scheduler, clock, notifier):
        scheduler.schedule_for(make_task(clock, id="a"))
        scheduler.schedule_for(make_task(clock, id="b"))

        scheduler.shutdown()
        clock.advance(10 * HOUR)

        assert notifier.delivered == []
        assert clock.armed() == 0


class TestDeliveryFallback:
    """Delivery degrades to the in-app fallback when system notifications are unavailable."""

    def test_unavailable_uses_fallback(self, clock):
        fallback_calls = []
        scheduler = NotificationScheduler(
            clock,
            RecordingNotifier(available=False),
            fallback=lambda title, body, tag: fallback_calls.append(tag),
        )
        scheduler.schedule_for(make_task(clock))

        clock.advance(2 * HOUR)

        assert fallback_calls == [reminder_key("t1"), due_key("t1")]

    def test_unavailable_without_fallback_is_silent(self, clock):
        scheduler = NotificationScheduler(clock, RecordingNotifier(available=False))
        scheduler.notify_now("VoiceTasker", "hello", "tag")

    def test_notifier_crash_does_not_propagate(self, clock, caplog):
        class BrokenNotifier:
            def deliver(self, title, body, tag):
                raise RuntimeError("boom")

        fallback_calls = []
        scheduler = NotificationScheduler(
            clock, BrokenNotifier(), fallback=lambda title, body, tag: fallback_calls.append(tag)
        )
        scheduler.notify_now("VoiceTasker", "hello", "tag")

        assert fallback_calls == ["tag"]
        assert "Notification delivery failed" in caplog.text


class TestNotificationInbox:
    """Tests for NotificationInbox."""

    def test_deliver_requires_permission(self):
        inbox = NotificationInbox()
        with pytest.raises(NotificationUnavailableError):
            inbox.deliver("Title", "Body", "tag")
        assert inbox.pending() == 0

    def test_deliver_with_permission(self):
        inbox = NotificationInbox(permission_granted=True)
        inbox.deliver("Title", "Body", "tag")

        notices = inbox.drain()
        assert [(n.title, n.kind) for n in notices] == [("Title", NoticeKind.SYSTEM)]
        assert inbox.pending() == 0

    def test_fallback_is_in_app(self):
        inbox = NotificationInbox()
        inbox.post_fallback("Title", "Body", "tag")
        assert inbox.drain()[0].kind == NoticeKind.IN_APP

    def test_limit_drops_oldest(self):
        inbox = NotificationInbox(limit=2)
        for tag in ("a", "b", "c"):
            inbox.post_fallback("Title", "Body", tag)
        assert [n.tag for n in inbox.drain()] == ["b", "c"]

    def test_scheduler_falls_back_to_inbox_toast(self, clock):
        inbox = NotificationInbox()
        scheduler = NotificationScheduler(clock, inbox, fallback=inbox.post_fallback)
        scheduler.schedule_for(make_task(clock))

        clock.advance(2 * HOUR)

        assert [(n.tag, n.kind) for n in inbox.drain()] == [
            ("reminder:t1", NoticeKind.IN_APP),
            ("due:t1", NoticeKind.IN_APP),
        ]


@pytest.mark.asyncio
async def test_asyncio_clock_fires_on_loop():
    fired = asyncio.Event()
    clock = AsyncioClock()

    clock.call_later(10, fired.set)

    await asyncio.wait_for(fired.wait(), timeout=1)


@pytest.mark.asyncio
async def test_asyncio_clock_cancel():
    fired = []
    handle = AsyncioClock().call_later(10, lambda: fired.append(True))
    handle.cancel()
    await asyncio.sleep(0.05)
    assert fired == []
