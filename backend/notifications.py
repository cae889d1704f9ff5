"""
Reminder and due-time notifications.

Every task with a future due time gets two fire-once timers:
- "reminder:<id>" fires REMINDER_LEAD before the due time
- "due:<id>" fires at the due time

Timers live in the scheduler instance (key -> handle). Delivery goes through a
Notifier port; when it is unavailable the notice degrades to an in-app toast.
"""
import asyncio
import logging
from collections import deque
from typing import Callable, Optional, Protocol

from errors import NotificationUnavailableError
from models import Notice, NoticeKind, Task
from timeutil import now_ms

logger = logging.getLogger(__name__)

REMINDER_LEAD_MS = 15 * 60 * 1000  # 15 minutes
MORE_TASKS_TAG = "more-tasks-reminder"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    """Wall clock plus fire-once timers, both in epoch milliseconds."""

    def now_ms(self) -> int: ...
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle: ...


class Notifier(Protocol):
    def deliver(self, title: str, body: str, tag: str) -> None: ...


class AsyncioClock:
    """Clock backed by the running event loop. Must be used from the loop thread."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def now_ms(self) -> int:
        return now_ms()

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0, delay_ms) / 1000, callback)


class NotificationInbox:
    """
    Notices waiting for the browser to pick them up.

    deliver() is the system-notification path and requires permission;
    post_fallback() always works and produces an in-app toast.
    """

    def __init__(self, limit: int = 50, permission_granted: bool = False):
        self._notices: deque[Notice] = deque(maxlen=limit)
        self.permission_granted = permission_granted

    def deliver(self, title: str, body: str, tag: str) -> None:
        if not self.permission_granted:
            raise NotificationUnavailableError("Notification permission not granted")
        self._notices.append(Notice(title=title, body=body, tag=tag, kind=NoticeKind.SYSTEM, created_at=now_ms()))

    def post_fallback(self, title: str, body: str, tag: str) -> None:
        self._notices.append(Notice(title=title, body=body, tag=tag, kind=NoticeKind.IN_APP, created_at=now_ms()))

    def pending(self) -> int:
        return len(self._notices)

    def drain(self) -> list[Notice]:
        notices = list(self._notices)
        self._notices.clear()
        return notices


def reminder_key(task_id: str) -> str:
    return f"reminder:{task_id}"


def due_key(task_id: str) -> str:
    return f"due:{task_id}"


class NotificationScheduler:
    def __init__(
        self,
        clock: Clock,
        notifier: Notifier,
        *,
        fallback: Optional[Callable[[str, str, str], None]] = None,
        reminder_lead_ms: int = REMINDER_LEAD_MS,
    ):
        self._clock = clock
        self._notifier = notifier
        self._fallback = fallback
        self._reminder_lead_ms = reminder_lead_ms
        self._timers: dict[str, TimerHandle] = {}

    def schedule_for(self, task: Task) -> None:
        """(Re)arm both timers for a task. Completed or undated tasks get none."""
        if task.due_at is None or task.completed:
            self.cancel_for(task.id)
            return

        now = self._clock.now_ms()
        description = task.extracted_time_description or ""
        lead_minutes = self._reminder_lead_ms // 60000

        self._arm(
            reminder_key(task.id),
            task.due_at - self._reminder_lead_ms,
            now,
            f"Reminder: {task.text}",
            f"Due in {lead_minutes} minutes. ({description})",
        )
        self._arm(
            due_key(task.id),
            task.due_at,
            now,
            f"Task Due: {task.text}",
            f"It's time for your task! ({description})",
        )

    def cancel_for(self, task_id: str) -> None:
        self._cancel(reminder_key(task_id))
        self._cancel(due_key(task_id))

    def notify_now(self, title: str, body: str, tag: str) -> None:
        self._deliver(title, body, tag)

    def is_scheduled(self, key: str) -> bool:
        return key in self._timers

    def scheduled_keys(self) -> list[str]:
        return sorted(self._timers)

    def shutdown(self) -> None:
        for key in list(self._timers):
            self._cancel(key)
        logger.debug("Notification scheduler shut down")

    # ---- internals ----

    def _arm(self, key: str, fire_at: int, now: int, title: str, body: str) -> None:
        self._cancel(key)
        if fire_at <= now:
            return

        def fire() -> None:
            self._timers.pop(key, None)
            self._deliver(title, body, key)

        self._timers[key] = self._clock.call_later(fire_at - now, fire)
        logger.debug("Armed %s in %d ms", key, fire_at - now)

    def _cancel(self, key: str) -> None:
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()
            logger.debug("Cancelled %s", key)

    def _deliver(self, title: str, body: str, tag: str) -> None:
        try:
            self._notifier.deliver(title, body, tag)
            return
        except NotificationUnavailableError as e:
            logger.info("Notification %s unavailable (%s); using in-app notice", tag, e)
        except Exception:
            logger.exception("Notification delivery failed tag=%s", tag)

        if self._fallback is None:
            return
        try:
            self._fallback(title, body, tag)
        except Exception:
            logger.exception("In-app fallback notice failed tag=%s", tag)
