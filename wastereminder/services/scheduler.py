"""Timer primitives running on the reminder's event loop.

Two kinds of work are scheduled: the one-shot auto-hide that clears an active
reminder at a daily wall-clock time, and periodic tasks such as the calendar
refresh.  Both only rely on ``loop.call_later`` so they run unchanged on an
:mod:`asyncio` loop or on the fake loop used by the tests.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Callable, Dict, Optional, Protocol

from wastereminder.services.state import SchedulerState, TimerHandle

logger = logging.getLogger(__name__)

Task = Callable[[], None]
Clock = Callable[[], datetime]

_HIDE_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


class InvalidHideTimeError(ValueError):
    """Raised when an auto-hide time is not a valid ``HH:MM`` string."""


class TimerLoop(Protocol):
    """The subset of :class:`asyncio.AbstractEventLoop` used for scheduling."""

    def call_later(self, delay: float, callback: Callable[..., object], *args: object) -> TimerHandle:
        ...


def parse_hide_time(value: str) -> time:
    """Parse ``HH:MM`` into a :class:`datetime.time`.

    Hours must lie in ``[0, 23]`` and minutes in ``[0, 59]``.
    """

    if not isinstance(value, str):
        raise InvalidHideTimeError(f"invalid auto-hide time: {value!r}")
    match = _HIDE_TIME_PATTERN.match(value.strip())
    if match is None:
        raise InvalidHideTimeError(f"invalid auto-hide time format: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidHideTimeError(f"auto-hide time out of range: {value!r}")
    return time(hour=hours, minute=minutes)


def next_hide_time(daily_time: str, now: datetime) -> datetime:
    """Return the next occurrence of ``daily_time`` strictly after ``now``."""

    hide_time = parse_hide_time(daily_time)
    candidate = datetime.combine(now.date(), hide_time, tzinfo=now.tzinfo)
    if candidate <= now:
        candidate = datetime.combine(
            now.date() + timedelta(days=1), hide_time, tzinfo=now.tzinfo
        )
    return candidate


class AutoHideScheduler:
    """Arm and cancel the single auto-hide timer stored in :class:`SchedulerState`."""

    def __init__(self, loop: TimerLoop, clock: Clock = datetime.now) -> None:
        self._loop = loop
        self._clock = clock

    def cancel(self, state: SchedulerState) -> bool:
        """Cancel the outstanding hide timer, returning whether one existed."""

        if state.hide_timer is None:
            return False
        state.hide_timer.cancel()
        state.hide_timer = None
        state.hide_at = None
        return True

    def arm(self, state: SchedulerState, daily_time: str, on_fire: Task) -> datetime:
        """Arm a one-shot timer firing ``on_fire`` at the next ``daily_time``.

        Any previously armed timer is cancelled first.  A malformed
        ``daily_time`` raises :class:`InvalidHideTimeError` and leaves no timer
        armed.
        """

        self.cancel(state)
        now = self._clock()
        hide_at = next_hide_time(daily_time, now)
        # epoch seconds, so a DST change inside the wait is accounted for
        delay = hide_at.timestamp() - now.timestamp()

        def _fire() -> None:
            state.hide_timer = None
            state.hide_at = None
            logger.debug("Auto-hide triggered")
            on_fire()

        state.hide_timer = self._loop.call_later(delay, _fire)
        state.hide_at = hide_at
        logger.debug("Auto-hide scheduled in %.1f hours", delay / 3600)
        return hide_at


@dataclass(slots=True)
class ScheduledTask:
    """Represents a background task with its cadence."""

    name: str
    interval_seconds: float
    task: Task


class Scheduler:
    """Run periodic tasks on the event loop until cancelled."""

    def __init__(self, loop: TimerLoop) -> None:
        self._loop = loop
        self._tasks: Dict[str, ScheduledTask] = {}
        self._handles: Dict[str, TimerHandle] = {}

    def add_task(self, scheduled_task: ScheduledTask, run_immediately: bool = False) -> None:
        """Register a new periodic task."""

        if scheduled_task.interval_seconds <= 0:
            raise ValueError("task interval must be positive")
        if scheduled_task.name in self._tasks:
            raise ValueError(f"task already scheduled: {scheduled_task.name}")
        self._tasks[scheduled_task.name] = scheduled_task
        if run_immediately:
            self._run(scheduled_task.name)
        else:
            self._arm(scheduled_task)

    def cancel(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()
        self._tasks.pop(name, None)

    def cancel_all(self) -> None:
        for name in list(self._tasks):
            self.cancel(name)

    def is_scheduled(self, name: str) -> bool:
        return name in self._tasks

    def _arm(self, scheduled_task: ScheduledTask) -> None:
        self._handles[scheduled_task.name] = self._loop.call_later(
            scheduled_task.interval_seconds, self._run, scheduled_task.name
        )

    def _run(self, name: str) -> None:
        scheduled_task: Optional[ScheduledTask] = self._tasks.get(name)
        if scheduled_task is None:
            return
        try:
            scheduled_task.task()
        except Exception:  # keep the cadence alive, the failure is only reported
            logger.exception("Scheduled task %s failed", name)
        if name in self._tasks:
            self._arm(scheduled_task)
