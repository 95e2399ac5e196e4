"""Service orchestration helpers."""

from .reminder_service import WasteReminderService
from .scheduler import (
    AutoHideScheduler,
    InvalidHideTimeError,
    ScheduledTask,
    Scheduler,
    next_hide_time,
    parse_hide_time,
)
from .state import SchedulerState

__all__ = [
    "AutoHideScheduler",
    "InvalidHideTimeError",
    "ScheduledTask",
    "Scheduler",
    "SchedulerState",
    "WasteReminderService",
    "next_hide_time",
    "parse_hide_time",
]
