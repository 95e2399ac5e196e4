"""Pick the calendar event that should drive the reminder."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

from wastereminder.rules.keywords import KeywordTable, match_waste_type


@dataclass(slots=True, frozen=True)
class CalendarEvent:
    """A calendar entry as delivered by the calendar collaborator."""

    title: str
    start_date: datetime


def trigger_window(now: datetime, horizon_hours: float) -> Tuple[datetime, datetime]:
    """Return the inclusive ``[now, now + horizon]`` window."""

    return now, now + timedelta(hours=horizon_hours)


def select_event(
    events: Iterable[CalendarEvent],
    now: datetime,
    horizon_hours: float,
    table: KeywordTable,
) -> Optional[Tuple[CalendarEvent, str]]:
    """Return the first event inside the trigger window whose title matches.

    Events are examined in the order supplied, not by start time.  The result
    pairs the event with the waste type its title resolved to.
    """

    start, end = trigger_window(now, horizon_hours)
    for event in events:
        if not start <= event.start_date <= end:
            continue
        waste_type = match_waste_type(event.title, table)
        if waste_type:
            return event, waste_type
    return None
