"""Calendar keyword rules."""

from .calendar import CalendarEvent, select_event, trigger_window
from .keywords import KeywordTable, match_waste_type, normalise_keywords

__all__ = [
    "CalendarEvent",
    "KeywordTable",
    "match_waste_type",
    "normalise_keywords",
    "select_event",
    "trigger_window",
]
