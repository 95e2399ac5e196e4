"""HTTP client fetching upcoming calendar events from a JSON feed."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional

import httpx

from wastereminder.config import CalendarConfig
from wastereminder.rules.calendar import CalendarEvent

logger = logging.getLogger(__name__)


class CalendarFeedError(RuntimeError):
    """Generic calendar feed communication error."""


def parse_start_date(value: Any) -> datetime:
    """Convert a feed ``startDate`` into a naive local :class:`datetime`.

    Calendar hosts commonly emit epoch milliseconds, either as a number or as
    a string of digits.  ISO-8601 strings are accepted too; aware values are
    converted to local time.
    """

    if isinstance(value, bool):
        raise ValueError(f"unsupported start date: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"unsupported start date: {value!r}")
    value = value.strip()
    if value.lstrip("-").isdigit():
        return datetime.fromtimestamp(int(value) / 1000)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_events(records: Iterable[Any]) -> List[CalendarEvent]:
    """Build :class:`CalendarEvent` objects, skipping malformed records."""

    events: List[CalendarEvent] = []
    for record in records:
        if not isinstance(record, dict):
            logger.warning("Skipping calendar record of type %s", type(record).__name__)
            continue
        try:
            start = parse_start_date(record.get("startDate"))
        except (ValueError, OverflowError, OSError) as exc:
            logger.warning("Skipping calendar event %r: %s", record.get("title"), exc)
            continue
        events.append(CalendarEvent(title=str(record.get("title") or ""), start_date=start))
    return events


class CalendarFeedClient:
    """Thin wrapper around a calendar endpoint returning a JSON event list.

    The endpoint may answer with a bare list or with ``{"events": [...]}``.
    """

    def __init__(self, config: CalendarConfig, transport: Optional[httpx.BaseTransport] = None) -> None:
        if not config.feed_url:
            raise CalendarFeedError("calendar feed URL is not configured")
        self._url = config.feed_url
        self._client = httpx.Client(
            timeout=config.request_timeout,
            follow_redirects=True,
            transport=transport,
        )

    def fetch_events(self) -> List[CalendarEvent]:
        """Download and parse the current event list."""

        try:
            response = self._client.get(self._url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise CalendarFeedError(f"calendar feed request failed: {exc}") from exc
        except ValueError as exc:
            raise CalendarFeedError("calendar feed returned invalid JSON") from exc

        if isinstance(payload, dict):
            payload = payload.get("events")
        if not isinstance(payload, list):
            raise CalendarFeedError("unexpected payload type from calendar feed")
        return parse_events(payload)

    def close(self) -> None:
        """Close the underlying :class:`httpx.Client`."""

        self._client.close()

    def __enter__(self) -> "CalendarFeedClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()
