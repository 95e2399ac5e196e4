"""High-level orchestration of the waste reminder.

:class:`WasteReminderService` owns the :class:`SchedulerState` and is the only
place it is mutated.  Every entry point is expected to run on the event loop
thread; events produced on other threads (paho's network loop, the calendar
fetch worker) are handed over with ``loop.call_soon_threadsafe`` or via
executor futures whose callbacks run on the loop.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Protocol

from wastereminder.collectors import CalendarFeedClient, CalendarFeedError, MqttStateSubscriber, parse_events
from wastereminder.config import OFF, WasteReminderConfig
from wastereminder.display import DisplayHost, DisplayPayload, render
from wastereminder.rules import CalendarEvent, normalise_keywords, select_event
from wastereminder.services.scheduler import (
    AutoHideScheduler,
    Clock,
    InvalidHideTimeError,
    ScheduledTask,
    Scheduler,
)
from wastereminder.services.state import SchedulerState

logger = logging.getLogger(__name__)

MQTT_CONNECTED = "MQTT_CONNECTED"
MQTT_STATE_CHANGED = "MQTT_STATE_CHANGED"
MQTT_ERROR = "MQTT_ERROR"
CALENDAR_EVENTS = "CALENDAR_EVENTS"

CALENDAR_TASK = "calendar-refresh"


class ServiceLoop(Protocol):
    """Event loop operations the service relies on."""

    def call_later(self, delay: float, callback: Callable[..., object], *args: object) -> Any:
        ...

    def call_soon_threadsafe(self, callback: Callable[..., object], *args: object) -> Any:
        ...

    def run_in_executor(self, executor: Any, func: Callable[..., Any], *args: Any) -> Any:
        ...


SubscriberFactory = Callable[..., MqttStateSubscriber]


@dataclass(slots=True)
class ServiceDependencies:
    """Bundle of pluggable components used by :class:`WasteReminderService`."""

    display: DisplayHost
    calendar_feed: Optional[CalendarFeedClient] = None
    subscriber_factory: Optional[SubscriberFactory] = None
    on_error: Optional[Callable[[str], None]] = None


class WasteReminderService:
    """Coordinates event ingest, the auto-hide timer and display updates."""

    def __init__(
        self,
        config: WasteReminderConfig,
        deps: ServiceDependencies,
        loop: ServiceLoop,
        clock: Clock = datetime.now,
    ) -> None:
        self._config = config
        self._deps = deps
        self._loop = loop
        self._clock = clock
        self._state = SchedulerState()
        self._auto_hide = AutoHideScheduler(loop, clock)
        self._scheduler = Scheduler(loop)
        self._keywords = normalise_keywords(config.calendar.keywords)
        self._subscriber: Optional[MqttStateSubscriber] = None
        self._refresh_pending = False
        self._running = False
        self._stopped = False

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def payload(self) -> Optional[DisplayPayload]:
        return render(self._state.current, self._config.waste_types, self._config.display.show_text)

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    def init(self) -> None:
        """Start the configured data sources."""

        if self._running:
            return
        self._running = True
        self._stopped = False
        self._state.current = None
        logger.info("Starting waste reminder (data source: %s)", self._config.data_source)

        if self._config.uses_mqtt:
            factory = self._deps.subscriber_factory or MqttStateSubscriber
            self._subscriber = factory(
                self._config.mqtt,
                on_connected=lambda: self._loop.call_soon_threadsafe(self.on_connected),
                on_message=lambda topic, payload: self._loop.call_soon_threadsafe(
                    self.on_message, topic, payload
                ),
                on_error=lambda message: self._loop.call_soon_threadsafe(self.on_error, message),
            )
            self._subscriber.connect()

        if self._config.uses_calendar:
            self._scheduler.add_task(
                ScheduledTask(
                    name=CALENDAR_TASK,
                    interval_seconds=self._config.calendar.poll_interval.total_seconds(),
                    task=self.request_calendar_refresh,
                ),
                run_immediately=True,
            )

    def shutdown(self) -> None:
        """Cancel timers and release every external resource."""

        if not self._running:
            return
        self._running = False
        self._stopped = True
        self._auto_hide.cancel(self._state)
        self._scheduler.cancel_all()
        if self._subscriber is not None:
            self._subscriber.close()
            self._subscriber = None
        if self._deps.calendar_feed is not None:
            self._deps.calendar_feed.close()
        logger.info("Waste reminder stopped")

    # ------------------------------------------------------------------
    # Event ingest
    def on_external_event(self, name: str, payload: Any = None) -> None:
        """Dispatch a named notification from the host or a collector."""

        if name == MQTT_STATE_CHANGED:
            if payload is None:
                logger.warning("Ignoring %s without a state", name)
                return
            self.on_message(self._config.mqtt.topic, str(payload))
        elif name == MQTT_CONNECTED:
            self.on_connected()
        elif name == MQTT_ERROR:
            self.on_error(str(payload))
        elif name == CALENDAR_EVENTS:
            self.process_calendar_events(payload or [])
        else:
            logger.debug("Ignoring notification %s", name)

    def on_connected(self) -> None:
        logger.debug("MQTT Connected")

    def on_message(self, topic: str, payload: str) -> None:
        logger.debug("MQTT state changed on %s: %s", topic, payload)
        self.set_waste_type(payload)

    def on_error(self, message: str) -> None:
        self._report_error(f"MQTT Error: {message}")

    def request_calendar_refresh(self) -> None:
        """Fetch fresh events from the calendar feed, if one is configured.

        Without a feed the host is expected to push ``CALENDAR_EVENTS`` itself.
        """

        feed = self._deps.calendar_feed
        if feed is None:
            logger.debug("No calendar feed configured, waiting for %s", CALENDAR_EVENTS)
            return
        if self._refresh_pending:
            logger.debug("Calendar refresh already in progress")
            return
        self._refresh_pending = True
        future = self._loop.run_in_executor(None, feed.fetch_events)
        future.add_done_callback(self._handle_calendar_result)

    def process_calendar_events(self, events: Iterable[Any]) -> Optional[str]:
        """Select the due event and show its waste type.

        ``events`` may hold :class:`CalendarEvent` objects or raw mappings with
        ``title`` and ``startDate``.  Returns the waste type that was set.
        """

        if self._stopped or not self._config.calendar.enabled:
            return None

        calendar_events: List[CalendarEvent] = []
        for item in events:
            if isinstance(item, CalendarEvent):
                calendar_events.append(item)
            else:
                calendar_events.extend(parse_events([item]))
        logger.debug("Processing %d calendar events", len(calendar_events))

        selection = select_event(
            calendar_events,
            self._clock(),
            self._config.calendar.trigger_before_hours,
            self._keywords,
        )
        if selection is None:
            return None
        event, waste_type = selection
        logger.debug("Calendar event matched: %s -> %s", event.title, waste_type)
        self.set_waste_type(waste_type)
        return waste_type

    # ------------------------------------------------------------------
    # State transitions
    def set_waste_type(self, waste_type: str) -> None:
        """Show ``waste_type`` (or clear the display for ``"off"``)."""

        if self._stopped:
            logger.debug("Ignoring waste type %s after shutdown", waste_type)
            return
        logger.debug("Setting waste type to: %s", waste_type)
        self._auto_hide.cancel(self._state)
        self._state.current = waste_type
        self._refresh_display()

        if waste_type != OFF and self._config.auto_hide_next_day_at:
            try:
                self._auto_hide.arm(
                    self._state,
                    self._config.auto_hide_next_day_at,
                    self._auto_hide_fired,
                )
            except InvalidHideTimeError as exc:
                self._report_error(f"Invalid auto_hide_next_day_at: {exc}")

    def _auto_hide_fired(self) -> None:
        self.set_waste_type(OFF)

    def _refresh_display(self) -> None:
        self._deps.display.update(self.payload, self._config.display.animation_speed)

    def _handle_calendar_result(self, future: Any) -> None:
        self._refresh_pending = False
        if not self._running or future.cancelled():
            return
        try:
            events = future.result()
        except CalendarFeedError as exc:
            self._report_error(str(exc))
            return
        except Exception as exc:  # any other fetch failure
            self._report_error(f"Calendar refresh failed: {exc!r}")
            return
        self.process_calendar_events(events)

    def _report_error(self, message: str) -> None:
        logger.error("%s", message)
        if self._deps.on_error is not None:
            self._deps.on_error(message)
